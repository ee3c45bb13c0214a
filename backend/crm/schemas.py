from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class _Body(BaseModel):
    """Request body: explicit nulls fall back to the field default."""

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data):
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


# ---- Enums ----
class ContactStatus(str, Enum):
    active = "active"
    inactive = "inactive"

class InvoiceStatus(str, Enum):
    draft = "draft"
    sent = "sent"
    paid = "paid"
    overdue = "overdue"
    cancelled = "cancelled"

class TaskStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"

class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"

class BulkAction(str, Enum):
    activate = "activate"
    deactivate = "deactivate"
    delete = "delete"

class Period(str, Enum):
    week = "week"
    month = "month"
    quarter = "quarter"
    year = "year"


EXPENSE_CATEGORIES = [
    "Office Supplies", "Travel", "Meals", "Rent", "Utilities", "Software", "Hardware",
    "Marketing", "Consulting", "Salaries", "Insurance", "Taxes", "Other",
]
PAYMENT_MODES = ["Cash", "Credit Card", "Debit Card", "Bank Transfer", "Check", "PayPal", "Other"]


# ---- Contacts ----
class ContactIn(_Body):
    first_name: str = Field(min_length=1, max_length=200)
    last_name: str = ""
    email: Optional[EmailStr] = None
    phone: str = ""
    company: str = ""
    position: str = ""
    notes: str = ""
    status: ContactStatus = ContactStatus.active
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, v):
        return _blank_to_none(v)

class ContactOut(BaseModel):
    id: str
    user_id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    company: str
    position: str
    notes: str
    status: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

class BulkContactsIn(_Body):
    action: BulkAction
    contact_ids: List[str] = Field(min_length=1, validation_alias=AliasChoices("contact_ids", "contactIds"))


# ---- Invoices ----
class InvoiceItemIn(_Body):
    description: str = ""
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)

class InvoiceIn(_Body):
    contact_id: str = Field(min_length=1)
    invoice_number: str = Field(min_length=1, max_length=100)
    issue_date: date
    due_date: date
    status: InvoiceStatus = InvoiceStatus.draft
    total_amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    notes: str = ""
    items: Optional[List[InvoiceItemIn]] = None


# ---- Expenses ----
class ExpenseIn(_Body):
    category: str = Field(min_length=1, max_length=100)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    name: str = Field(min_length=1, max_length=200)
    date: date
    contact_id: Optional[str] = None
    invoice_id: Optional[str] = None
    receipt_url: Optional[str] = None
    project: Optional[str] = None
    reference: Optional[str] = None
    payment_mode: Optional[str] = None
    notes: Optional[str] = None

    @field_validator(
        "contact_id", "invoice_id", "receipt_url", "project", "reference", "payment_mode", "notes",
        mode="before",
    )
    @classmethod
    def blank_optionals(cls, v):
        return _blank_to_none(v)


# ---- Tasks ----
class TaskIn(_Body):
    title: str = Field(min_length=1, max_length=300)
    description: str = ""
    contact_id: Optional[str] = None
    due_date: Optional[date] = None
    status: TaskStatus = TaskStatus.pending
    priority: TaskPriority = TaskPriority.medium

    @field_validator("contact_id", "due_date", mode="before")
    @classmethod
    def blank_optionals(cls, v):
        return _blank_to_none(v)

class TaskOut(BaseModel):
    id: str
    user_id: str
    contact_id: Optional[str] = None
    title: str
    description: str
    due_date: Optional[date] = None
    status: str
    priority: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    contact: Optional[dict] = None
    model_config = ConfigDict(from_attributes=True)


# ---- Assistant ----
class ChatIn(_Body):
    message: str = Field(min_length=1, max_length=4000)

class ChatOut(BaseModel):
    role: str = "assistant"
    content: str
    created_at: datetime
