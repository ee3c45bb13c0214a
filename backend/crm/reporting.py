"""Dashboard figures computed in application code from owner-scoped rows.

Every function here is pure: rows in (dicts as fetched), plain values out.
Amounts are summed as ``Decimal``; missing amounts count as zero.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

PERIOD_DAYS = {"week": 7, "month": 30, "quarter": 90, "year": 365}

REVENUE_STATUSES = {"paid"}
PENDING_STATUSES = {"draft", "sent"}
OVERDUE_STATUSES = {"overdue"}
ACTIVE_INVOICE_STATUSES = ("draft", "sent", "overdue")
PENDING_TASK_STATUSES = ("pending", "in_progress")

ZERO = Decimal("0")


def as_decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def as_date(value: Any) -> Optional[date]:
    """Calendar day of a date, datetime or ISO string (time part dropped)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)[:10]).date()


def window(period: str, today: date) -> tuple[date, date]:
    """Inclusive ``(start, end)`` of the trailing window ending ``today``."""
    days = PERIOD_DAYS.get(period, PERIOD_DAYS["month"])
    return today - timedelta(days=days - 1), today


def days_between(start: date, end: date) -> List[date]:
    out = []
    day = start
    while day <= end:
        out.append(day)
        day += timedelta(days=1)
    return out


def _month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def trailing_months(today: date, count: int = 12) -> List[str]:
    """``YYYY-MM`` keys of the last ``count`` calendar months, oldest first."""
    y, m = today.year, today.month
    keys = []
    for _ in range(count):
        keys.append(f"{y:04d}-{m:02d}")
        m -= 1
        if m == 0:
            y, m = y - 1, 12
    return list(reversed(keys))


def _sum(rows: Iterable[dict], field: str = "total_amount") -> Decimal:
    return sum((as_decimal(r.get(field)) for r in rows), ZERO)


def financial_summary(
    invoices: List[dict],
    expenses: List[dict],
    contacts: Dict[str, dict],
    today: date,
    period: str = "month",
) -> Dict[str, Any]:
    """Revenue/pending/overdue over the window, per-day series, monthly revenue.

    ``invoices`` need ``status``, ``total_amount``, ``created_at`` and
    ``contact_id``; ``expenses`` need ``amount`` and ``date``. ``contacts``
    maps contact id to a row used to name revenue sources.
    """
    start, end = window(period, today)

    in_window = [inv for inv in invoices if start <= as_date(inv["created_at"]) <= end]
    paid = [inv for inv in in_window if inv["status"] in REVENUE_STATUSES]
    pending = [inv for inv in in_window if inv["status"] in PENDING_STATUSES]
    overdue = [inv for inv in in_window if inv["status"] in OVERDUE_STATUSES]
    spent = [e for e in expenses if start <= as_date(e["date"]) <= end]

    def by_day(rows, date_field, amount_field):
        out: Dict[date, Decimal] = defaultdict(lambda: ZERO)
        for r in rows:
            out[as_date(r[date_field])] += as_decimal(r.get(amount_field))
        return out

    revenue_by_day = by_day(paid, "created_at", "total_amount")
    pending_by_day = by_day(pending, "created_at", "total_amount")
    overdue_by_day = by_day(overdue, "created_at", "total_amount")
    expenses_by_day = by_day(spent, "date", "amount")

    chart_data = [
        {
            "date": day.isoformat(),
            "revenue": revenue_by_day.get(day, ZERO),
            "pending": pending_by_day.get(day, ZERO),
            "overdue": overdue_by_day.get(day, ZERO),
            "expenses": expenses_by_day.get(day, ZERO),
        }
        for day in days_between(start, end)
    ]

    total_revenue = _sum(paid)
    total_expenses = _sum(spent, "amount")
    net_profit = total_revenue - total_expenses

    return {
        "period": period,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "total_revenue": total_revenue,
        "pending_revenue": _sum(pending),
        "overdue_revenue": _sum(overdue),
        "total_expenses": total_expenses,
        "net_profit": net_profit,
        "profit_margin": float(net_profit / total_revenue * 100) if total_revenue > 0 else 0.0,
        "chart_data": chart_data,
        "monthly_revenue": monthly_revenue(invoices, today),
        "revenue_sources": revenue_sources(paid, contacts, total_revenue),
    }


def monthly_revenue(invoices: List[dict], today: date, months: int = 12) -> List[Dict[str, Any]]:
    """Paid revenue per ``YYYY-MM`` over the trailing calendar months, ascending.

    Only months that have paid invoices appear.
    """
    keys = set(trailing_months(today, months))
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for inv in invoices:
        if inv["status"] not in REVENUE_STATUSES:
            continue
        key = _month_key(as_date(inv["created_at"]))
        if key in keys:
            totals[key] += as_decimal(inv.get("total_amount"))
    return [{"month": k, "revenue": totals[k]} for k in sorted(totals)]


def contact_display_name(contact: Optional[dict]) -> str:
    if not contact:
        return "Unknown Contact"
    if contact.get("company"):
        return contact["company"]
    name = f"{contact.get('first_name') or ''} {contact.get('last_name') or ''}".strip()
    return name or "Unknown Contact"


def revenue_sources(paid: List[dict], contacts: Dict[str, dict], total_revenue: Decimal, limit: int = 5):
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for inv in paid:
        totals[inv.get("contact_id")] += as_decimal(inv.get("total_amount"))
    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)[:limit]
    return [
        {
            "contact_id": cid,
            "name": contact_display_name(contacts.get(cid)),
            "amount": amount,
            "percentage": float(amount / total_revenue * 100) if total_revenue > 0 else 0.0,
        }
        for cid, amount in ranked
    ]


def recent_activity(contacts: List[dict], invoices: List[dict], tasks: List[dict], limit: int = 10) -> List[dict]:
    """Merge the three recent feeds, newest first.

    The sort is stable, so equal timestamps keep the contacts, invoices,
    tasks concatenation order.
    """
    feed = [
        {
            "type": "contact",
            "id": c["id"],
            "title": f"{c.get('first_name') or ''} {c.get('last_name') or ''}".strip()
            or contact_display_name(c),
            "created_at": c["created_at"],
        }
        for c in contacts
    ]
    feed += [
        {
            "type": "invoice",
            "id": i["id"],
            "title": f"Invoice #{i['invoice_number']}",
            "status": i.get("status"),
            "created_at": i["created_at"],
        }
        for i in invoices
    ]
    feed += [
        {
            "type": "task",
            "id": t["id"],
            "title": t["title"],
            "status": t.get("status"),
            "created_at": t["created_at"],
        }
        for t in tasks
    ]
    feed.sort(key=lambda item: item["created_at"], reverse=True)
    return feed[:limit]
