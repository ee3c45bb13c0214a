import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crm import settings
from crm.db import database
from crm.errors import CRMError, ValidationError
from crm.routers import assistant, contacts, dashboard, expenses, invoices, tasks, webhooks

settings.configure_logging()
logger = logging.getLogger("crm")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await database.connect()
    try:
        yield
    finally:
        await database.disconnect()


app = FastAPI(title="Small Business CRM API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def upstream_errors(request: Request, call_next):
    """Anything not handled below is a failed downstream call: 500 with its message."""
    try:
        return await call_next(request)
    except Exception as exc:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


@app.exception_handler(CRMError)
async def crm_error_handler(request: Request, exc: CRMError):
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    if first.get("type") == "json_invalid":
        err = ValidationError("body", "Invalid JSON body", details=first.get("msg"))
        return JSONResponse(status_code=err.status_code, content=err.to_body())
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
    field = ".".join(loc) or "body"
    if first.get("type") == "missing" or first.get("input") in ("", None):
        err = ValidationError(field)
    else:
        err = ValidationError(field, f"Invalid {field}", details=first.get("msg"))
    return JSONResponse(status_code=err.status_code, content=err.to_body())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.get("/health")
async def health_check():
    return {"status": "ok"}


# public share links first: /invoices/public/... must not reach /invoices/{invoice_id}
app.include_router(invoices.public_router)
app.include_router(invoices.router)
app.include_router(contacts.router)
app.include_router(expenses.router)
app.include_router(tasks.router)
app.include_router(dashboard.router)
app.include_router(webhooks.router)
app.include_router(assistant.router)
