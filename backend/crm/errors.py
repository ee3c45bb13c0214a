from typing import Any, Dict, Optional


class CRMError(Exception):
    """Base error rendered as ``{"error": ..., "details": ...}``."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None, **extra: Any):
        super().__init__(message)
        self.message = message
        self.details = details
        self.extra = extra

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        body.update(self.extra)
        return body


class Unauthenticated(CRMError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[str] = None):
        super().__init__(message, details)


class NotFound(CRMError):
    """Absent and not-owned rows are both reported this way."""

    status_code = 404

    def __init__(self, resource: str, details: Optional[str] = None):
        self.resource = resource
        super().__init__(f"{resource.capitalize()} not found", details)


class ValidationError(CRMError):
    status_code = 400

    def __init__(self, field: str, message: Optional[str] = None, details: Optional[str] = None):
        self.field = field
        super().__init__(message or f"{field} is required", details, field=field)


class Forbidden(CRMError):
    status_code = 403


class UpstreamError(CRMError):
    status_code = 500
