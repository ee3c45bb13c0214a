"""Identity-provider webhook: mirrors user lifecycle events into ``users``."""
import json
import logging

from fastapi import APIRouter, Request

from crm import settings
from crm.errors import CRMError, ValidationError
from crm.users import sync_user, delete_user
from crm.webhook_utils import WebhookVerificationError, verify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _primary_email(data: dict):
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    for addr in addresses:
        if primary_id and addr.get("id") == primary_id:
            return addr.get("email_address")
    return addresses[0].get("email_address") if addresses else None


@router.post("/identity")
async def identity_webhook(request: Request):
    """Signature-checked user.created / user.updated / user.deleted events.

    No bearer auth: the HMAC signature is the credential. Unknown event
    types are acknowledged and ignored.
    """
    secret = settings.IDENTITY_WEBHOOK_SECRET
    if not secret:
        logger.error("IDENTITY_WEBHOOK_SECRET is not set")
        raise CRMError("Webhook secret not set")

    body = await request.body()
    try:
        verify(secret, body, request.headers, tolerance=settings.WEBHOOK_TOLERANCE_SECONDS)
    except WebhookVerificationError as e:
        logger.warning("rejected webhook: %s", e)
        raise ValidationError("signature", "Invalid webhook signature", details=str(e))

    try:
        event = json.loads(body)
    except (json.JSONDecodeError, ValueError):
        raise ValidationError("body", "Invalid JSON payload")
    if not isinstance(event, dict):
        raise ValidationError("body", "Invalid JSON payload")

    event_type = event.get("type")
    data = event.get("data") or {}
    if not isinstance(data, dict):
        raise ValidationError("data", "Invalid JSON payload")
    external_id = data.get("id")

    if event_type in ("user.created", "user.updated"):
        if not external_id:
            raise ValidationError("data.id")
        await sync_user(
            external_id,
            email=_primary_email(data),
            first_name=data.get("first_name") or "",
            last_name=data.get("last_name") or "",
        )
    elif event_type == "user.deleted":
        if not external_id:
            raise ValidationError("data.id")
        if not await delete_user(external_id):
            logger.info("user.deleted for unknown user %s", external_id)
    else:
        logger.info("ignored webhook event %s", event_type)

    return {"success": True}
