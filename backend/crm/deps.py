from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from crm.auth_utils import decode_identity_token
from crm.errors import Unauthenticated, NotFound
from crm.users import ensure_user

_bearer = HTTPBearer(auto_error=False)


async def get_identity(creds: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)) -> str:
    """External identity id (the token's ``sub``)."""
    if creds is None or not creds.credentials:
        raise Unauthenticated()
    return decode_identity_token(creds.credentials)["sub"]


async def get_current_user(external_id: str = Depends(get_identity)) -> dict:
    """Request-scoped user context handed to every owned-resource handler."""
    user = await ensure_user(external_id)
    if not user:
        raise NotFound("user")
    return {"id": user["id"], "external_id": user["external_id"], "email": user["email"]}
