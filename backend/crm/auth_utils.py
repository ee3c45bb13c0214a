from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError

from crm import settings
from crm.errors import Unauthenticated


def create_access_token(sub: str, ttl_seconds: int = 60*60*24, extra: Optional[Dict[str, Any]] = None) -> str:
    """Mint a token shaped like the identity provider's (dev and tests)."""
    exp = int((datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)).timestamp())
    payload: Dict[str, Any] = {"sub": sub, "exp": exp, **(extra or {})}
    if settings.IDENTITY_JWT_AUDIENCE:
        payload.setdefault("aud", settings.IDENTITY_JWT_AUDIENCE)
    if settings.IDENTITY_JWT_ISSUER:
        payload.setdefault("iss", settings.IDENTITY_JWT_ISSUER)
    return jwt.encode(payload, settings.IDENTITY_JWT_SECRET, algorithm=settings.IDENTITY_JWT_ALGORITHMS[0])


def decode_identity_token(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            settings.IDENTITY_JWT_SECRET,
            algorithms=settings.IDENTITY_JWT_ALGORITHMS,
            audience=settings.IDENTITY_JWT_AUDIENCE,
            issuer=settings.IDENTITY_JWT_ISSUER,
            options={"verify_aud": settings.IDENTITY_JWT_AUDIENCE is not None},
        )
    except JWTError as e:
        raise Unauthenticated(details=f"invalid token: {e}")
    if not payload.get("sub"):
        raise Unauthenticated(details="token has no subject")
    return payload
