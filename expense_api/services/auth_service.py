"""
Bearer token helpers.

Sessions and login belong to the identity provider; this module only
verifies the access tokens it issues (and can mint one for tooling/tests).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
import structlog

from expense_api.config import settings
from expense_api.services.authorization import Principal, Role

logger = structlog.get_logger()

_private_key: Optional[str] = None
_public_key: Optional[str] = None


def _is_symmetric() -> bool:
    return settings.JWT_ALGORITHM.upper().startswith("HS")


def _signing_key() -> str:
    global _private_key
    if _is_symmetric():
        return settings.JWT_SECRET_KEY
    if _private_key is None:
        with open(settings.JWT_PRIVATE_KEY_PATH, "r") as f:
            _private_key = f.read()
    return _private_key


def _verification_key() -> str:
    global _public_key
    if _is_symmetric():
        return settings.JWT_SECRET_KEY
    if _public_key is None:
        with open(settings.JWT_PUBLIC_KEY_PATH, "r") as f:
            _public_key = f.read()
    return _public_key


def create_access_token(user_id: str, role: str, email: Optional[str] = None) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        "type": "access",
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, _signing_key(), algorithm=settings.JWT_ALGORITHM)


def verify_access_token(token: str) -> dict:
    """Verify an access token and return its claims. Raises JWTError on failure."""
    payload = jwt.decode(token, _verification_key(), algorithms=[settings.JWT_ALGORITHM])
    if payload.get("type") != "access":
        raise JWTError("Not an access token")
    return payload


def principal_from_claims(payload: dict) -> Principal:
    try:
        role = Role(payload["role"])
    except (KeyError, ValueError):
        raise JWTError(f"Unknown role: {payload.get('role')!r}")
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    return Principal(id=str(payload["sub"]), role=role)
