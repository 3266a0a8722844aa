# relief_app/core/security.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from relief_app.core.config import get_settings
from relief_app.models.enums import UserRole
from relief_app.policies.rbac import Principal

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class TokenError(Exception):
    """Token is malformed, expired or missing a claim we rely on."""


def hash_password(raw: str) -> str:
    return pwd_context.hash(raw)


def verify_password(raw: str, hashed: str) -> bool:
    return pwd_context.verify(raw, hashed)


def create_access_token(principal: Principal, expires_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    exp_minutes = expires_minutes or settings.jwt_access_token_minutes
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": principal.user_id,
        "role": principal.role.value,
        "name": principal.display_name,
        "email": principal.email,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Principal:
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise TokenError("Invalid or expired token.") from e

    user_id = claims.get("sub")
    if not user_id or not claims.get("role"):
        raise TokenError("Token missing required claims.")
    try:
        role = UserRole(claims["role"])
    except ValueError as e:
        raise TokenError("Invalid role in token.") from e

    return Principal(
        user_id=str(user_id),
        role=role,
        display_name=str(claims.get("name") or "Unknown"),
        email=claims.get("email"),
    )
