#relief_app/core/auth_deps.py
from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from relief_app.core.security import TokenError, decode_token
from relief_app.models.enums import UserRole
from relief_app.policies.rbac import Principal

bearer = HTTPBearer(auto_error=True)


def get_current_principal(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> Principal:
    """
    Canonical authentication dependency.

    Guarantees:
    - JWT is valid and unexpired
    - sub and role are present
    - role is a valid UserRole
    """
    try:
        principal = decode_token(creds.credentials)
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))

    # Make principal available to downstream middleware / handlers
    request.state.principal = principal
    return principal


def require_roles(*roles: UserRole) -> Callable[..., Principal]:
    """Route-level gate; finer rules stay in the lifecycle."""
    allowed = set(roles)

    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail=f"Role {principal.role.value} cannot access this endpoint.",
            )
        return principal

    return _dep
