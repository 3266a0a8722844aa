#relief_app/api/v1/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from relief_app.core.auth_deps import get_current_principal
from relief_app.core.errors import LifecycleError, to_http_exception
from relief_app.core.security import create_access_token
from relief_app.db.session import get_db
from relief_app.models.enums import UserRole
from relief_app.schemas.auth import LoginRequest, TokenResponse
from relief_app.schemas.users import RegisterRequest, RegisterResponse, UserResponse
from relief_app.services.user_service import UserService, principal_for

router = APIRouter(prefix="/auth")


def get_user_service() -> UserService:
    return UserService()


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    req: RegisterRequest,
    db: Session = Depends(get_db),
    users: UserService = Depends(get_user_service),
):
    try:
        user = users.register(
            db,
            email=req.email,
            password=req.password,
            first_name=req.firstName,
            last_name=req.lastName,
            role=UserRole(req.role),
            phone=req.phone,
        )
    except LifecycleError as e:
        raise to_http_exception(e)

    return RegisterResponse(
        access_token=create_access_token(principal_for(user)),
        user=UserResponse.from_user(user),
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    req: LoginRequest,
    db: Session = Depends(get_db),
    users: UserService = Depends(get_user_service),
):
    principal = users.authenticate(db, req.email, req.password)
    if not principal:
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    return TokenResponse(access_token=create_access_token(principal))


@router.get("/me")
def get_me(principal=Depends(get_current_principal)):
    return {
        "userId": principal.user_id,
        "role": principal.role.value,
        "displayName": principal.display_name,
        "email": principal.email,
    }
