from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class CheckerCreateRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=256)
    firstName: str = Field(..., min_length=1, max_length=128)
    lastName: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class RegisterRequest(BaseModel):
    """Self-registration; staff accounts are created by an admin."""
    email: str = Field(..., min_length=3, max_length=256)
    firstName: str = Field(..., min_length=1, max_length=128)
    lastName: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., min_length=6)
    role: Literal["family", "donor"]
    phone: Optional[str] = None


class CheckerStatusRequest(BaseModel):
    isActive: bool


class UserResponse(BaseModel):
    id: str
    email: str
    firstName: str
    lastName: str
    role: str
    isActive: bool
    creationMethod: str

    @classmethod
    def from_user(cls, u) -> "UserResponse":
        return cls(
            id=str(u.id),
            email=u.email,
            firstName=u.first_name,
            lastName=u.last_name,
            role=u.role,
            isActive=bool(u.is_active),
            creationMethod=u.creation_method,
        )


class UserListResponse(BaseModel):
    users: List[UserResponse]


class RegisterResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
