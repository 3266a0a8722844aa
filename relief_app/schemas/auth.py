from __future__ import annotations
from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
