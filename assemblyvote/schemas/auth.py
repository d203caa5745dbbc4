"""Schemas for authentication endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from assemblyvote.models import IdentityRole


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class LoginRequest(BaseModel):
    document: str = Field(..., min_length=1, max_length=320)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenPayload(BaseModel):
    sub: str
    role: IdentityRole
    type: Literal["access", "refresh"]
    iat: datetime
    exp: datetime
    jti: str


__all__ = ["LoginRequest", "RefreshRequest", "TokenPayload", "TokenResponse"]
