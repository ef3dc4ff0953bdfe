"""Login payload and the caller identity returned by the auth routes."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    org_id: str = Field(min_length=36, max_length=36)
    email: EmailStr
    password: str = Field(min_length=8, max_length=255)


class CallerIdentity(BaseModel):
    user_id: str
    org_id: str
    email: str = ""
    role: str
    capabilities: List[str] = Field(default_factory=list)


class TokenResponse(CallerIdentity):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
