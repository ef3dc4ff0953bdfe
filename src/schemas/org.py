"""Pydantic schemas for org management API."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class OrgCreateRequest(BaseModel):
    name: str = Field(min_length=3, max_length=120)
    owner_email: EmailStr
    owner_password: str = Field(min_length=8, max_length=255)
    brand_voice: Optional[str] = Field(default=None, max_length=2000)


class OrgCreateResponse(BaseModel):
    org_id: str
    name: str
    owner_user_id: str
    owner_role: str


class MemberCreateRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=255)
    role: str = Field(default="member", min_length=3, max_length=32)


class MemberResponse(BaseModel):
    id: str
    org_id: str
    user_id: str
    email: str
    role: str
