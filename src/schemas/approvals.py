"""Pydantic schemas for the approval API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ApprovalCreateRequest(BaseModel):
    queue_id: str = Field(min_length=36, max_length=36)
    notes: Optional[str] = Field(default=None, max_length=5000)


class ApprovalDecisionRequest(BaseModel):
    decision: str = Field(min_length=6, max_length=24)
    notes: Optional[str] = Field(default=None, max_length=5000)
    rejection_reason: Optional[str] = Field(default=None, max_length=5000)


class ApprovalItem(BaseModel):
    id: str
    org_id: str
    queue_id: Optional[str] = None
    requested_by: Optional[str] = None
    reviewed_by: Optional[str] = None
    status: str
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    revision_number: int = Field(ge=1)
    previous_approval_id: Optional[str] = None
    requested_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None


class ApprovalListResponse(BaseModel):
    org_id: str
    total: int = Field(ge=0)
    items: List[ApprovalItem]
