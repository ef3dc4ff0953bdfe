"""Pydantic schemas for the multi-platform publishing API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PublishingScheduleRequest(BaseModel):
    queue_id: str = Field(min_length=36, max_length=36)
    platforms: List[str] = Field(min_length=1, max_length=3)
    scheduled_at: Optional[datetime] = None


class PublishingRecordItem(BaseModel):
    id: str
    org_id: str
    queue_id: Optional[str] = None
    platform: str
    status: str
    scheduled_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    error: Optional[str] = None
    platform_post_id: Optional[str] = None
    platform_url: Optional[str] = None
    retry_count: int = Field(ge=0)
    published_by: Optional[str] = None
    publish_metadata: Dict[str, Any] = Field(default_factory=dict)


class PublishingListResponse(BaseModel):
    queue_id: str
    item_status: str
    publishing_status: Optional[str] = None
    items: List[PublishingRecordItem]


class PublishingRunResponse(BaseModel):
    queue_id: str
    item_status: str
    publishing_status: Optional[str] = None
    published: int = Field(ge=0)
    failed: int = Field(ge=0)
    items: List[PublishingRecordItem]
