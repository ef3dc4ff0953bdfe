"""Pydantic schemas for the blog generation queue API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.schemas.approvals import ApprovalItem
from src.schemas.publishing import PublishingRecordItem


class QueueItemCreateRequest(BaseModel):
    topic: str = Field(min_length=3, max_length=500)
    keywords: List[str] = Field(default_factory=list, max_length=50)
    target_audience: Optional[str] = Field(default=None, max_length=255)
    tone: str = Field(default="professional", min_length=2, max_length=40)
    word_count: int = Field(default=1500, ge=100, le=20000)
    quality_level: str = Field(default="high", min_length=2, max_length=24)
    template_type: Optional[str] = Field(default=None, max_length=64)
    custom_instructions: Optional[str] = Field(default=None, max_length=5000)
    priority: Optional[int] = Field(default=None, ge=1, le=10)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class QueueItemUpdateRequest(BaseModel):
    topic: Optional[str] = Field(default=None, min_length=3, max_length=500)
    keywords: Optional[List[str]] = Field(default=None, max_length=50)
    target_audience: Optional[str] = Field(default=None, max_length=255)
    tone: Optional[str] = Field(default=None, min_length=2, max_length=40)
    word_count: Optional[int] = Field(default=None, ge=100, le=20000)
    quality_level: Optional[str] = Field(default=None, min_length=2, max_length=24)
    template_type: Optional[str] = Field(default=None, max_length=64)
    custom_instructions: Optional[str] = Field(default=None, max_length=5000)
    priority: Optional[int] = Field(default=None, ge=1, le=10)
    status: Optional[str] = Field(default=None, min_length=3, max_length=24)
    generated_title: Optional[str] = Field(default=None, max_length=500)
    generated_content: Optional[str] = None
    generation_error: Optional[str] = None
    current_stage: Optional[str] = Field(default=None, max_length=80)
    progress_percentage: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


class QueueItemResponse(BaseModel):
    id: str
    org_id: str
    created_by: Optional[str] = None
    topic: str
    keywords: List[str] = Field(default_factory=list)
    target_audience: Optional[str] = None
    tone: str
    word_count: int
    quality_level: str
    template_type: Optional[str] = None
    custom_instructions: Optional[str] = None
    priority: int = Field(ge=1, le=10)
    status: str
    progress_percentage: int = Field(ge=0, le=100)
    current_stage: Optional[str] = None
    generated_title: Optional[str] = None
    generated_content: Optional[str] = None
    generation_metadata: Dict[str, Any] = Field(default_factory=dict)
    generation_error: Optional[str] = None
    post_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    queued_at: Optional[datetime] = None
    generation_started_at: Optional[datetime] = None
    generation_completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class QueueItemListResponse(BaseModel):
    org_id: str
    total: int = Field(ge=0)
    limit: int
    offset: int
    items: List[QueueItemResponse]


class QueueItemDetailResponse(QueueItemResponse):
    approvals: List[ApprovalItem] = Field(default_factory=list)
    publishing: List[PublishingRecordItem] = Field(default_factory=list)
    publishing_status: Optional[str] = None


class QueueStatsResponse(BaseModel):
    org_id: str
    total: int = Field(ge=0)
    by_status: Dict[str, int]
    recent_24h: int = Field(ge=0)
    average_generation_minutes: Optional[float] = None


class QueueDeleteResponse(BaseModel):
    queue_id: str
    action: str
    previous_status: str


class WorkflowRunRequest(BaseModel):
    from_phase: Optional[str] = Field(default=None, max_length=40)
    generate_images: Optional[bool] = None
    image_style: Optional[str] = Field(default=None, max_length=40)
    image_timeout_seconds: Optional[float] = Field(default=None, gt=0, le=300)
    max_internal_links: Optional[int] = Field(default=None, ge=0, le=20)
    content_goal_prompt: Optional[str] = Field(default=None, max_length=2000)


class WorkflowPhaseOutcome(BaseModel):
    phase: str
    outcome: str
    detail: Optional[str] = None


class WorkflowRunResponse(BaseModel):
    queue_id: str
    outcome: str
    phase: str
    item_status: str
    phases: List[WorkflowPhaseOutcome] = Field(default_factory=list)
    results: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    error: Optional[str] = None


class WorkflowStateResponse(BaseModel):
    queue_id: str
    phase: str
    resumable: bool
    completed_phases: List[str] = Field(default_factory=list)
    results: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    last_error: Optional[str] = None


class ProgressResponse(BaseModel):
    queue_id: str
    status: str
    current_stage: Optional[str] = None
    progress_percentage: int = Field(ge=0, le=100)
    updates: List[Dict[str, Any]] = Field(default_factory=list)
    timeline: Optional[List[Dict[str, Any]]] = None
