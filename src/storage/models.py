"""SQLAlchemy ORM models for orgs, the generation queue and its subworkflows."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.storage.db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Org(Base):
    __tablename__ = "orgs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    brand_voice: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    members: Mapped[list[OrgMember]] = relationship("OrgMember", back_populates="org")


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class OrgMember(Base):
    __tablename__ = "org_members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("orgs.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="member")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    org: Mapped[Org] = relationship("Org", back_populates="members")

    __table_args__ = (
        UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
        Index("ix_org_members_org_created_at", "org_id", "created_at"),
    )


class QueueItem(Base):
    __tablename__ = "blog_generation_queue"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("orgs.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    topic: Mapped[str] = mapped_column(String(500), nullable=False)
    keywords_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    target_audience: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tone: Mapped[str] = mapped_column(String(40), nullable=False, default="professional")
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1500)
    quality_level: Mapped[str] = mapped_column(String(24), nullable=False, default="high")
    template_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    custom_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="queued")
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_stage: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    progress_updates_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    generated_title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    generated_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    generation_metadata_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    generation_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    post_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    metadata_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    queued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    generation_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    generation_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_blog_generation_queue_org_status_priority", "org_id", "status", "priority"),
        Index("ix_blog_generation_queue_org_created_at", "org_id", "created_at"),
    )


class ApprovalRequest(Base):
    __tablename__ = "blog_approvals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("orgs.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Nulled, never cascaded, when the queue item is hard-deleted.
    queue_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("blog_generation_queue.id", ondelete="SET NULL"),
        nullable=True,
    )
    requested_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reviewed_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="pending")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    revision_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    previous_approval_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_blog_approvals_org_status_requested_at", "org_id", "status", "requested_at"),
        Index("ix_blog_approvals_queue_status", "queue_id", "status"),
    )


class PublishingRecord(Base):
    __tablename__ = "blog_platform_publishing"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("orgs.id", ondelete="CASCADE"),
        nullable=False,
    )
    queue_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("blog_generation_queue.id", ondelete="SET NULL"),
        nullable=True,
    )
    platform: Mapped[str] = mapped_column(String(24), nullable=False)
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="scheduled")
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    platform_post_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    platform_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    published_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    publish_metadata_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("queue_id", "platform", name="uq_blog_platform_publishing_queue_platform"),
        Index("ix_blog_platform_publishing_org_status", "org_id", "status"),
    )


class WorkflowPhaseState(Base):
    __tablename__ = "workflow_phase_states"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("orgs.id", ondelete="CASCADE"),
        nullable=False,
    )
    queue_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("blog_generation_queue.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    phase: Mapped[str] = mapped_column(String(40), nullable=False, default="phase_1_content")
    resumable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    content_result_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    images_result_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    enhancement_result_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    interlinking_result_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    publishing_preparation_result_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class BlogPost(Base):
    __tablename__ = "blog_posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("orgs.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    queue_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    slug: Mapped[str] = mapped_column(String(120), nullable=False)
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="draft")
    metadata_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    seo_data_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_blog_posts_org_created_at", "org_id", "created_at"),
    )
