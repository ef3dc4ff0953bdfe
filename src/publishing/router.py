"""Multi-platform publishing API routes."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from src.auth.capabilities import CAP_PUBLISH_CONTENT, CAP_VIEW_QUEUE
from src.auth.dependencies import require_capability
from src.auth.jwt import AuthContext
from src.publishing.service import (
    execute_publishing,
    list_publishing_records,
    retry_platform,
    schedule_publishing,
)
from src.queue.service import get_queue_item
from src.queue.states import aggregate_publishing_status
from src.schemas.publishing import (
    PublishingListResponse,
    PublishingRecordItem,
    PublishingRunResponse,
    PublishingScheduleRequest,
)
from src.storage.db import get_session
from src.storage.models import PublishingRecord
from src.storage.tenant import set_org_context


router = APIRouter(prefix="/blog-publishing", tags=["publishing"])


def publishing_record_item(record: PublishingRecord) -> PublishingRecordItem:
    try:
        publish_metadata = json.loads(record.publish_metadata_json or "{}")
    except json.JSONDecodeError:
        publish_metadata = {}
    return PublishingRecordItem(
        id=record.id,
        org_id=record.org_id,
        queue_id=record.queue_id,
        platform=record.platform,
        status=record.status,
        scheduled_at=record.scheduled_at,
        published_at=record.published_at,
        error=record.error,
        platform_post_id=record.platform_post_id,
        platform_url=record.platform_url,
        retry_count=record.retry_count or 0,
        published_by=record.published_by,
        publish_metadata=publish_metadata if isinstance(publish_metadata, dict) else {},
    )


def _list_response(session: Session, *, org_id: str, queue_id: str) -> PublishingListResponse:
    item = get_queue_item(session, org_id=org_id, queue_id=queue_id)
    records = list_publishing_records(session, org_id=org_id, queue_id=queue_id)
    return PublishingListResponse(
        queue_id=queue_id,
        item_status=item.status,
        publishing_status=aggregate_publishing_status(record.status for record in records),
        items=[publishing_record_item(record) for record in records],
    )


@router.get("", response_model=PublishingListResponse)
def list_publishing_endpoint(
    queue_id: str,
    auth: AuthContext = Depends(require_capability(CAP_VIEW_QUEUE)),
    session: Session = Depends(get_session),
) -> PublishingListResponse:
    set_org_context(session, auth.org_id)
    return _list_response(session, org_id=auth.org_id, queue_id=queue_id)


@router.post("", response_model=PublishingListResponse, status_code=201)
def schedule_publishing_endpoint(
    payload: PublishingScheduleRequest,
    auth: AuthContext = Depends(require_capability(CAP_PUBLISH_CONTENT)),
    session: Session = Depends(get_session),
) -> PublishingListResponse:
    set_org_context(session, auth.org_id)
    try:
        schedule_publishing(
            session,
            org_id=auth.org_id,
            queue_id=payload.queue_id,
            platforms=payload.platforms,
            scheduled_at=payload.scheduled_at,
            actor_id=auth.user_id,
            actor_role=auth.role,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return _list_response(session, org_id=auth.org_id, queue_id=payload.queue_id)


@router.post("/run/{queue_id}", response_model=PublishingRunResponse)
def run_publishing_endpoint(
    queue_id: str,
    auth: AuthContext = Depends(require_capability(CAP_PUBLISH_CONTENT)),
    session: Session = Depends(get_session),
) -> PublishingRunResponse:
    set_org_context(session, auth.org_id)
    result = execute_publishing(
        session,
        org_id=auth.org_id,
        queue_id=queue_id,
        actor_id=auth.user_id,
        actor_role=auth.role,
    )
    return PublishingRunResponse(
        queue_id=result.queue_id,
        item_status=result.item_status,
        publishing_status=result.aggregate_status,
        published=result.published,
        failed=result.failed,
        items=[publishing_record_item(record) for record in result.records],
    )


@router.post("/{record_id}/retry", response_model=PublishingRecordItem)
def retry_publishing_endpoint(
    record_id: str,
    auth: AuthContext = Depends(require_capability(CAP_PUBLISH_CONTENT)),
    session: Session = Depends(get_session),
) -> PublishingRecordItem:
    set_org_context(session, auth.org_id)
    record = retry_platform(
        session,
        org_id=auth.org_id,
        record_id=record_id,
        actor_id=auth.user_id,
        actor_role=auth.role,
    )
    return publishing_record_item(record)
