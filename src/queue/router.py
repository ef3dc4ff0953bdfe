"""Blog generation queue API routes."""

from __future__ import annotations

import json
import time
from typing import Any, Dict, Iterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from src.approvals.router import approval_item
from src.auth.capabilities import CAP_CREATE_JOB, CAP_VIEW_QUEUE, CAP_VIEW_STATS
from src.auth.dependencies import require_auth_context, require_capability
from src.auth.jwt import AuthContext
from src.core.config import get_settings
from src.core.logger import get_logger
from src.progress.channel import MESSAGE_KIND_PROGRESS, Subscription
from src.progress.reporter import ProgressReporter, build_timeline, load_progress_updates
from src.publishing.router import publishing_record_item
from src.queue.lifecycle import delete_queue_item, retry_queue_item
from src.queue.service import (
    create_queue_item,
    ensure_can_edit,
    get_queue_item,
    get_queue_item_detail,
    item_generation_metadata,
    item_keywords,
    item_metadata,
    list_queue_items,
    queue_stats,
    update_queue_item,
)
from src.queue.states import is_complete_status
from src.schemas.queue import (
    ProgressResponse,
    QueueDeleteResponse,
    QueueItemCreateRequest,
    QueueItemDetailResponse,
    QueueItemListResponse,
    QueueItemResponse,
    QueueItemUpdateRequest,
    QueueStatsResponse,
    WorkflowPhaseOutcome,
    WorkflowRunRequest,
    WorkflowRunResponse,
    WorkflowStateResponse,
)
from src.storage.db import get_session
from src.storage.models import QueueItem
from src.storage.tenant import set_org_context
from src.workflow.orchestrator import WorkflowOrchestrator, default_workflow_options, get_workflow_state
from src.workflow.phases import WORKFLOW_PHASES, WorkflowContext


router = APIRouter(prefix="/blog-queue", tags=["blog-queue"])
logger = get_logger("content_queue.queue.api")


def _unprocessable(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


def _item_fields(item: QueueItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "org_id": item.org_id,
        "created_by": item.created_by,
        "topic": item.topic,
        "keywords": item_keywords(item),
        "target_audience": item.target_audience,
        "tone": item.tone,
        "word_count": item.word_count,
        "quality_level": item.quality_level,
        "template_type": item.template_type,
        "custom_instructions": item.custom_instructions,
        "priority": item.priority,
        "status": item.status,
        "progress_percentage": item.progress_percentage,
        "current_stage": item.current_stage,
        "generated_title": item.generated_title,
        "generated_content": item.generated_content,
        "generation_metadata": item_generation_metadata(item),
        "generation_error": item.generation_error,
        "post_id": item.post_id,
        "metadata": item_metadata(item),
        "queued_at": item.queued_at,
        "generation_started_at": item.generation_started_at,
        "generation_completed_at": item.generation_completed_at,
        "created_at": item.created_at,
        "updated_at": item.updated_at,
    }


def queue_item_response(item: QueueItem) -> QueueItemResponse:
    return QueueItemResponse(**_item_fields(item))


@router.get("", response_model=QueueItemListResponse)
def list_queue_endpoint(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    priority: Optional[int] = Query(default=None, ge=1, le=10),
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    sort: str = "created_at",
    order: str = Query(default="desc", pattern="^(asc|desc)$"),
    auth: AuthContext = Depends(require_capability(CAP_VIEW_QUEUE)),
    session: Session = Depends(get_session),
) -> QueueItemListResponse:
    set_org_context(session, auth.org_id)
    settings = get_settings()
    try:
        items, total = list_queue_items(
            session,
            org_id=auth.org_id,
            status=status_filter,
            priority=priority,
            limit=limit,
            offset=offset,
            sort=sort,
            order=order,
        )
    except ValueError as exc:
        raise _unprocessable(exc) from exc
    return QueueItemListResponse(
        org_id=auth.org_id,
        total=total,
        limit=min(limit or settings.queue_list_default_limit, settings.queue_list_max_limit),
        offset=offset,
        items=[queue_item_response(item) for item in items],
    )


@router.post("", response_model=QueueItemResponse, status_code=201)
def create_queue_endpoint(
    payload: QueueItemCreateRequest,
    auth: AuthContext = Depends(require_capability(CAP_CREATE_JOB)),
    session: Session = Depends(get_session),
) -> QueueItemResponse:
    set_org_context(session, auth.org_id)
    try:
        item = create_queue_item(
            session,
            org_id=auth.org_id,
            created_by=auth.user_id,
            topic=payload.topic,
            keywords=payload.keywords,
            target_audience=payload.target_audience,
            tone=payload.tone,
            word_count=payload.word_count,
            quality_level=payload.quality_level,
            template_type=payload.template_type,
            custom_instructions=payload.custom_instructions,
            priority=payload.priority,
            metadata=payload.metadata,
        )
    except ValueError as exc:
        raise _unprocessable(exc) from exc
    return queue_item_response(item)


@router.get("/stats", response_model=QueueStatsResponse)
def queue_stats_endpoint(
    auth: AuthContext = Depends(require_capability(CAP_VIEW_STATS)),
    session: Session = Depends(get_session),
) -> QueueStatsResponse:
    set_org_context(session, auth.org_id)
    stats = queue_stats(session, org_id=auth.org_id)
    return QueueStatsResponse(
        org_id=stats.org_id,
        total=stats.total,
        by_status=stats.by_status,
        recent_24h=stats.recent_24h,
        average_generation_minutes=stats.average_generation_minutes,
    )


@router.get("/{queue_id}", response_model=QueueItemDetailResponse)
def get_queue_endpoint(
    queue_id: str,
    auth: AuthContext = Depends(require_capability(CAP_VIEW_QUEUE)),
    session: Session = Depends(get_session),
) -> QueueItemDetailResponse:
    set_org_context(session, auth.org_id)
    detail = get_queue_item_detail(session, org_id=auth.org_id, queue_id=queue_id)
    return QueueItemDetailResponse(
        **_item_fields(detail.item),
        approvals=[approval_item(approval) for approval in detail.approvals],
        publishing=[publishing_record_item(record) for record in detail.publishing_records],
        publishing_status=detail.aggregate_publishing_status,
    )


@router.patch("/{queue_id}", response_model=QueueItemResponse)
def update_queue_endpoint(
    queue_id: str,
    payload: QueueItemUpdateRequest,
    auth: AuthContext = Depends(require_auth_context),
    session: Session = Depends(get_session),
) -> QueueItemResponse:
    set_org_context(session, auth.org_id)
    try:
        item = update_queue_item(
            session,
            org_id=auth.org_id,
            queue_id=queue_id,
            actor_id=auth.user_id,
            actor_role=auth.role,
            changes=payload.model_dump(exclude_unset=True, exclude_none=True),
        )
    except ValueError as exc:
        raise _unprocessable(exc) from exc
    return queue_item_response(item)


@router.delete("/{queue_id}", response_model=QueueDeleteResponse)
def delete_queue_endpoint(
    queue_id: str,
    auth: AuthContext = Depends(require_auth_context),
    session: Session = Depends(get_session),
) -> QueueDeleteResponse:
    set_org_context(session, auth.org_id)
    outcome = delete_queue_item(
        session,
        org_id=auth.org_id,
        queue_id=queue_id,
        actor_id=auth.user_id,
        actor_role=auth.role,
    )
    return QueueDeleteResponse(
        queue_id=outcome.queue_id,
        action=outcome.action,
        previous_status=outcome.previous_status,
    )


@router.post("/{queue_id}/retry", response_model=QueueItemResponse)
def retry_queue_endpoint(
    queue_id: str,
    auth: AuthContext = Depends(require_auth_context),
    session: Session = Depends(get_session),
) -> QueueItemResponse:
    set_org_context(session, auth.org_id)
    item = retry_queue_item(
        session,
        org_id=auth.org_id,
        queue_id=queue_id,
        actor_id=auth.user_id,
        actor_role=auth.role,
    )
    return queue_item_response(item)


@router.post("/{queue_id}/workflow", response_model=WorkflowRunResponse)
def run_workflow_endpoint(
    queue_id: str,
    payload: Optional[WorkflowRunRequest] = None,
    auth: AuthContext = Depends(require_auth_context),
    session: Session = Depends(get_session),
) -> WorkflowRunResponse:
    set_org_context(session, auth.org_id)
    request = payload or WorkflowRunRequest()
    item = get_queue_item(session, org_id=auth.org_id, queue_id=queue_id)
    ensure_can_edit(item, actor_id=auth.user_id, actor_role=auth.role)

    context = WorkflowContext(
        queue_id=queue_id,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        options=default_workflow_options(
            generate_images=request.generate_images,
            image_style=request.image_style,
            image_timeout_seconds=request.image_timeout_seconds,
            max_internal_links=request.max_internal_links,
            content_goal_prompt=request.content_goal_prompt,
        ),
    )
    result = WorkflowOrchestrator(session).run(context, from_phase=request.from_phase)
    return WorkflowRunResponse(
        queue_id=result.queue_id,
        outcome=result.outcome,
        phase=result.phase,
        item_status=result.item_status,
        phases=[
            WorkflowPhaseOutcome(phase=outcome.phase, outcome=outcome.outcome, detail=outcome.detail)
            for outcome in result.phases
        ],
        results=result.results,
        error=result.error,
    )


@router.get("/{queue_id}/workflow", response_model=WorkflowStateResponse)
def workflow_state_endpoint(
    queue_id: str,
    auth: AuthContext = Depends(require_capability(CAP_VIEW_QUEUE)),
    session: Session = Depends(get_session),
) -> WorkflowStateResponse:
    set_org_context(session, auth.org_id)
    return WorkflowStateResponse(**get_workflow_state(session, org_id=auth.org_id, queue_id=queue_id))


@router.get("/{queue_id}/progress", response_model=ProgressResponse)
def progress_endpoint(
    queue_id: str,
    include_timeline: bool = False,
    auth: AuthContext = Depends(require_capability(CAP_VIEW_QUEUE)),
    session: Session = Depends(get_session),
) -> ProgressResponse:
    set_org_context(session, auth.org_id)
    item = get_queue_item(session, org_id=auth.org_id, queue_id=queue_id)
    updates = load_progress_updates(item)
    timeline = None
    if include_timeline:
        timeline = build_timeline(updates, item.current_stage, stages=WORKFLOW_PHASES)
    return ProgressResponse(
        queue_id=item.id,
        status=item.status,
        current_stage=item.current_stage,
        progress_percentage=item.progress_percentage,
        updates=updates,
        timeline=timeline,
    )


def _sse(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, separators=(',', ':'), default=str)}\n\n"


def stream_progress_events(
    subscription: Subscription,
    *,
    queue_id: str,
    initial_status: str,
    progress_percentage: int,
    timeout_seconds: float,
    keepalive_seconds: float,
) -> Iterator[str]:
    """Server-sent events: connected, replayed and live progress, status updates, then complete or timeout."""

    try:
        yield _sse(
            "connected",
            {"queue_id": queue_id, "status": initial_status, "progress_percentage": progress_percentage},
        )
        for message in subscription.replay:
            yield _sse("progress", message.payload)
        if is_complete_status(initial_status):
            yield _sse("complete", {"queue_id": queue_id, "status": initial_status})
            return

        deadline = time.monotonic() + timeout_seconds
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                yield _sse("timeout", {"queue_id": queue_id})
                return
            message = subscription.get(timeout=min(keepalive_seconds, remaining))
            if message is None:
                if subscription.closed:
                    return
                yield ": keepalive\n\n"
                continue
            if message.kind == MESSAGE_KIND_PROGRESS:
                yield _sse("progress", message.payload)
                continue
            yield _sse("status_update", {"queue_id": queue_id, **message.payload})
            if is_complete_status(message.payload.get("status")):
                yield _sse("complete", {"queue_id": queue_id, "status": message.payload.get("status")})
                return
    finally:
        subscription.close()
        logger.info("progress_stream_closed", queue_id=queue_id, dropped=subscription.dropped)


@router.get("/{queue_id}/status")
def progress_stream_endpoint(
    queue_id: str,
    auth: AuthContext = Depends(require_capability(CAP_VIEW_QUEUE)),
    session: Session = Depends(get_session),
) -> StreamingResponse:
    set_org_context(session, auth.org_id)
    subscription = ProgressReporter(session, org_id=auth.org_id).subscribe(queue_id)
    item = get_queue_item(session, org_id=auth.org_id, queue_id=queue_id)
    settings = get_settings()
    return StreamingResponse(
        stream_progress_events(
            subscription,
            queue_id=queue_id,
            initial_status=item.status,
            progress_percentage=item.progress_percentage,
            timeout_seconds=float(settings.progress_stream_timeout_seconds),
            keepalive_seconds=settings.progress_stream_poll_seconds,
        ),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
