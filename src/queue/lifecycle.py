"""Retry and cancel/delete controller for queue items."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.errors import Forbidden, InvalidTransition, NotFound, PersistenceFailure
from src.core.logger import get_logger
from src.core.metrics import record_queue_transition
from src.progress.channel import publish_status_change
from src.queue.service import ensure_can_edit, get_queue_item, transition_status
from src.queue.states import (
    QUEUE_STATUS_CANCELLED,
    QUEUE_STATUS_FAILED,
    QUEUE_STATUS_PUBLISHED,
    QUEUE_STATUS_QUEUED,
    can_retry,
    normalize_status,
)
from src.storage.models import ApprovalRequest, PublishingRecord, QueueItem, WorkflowPhaseState


logger = get_logger("content_queue.lifecycle")

HARD_DELETE_STATUSES = frozenset({QUEUE_STATUS_FAILED, QUEUE_STATUS_CANCELLED})


@dataclass(frozen=True)
class DeleteOutcome:
    queue_id: str
    action: str
    previous_status: str


def retry_queue_item(
    session: Session,
    *,
    org_id: str,
    queue_id: str,
    actor_id: str,
    actor_role: str,
) -> QueueItem:
    """Re-queue a failed item with progress, error and timestamps cleared."""

    item = get_queue_item(session, org_id=org_id, queue_id=queue_id)
    ensure_can_edit(item, actor_id=actor_id, actor_role=actor_role)
    current = normalize_status(item.status)
    if not can_retry(current):
        raise InvalidTransition(
            current,
            QUEUE_STATUS_QUEUED,
            message=f"Only failed jobs can be retried (current status: {current})",
        )

    now = datetime.now(timezone.utc)
    try:
        result = session.execute(
            update(QueueItem)
            .where(QueueItem.id == queue_id, QueueItem.status == QUEUE_STATUS_FAILED)
            .values(
                status=QUEUE_STATUS_QUEUED,
                progress_percentage=0,
                current_stage=None,
                generation_error=None,
                generation_started_at=None,
                generation_completed_at=None,
                generation_metadata_json="{}",
                queued_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.rollback()
            session.refresh(item)
            raise InvalidTransition(
                normalize_status(item.status),
                QUEUE_STATUS_QUEUED,
                message=f"Only failed jobs can be retried (current status: {item.status})",
            )
        session.execute(
            update(WorkflowPhaseState)
            .where(WorkflowPhaseState.queue_id == queue_id)
            .values(
                phase="phase_1_content",
                resumable=True,
                content_result_json=None,
                images_result_json=None,
                enhancement_result_json=None,
                interlinking_result_json=None,
                publishing_preparation_result_json=None,
                last_error=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceFailure("Failed to retry queue item", queue_id=queue_id) from exc

    session.refresh(item)
    record_queue_transition(from_status=QUEUE_STATUS_FAILED, to_status=QUEUE_STATUS_QUEUED)
    publish_status_change(
        queue_id=queue_id,
        from_status=QUEUE_STATUS_FAILED,
        to_status=QUEUE_STATUS_QUEUED,
        progress_percentage=0,
    )
    logger.info("queue_item_retried", queue_id=queue_id, actor_id=actor_id)
    return item


def delete_queue_item(
    session: Session,
    *,
    org_id: str,
    queue_id: str,
    actor_id: str,
    actor_role: str,
) -> DeleteOutcome:
    """Published items are kept, failed/cancelled items are removed, anything else is cancelled.

    The branch depends only on the status at call time, so a queued item is
    cancelled and a later delete of that cancelled item removes it.
    """

    item = get_queue_item(session, org_id=org_id, queue_id=queue_id)
    current = normalize_status(item.status)
    if current == QUEUE_STATUS_PUBLISHED:
        raise Forbidden("Published items cannot be deleted", queue_id=queue_id)
    ensure_can_edit(item, actor_id=actor_id, actor_role=actor_role)

    if current not in HARD_DELETE_STATUSES:
        transition_status(session, item, QUEUE_STATUS_CANCELLED)
        logger.info("queue_item_cancelled", queue_id=queue_id, previous_status=current, actor_id=actor_id)
        return DeleteOutcome(queue_id=queue_id, action="cancelled", previous_status=current)

    try:
        # Approvals and publishing records stay for audit.
        session.execute(
            update(ApprovalRequest)
            .where(ApprovalRequest.queue_id == queue_id)
            .values(queue_id=None)
            .execution_options(synchronize_session=False)
        )
        session.execute(
            update(PublishingRecord)
            .where(PublishingRecord.queue_id == queue_id)
            .values(queue_id=None)
            .execution_options(synchronize_session=False)
        )
        session.execute(
            delete(WorkflowPhaseState)
            .where(WorkflowPhaseState.queue_id == queue_id)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(
            delete(QueueItem)
            .where(QueueItem.id == queue_id, QueueItem.status == current)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.rollback()
            observed = session.scalar(select(QueueItem.status).where(QueueItem.id == queue_id))
            if observed is None:
                raise NotFound("Queue item not found", queue_id=queue_id)
            raise InvalidTransition(
                observed,
                "deleted",
                message=f"Queue item status changed concurrently: expected {current}, found {observed}",
            )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceFailure("Failed to delete queue item", queue_id=queue_id) from exc

    session.expunge(item)
    logger.info("queue_item_deleted", queue_id=queue_id, previous_status=current, actor_id=actor_id)
    return DeleteOutcome(queue_id=queue_id, action="deleted", previous_status=current)
