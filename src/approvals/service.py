"""Approval subworkflow: the review gate between generation and publishing."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
import uuid

from sqlalchemy import desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.auth.capabilities import CAP_APPROVE_CONTENT, has_capability
from src.core.errors import ConflictingApproval, Forbidden, InvalidTransition, NotFound, PersistenceFailure
from src.core.logger import get_logger
from src.queue.service import get_queue_item, transition_status
from src.queue.states import (
    QUEUE_STATUS_APPROVED,
    QUEUE_STATUS_GENERATED,
    QUEUE_STATUS_IN_REVIEW,
    QUEUE_STATUS_REJECTED,
    normalize_status,
)
from src.storage.models import ApprovalRequest


logger = get_logger("content_queue.approvals")

APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"
APPROVAL_CHANGES_REQUESTED = "changes_requested"
APPROVAL_STATUSES = (APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED, APPROVAL_CHANGES_REQUESTED)

DECISION_TARGET_STATUS = {
    APPROVAL_APPROVED: QUEUE_STATUS_APPROVED,
    APPROVAL_REJECTED: QUEUE_STATUS_REJECTED,
    APPROVAL_CHANGES_REQUESTED: QUEUE_STATUS_REJECTED,
}


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _pending_for_queue(session: Session, *, org_id: str, queue_id: str) -> Optional[ApprovalRequest]:
    return session.scalar(
        select(ApprovalRequest).where(
            ApprovalRequest.org_id == org_id,
            ApprovalRequest.queue_id == queue_id,
            ApprovalRequest.status == APPROVAL_PENDING,
        )
    )


def request_approval(
    session: Session,
    *,
    org_id: str,
    queue_id: str,
    requested_by: str,
    notes: Optional[str] = None,
) -> ApprovalRequest:
    item = get_queue_item(session, org_id=org_id, queue_id=queue_id)

    existing = _pending_for_queue(session, org_id=org_id, queue_id=queue_id)
    if existing is not None:
        raise ConflictingApproval(
            "A pending approval already exists for this queue item",
            queue_id=queue_id,
            approval_id=existing.id,
        )

    current = normalize_status(item.status)
    if current != QUEUE_STATUS_GENERATED:
        raise InvalidTransition(
            current,
            QUEUE_STATUS_IN_REVIEW,
            message=f"Approval can only be requested for generated items (current status: {current})",
        )

    previous = session.scalar(
        select(ApprovalRequest)
        .where(ApprovalRequest.org_id == org_id, ApprovalRequest.queue_id == queue_id)
        .order_by(desc(ApprovalRequest.revision_number))
        .limit(1)
    )

    approval = ApprovalRequest(
        id=str(uuid.uuid4()),
        org_id=org_id,
        queue_id=queue_id,
        requested_by=requested_by,
        status=APPROVAL_PENDING,
        notes=notes,
        revision_number=(previous.revision_number + 1) if previous is not None else 1,
        previous_approval_id=previous.id if previous is not None else None,
        requested_at=_now_utc(),
    )
    # The approval row rides along with the status change in one commit.
    session.add(approval)
    transition_status(session, item, QUEUE_STATUS_IN_REVIEW)
    session.refresh(approval)

    logger.info(
        "approval_requested",
        approval_id=approval.id,
        queue_id=queue_id,
        revision_number=approval.revision_number,
    )
    return approval


def get_approval(session: Session, *, org_id: str, approval_id: str) -> ApprovalRequest:
    approval = session.scalar(
        select(ApprovalRequest).where(ApprovalRequest.id == approval_id, ApprovalRequest.org_id == org_id)
    )
    if approval is None:
        raise NotFound("Approval not found", approval_id=approval_id)
    return approval


def decide_approval(
    session: Session,
    *,
    org_id: str,
    approval_id: str,
    actor_id: str,
    actor_role: str,
    decision: str,
    notes: Optional[str] = None,
    rejection_reason: Optional[str] = None,
) -> ApprovalRequest:
    if not has_capability(actor_role, CAP_APPROVE_CONTENT):
        raise Forbidden("Missing capability: approve_content", approval_id=approval_id)

    normalized_decision = normalize_status(decision)
    if normalized_decision not in DECISION_TARGET_STATUS:
        raise ValueError(f"Unsupported approval decision: {decision}")

    approval = get_approval(session, org_id=org_id, approval_id=approval_id)
    if approval.requested_by and approval.requested_by == actor_id:
        raise Forbidden("Requesters cannot decide their own approval", approval_id=approval_id)
    if approval.status != APPROVAL_PENDING:
        raise InvalidTransition(
            approval.status,
            normalized_decision,
            message=f"Approval is already {approval.status}",
        )
    if approval.queue_id is None:
        raise NotFound("Queue item for approval no longer exists", approval_id=approval_id)

    item = get_queue_item(session, org_id=org_id, queue_id=approval.queue_id)
    approval.status = normalized_decision
    approval.reviewed_by = actor_id
    approval.reviewed_at = _now_utc()
    if notes is not None:
        approval.notes = notes
    if normalized_decision == APPROVAL_REJECTED:
        approval.rejection_reason = rejection_reason or notes
    try:
        transition_status(session, item, DECISION_TARGET_STATUS[normalized_decision])
    except InvalidTransition:
        session.rollback()
        raise
    except SQLAlchemyError as exc:  # pragma: no cover
        session.rollback()
        raise PersistenceFailure("Failed to record approval decision", approval_id=approval_id) from exc
    session.refresh(approval)

    logger.info(
        "approval_decided",
        approval_id=approval.id,
        queue_id=item.id,
        decision=normalized_decision,
        reviewed_by=actor_id,
    )
    return approval


def list_approvals(
    session: Session,
    *,
    org_id: str,
    status: Optional[str] = None,
    queue_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[List[ApprovalRequest], int]:
    filters = [ApprovalRequest.org_id == org_id]
    if status:
        normalized = normalize_status(status)
        if normalized not in APPROVAL_STATUSES:
            raise ValueError(f"Unknown approval status: {status}")
        filters.append(ApprovalRequest.status == normalized)
    if queue_id:
        filters.append(ApprovalRequest.queue_id == queue_id)

    total = session.scalar(select(func.count()).select_from(ApprovalRequest).where(*filters)) or 0
    statement = (
        select(ApprovalRequest)
        .where(*filters)
        .order_by(desc(ApprovalRequest.requested_at), desc(ApprovalRequest.id))
        .offset(max(0, offset))
        .limit(max(1, min(limit, 200)))
    )
    return list(session.scalars(statement).all()), int(total)
