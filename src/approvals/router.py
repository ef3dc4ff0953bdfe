"""Approval API routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from src.approvals.service import decide_approval, get_approval, list_approvals, request_approval
from src.auth.capabilities import CAP_APPROVE_CONTENT, CAP_VIEW_QUEUE
from src.auth.dependencies import require_auth_context, require_capability
from src.auth.jwt import AuthContext
from src.queue.service import ensure_can_edit, get_queue_item
from src.schemas.approvals import ApprovalCreateRequest, ApprovalDecisionRequest, ApprovalItem, ApprovalListResponse
from src.storage.db import get_session
from src.storage.models import ApprovalRequest
from src.storage.tenant import set_org_context


router = APIRouter(prefix="/blog-approvals", tags=["approvals"])


def approval_item(approval: ApprovalRequest) -> ApprovalItem:
    return ApprovalItem(
        id=approval.id,
        org_id=approval.org_id,
        queue_id=approval.queue_id,
        requested_by=approval.requested_by,
        reviewed_by=approval.reviewed_by,
        status=approval.status,
        notes=approval.notes,
        rejection_reason=approval.rejection_reason,
        revision_number=approval.revision_number,
        previous_approval_id=approval.previous_approval_id,
        requested_at=approval.requested_at,
        reviewed_at=approval.reviewed_at,
    )


@router.get("", response_model=ApprovalListResponse)
def list_approvals_endpoint(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    queue_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(require_capability(CAP_VIEW_QUEUE)),
    session: Session = Depends(get_session),
) -> ApprovalListResponse:
    set_org_context(session, auth.org_id)
    try:
        approvals, total = list_approvals(
            session,
            org_id=auth.org_id,
            status=status_filter,
            queue_id=queue_id,
            limit=limit,
            offset=offset,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return ApprovalListResponse(
        org_id=auth.org_id,
        total=total,
        items=[approval_item(approval) for approval in approvals],
    )


@router.post("", response_model=ApprovalItem, status_code=201)
def request_approval_endpoint(
    payload: ApprovalCreateRequest,
    auth: AuthContext = Depends(require_auth_context),
    session: Session = Depends(get_session),
) -> ApprovalItem:
    set_org_context(session, auth.org_id)
    item = get_queue_item(session, org_id=auth.org_id, queue_id=payload.queue_id)
    ensure_can_edit(item, actor_id=auth.user_id, actor_role=auth.role)
    approval = request_approval(
        session,
        org_id=auth.org_id,
        queue_id=payload.queue_id,
        requested_by=auth.user_id,
        notes=payload.notes,
    )
    return approval_item(approval)


@router.get("/{approval_id}", response_model=ApprovalItem)
def get_approval_endpoint(
    approval_id: str,
    auth: AuthContext = Depends(require_capability(CAP_VIEW_QUEUE)),
    session: Session = Depends(get_session),
) -> ApprovalItem:
    set_org_context(session, auth.org_id)
    return approval_item(get_approval(session, org_id=auth.org_id, approval_id=approval_id))


@router.patch("/{approval_id}", response_model=ApprovalItem)
def decide_approval_endpoint(
    approval_id: str,
    payload: ApprovalDecisionRequest,
    auth: AuthContext = Depends(require_capability(CAP_APPROVE_CONTENT)),
    session: Session = Depends(get_session),
) -> ApprovalItem:
    set_org_context(session, auth.org_id)
    try:
        approval = decide_approval(
            session,
            org_id=auth.org_id,
            approval_id=approval_id,
            actor_id=auth.user_id,
            actor_role=auth.role,
            decision=payload.decision,
            notes=payload.notes,
            rejection_reason=payload.rejection_reason,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return approval_item(approval)
