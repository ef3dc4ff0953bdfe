import pytest
from sqlalchemy import select

from src.approvals.service import request_approval
from src.core.errors import Forbidden, InvalidTransition, NotFound
from src.queue.lifecycle import delete_queue_item, retry_queue_item
from src.queue.service import create_queue_item, get_queue_item, transition_status
from src.queue.states import QUEUE_STATUSES
from src.storage.models import ApprovalRequest, QueueItem, WorkflowPhaseState


def _failed_item(session, org, *, created_by=None):
    item = create_queue_item(session, org_id=org.org_id, created_by=created_by or org.member_id, topic="Failing topic")
    transition_status(session, item, "generating", fields={"progress_percentage": 35, "current_stage": "phase_1_content"})
    return transition_status(session, item, "failed", fields={"generation_error": "content service down"})


def _force_status(session, item, status):
    item.status = status
    session.commit()
    return item


def test_retry_resets_failed_item(session, org) -> None:
    item = _failed_item(session, org)
    session.add(WorkflowPhaseState(org_id=org.org_id, queue_id=item.id, phase="failed", last_error="boom"))
    session.commit()
    assert item.generation_started_at is not None

    retried = retry_queue_item(
        session,
        org_id=org.org_id,
        queue_id=item.id,
        actor_id=org.member_id,
        actor_role="member",
    )

    assert retried.status == "queued"
    assert retried.progress_percentage == 0
    assert retried.generation_error is None
    assert retried.generation_started_at is None
    assert retried.generation_completed_at is None
    assert retried.current_stage is None
    state = session.scalar(select(WorkflowPhaseState).where(WorkflowPhaseState.queue_id == item.id))
    session.refresh(state)
    assert state.phase == "phase_1_content"
    assert state.last_error is None


@pytest.mark.parametrize("status", [status for status in QUEUE_STATUSES if status != "failed"])
def test_retry_only_accepts_failed_items(session, org, status) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Not failed")
    _force_status(session, item, status)

    with pytest.raises(InvalidTransition):
        retry_queue_item(session, org_id=org.org_id, queue_id=item.id, actor_id=org.owner_id, actor_role="owner")

    session.refresh(item)
    assert item.status == status


def test_retry_requires_ownership(session, org) -> None:
    item = _failed_item(session, org)

    with pytest.raises(Forbidden):
        retry_queue_item(
            session,
            org_id=org.org_id,
            queue_id=item.id,
            actor_id=org.other_member_id,
            actor_role="member",
        )
    retried = retry_queue_item(session, org_id=org.org_id, queue_id=item.id, actor_id=org.editor_id, actor_role="editor")
    assert retried.status == "queued"


@pytest.mark.parametrize("role", ["owner", "editor", "member"])
def test_published_items_cannot_be_deleted(session, org, role) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Published")
    _force_status(session, item, "published")
    actor_id = {"owner": org.owner_id, "editor": org.editor_id, "member": org.member_id}[role]

    with pytest.raises(Forbidden):
        delete_queue_item(session, org_id=org.org_id, queue_id=item.id, actor_id=actor_id, actor_role=role)

    assert get_queue_item(session, org_id=org.org_id, queue_id=item.id).status == "published"


@pytest.mark.parametrize("status", ["failed", "cancelled"])
def test_failed_or_cancelled_items_are_removed(session, org, status) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Removable")
    _force_status(session, item, status)
    session.add(WorkflowPhaseState(org_id=org.org_id, queue_id=item.id, phase="failed"))
    session.commit()
    queue_id = item.id

    outcome = delete_queue_item(session, org_id=org.org_id, queue_id=queue_id, actor_id=org.member_id, actor_role="member")

    assert outcome.action == "deleted"
    assert outcome.previous_status == status
    with pytest.raises(NotFound):
        get_queue_item(session, org_id=org.org_id, queue_id=queue_id)
    assert session.scalar(select(WorkflowPhaseState).where(WorkflowPhaseState.queue_id == queue_id)) is None


def test_hard_delete_keeps_approval_history(session, org) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Reviewed then failed")
    transition_status(session, item, "generating")
    transition_status(session, item, "generated", fields={"generated_title": "T", "generated_content": "<p>C</p>"})
    approval = request_approval(session, org_id=org.org_id, queue_id=item.id, requested_by=org.member_id)
    transition_status(session, item, "failed")

    delete_queue_item(session, org_id=org.org_id, queue_id=item.id, actor_id=org.member_id, actor_role="member")

    kept = session.scalar(select(ApprovalRequest).where(ApprovalRequest.id == approval.id))
    session.refresh(kept)
    assert kept.queue_id is None


@pytest.mark.parametrize(
    "status",
    ["queued", "generating", "generated", "in_review", "approved", "rejected", "scheduled", "publishing"],
)
def test_other_statuses_are_cancelled_not_removed(session, org, status) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Cancellable")
    _force_status(session, item, status)

    outcome = delete_queue_item(session, org_id=org.org_id, queue_id=item.id, actor_id=org.member_id, actor_role="member")

    assert outcome.action == "cancelled"
    assert outcome.previous_status == status
    row = session.scalar(select(QueueItem).where(QueueItem.id == item.id))
    session.refresh(row)
    assert row.status == "cancelled"


def test_cancel_then_delete_removes_item(session, org) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Twice")

    first = delete_queue_item(session, org_id=org.org_id, queue_id=item.id, actor_id=org.member_id, actor_role="member")
    second = delete_queue_item(session, org_id=org.org_id, queue_id=item.id, actor_id=org.member_id, actor_role="member")

    assert first.action == "cancelled"
    assert second.action == "deleted"
    assert second.previous_status == "cancelled"


def test_delete_requires_ownership(session, org) -> None:
    item = create_queue_item(session, org_id=org.org_id, created_by=org.member_id, topic="Not yours")

    with pytest.raises(Forbidden):
        delete_queue_item(
            session,
            org_id=org.org_id,
            queue_id=item.id,
            actor_id=org.other_member_id,
            actor_role="member",
        )
    assert get_queue_item(session, org_id=org.org_id, queue_id=item.id).status == "queued"
