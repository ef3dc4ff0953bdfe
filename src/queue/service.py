"""Queue item store: creation, reads, field updates and guarded status changes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import json
from typing import Any, Dict, List, Mapping, Optional, Sequence
import uuid

from sqlalchemy import asc, desc, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.auth.capabilities import CAP_EDIT_OWN_JOB, CAP_MANAGE_QUEUE, has_capability
from src.core.config import get_settings
from src.core.errors import Forbidden, InvalidTransition, NotFound, PersistenceFailure
from src.core.logger import get_logger
from src.core.metrics import record_queue_item_created, record_queue_transition
from src.progress.channel import publish_status_change
from src.progress.reporter import clamp_progress
from src.queue.drafts import materialize_draft
from src.queue.states import (
    QUEUE_STATUS_GENERATED,
    QUEUE_STATUS_GENERATING,
    QUEUE_STATUS_QUEUED,
    QUEUE_STATUSES,
    aggregate_publishing_status,
    ensure_transition,
    normalize_status,
)
from src.storage.models import ApprovalRequest, PublishingRecord, QueueItem


logger = get_logger("content_queue.queue")

SORTABLE_COLUMNS = {
    "created_at": QueueItem.created_at,
    "queued_at": QueueItem.queued_at,
    "updated_at": QueueItem.updated_at,
    "priority": QueueItem.priority,
    "status": QueueItem.status,
}

EDITABLE_FIELDS = (
    "topic",
    "keywords",
    "target_audience",
    "tone",
    "word_count",
    "quality_level",
    "template_type",
    "custom_instructions",
    "priority",
    "generated_title",
    "generated_content",
    "generation_error",
    "current_stage",
    "progress_percentage",
)


@dataclass(frozen=True)
class QueueItemDetail:
    item: QueueItem
    approvals: List[ApprovalRequest]
    publishing_records: List[PublishingRecord]
    aggregate_publishing_status: Optional[str]


@dataclass(frozen=True)
class QueueStats:
    org_id: str
    total: int
    by_status: Dict[str, int] = field(default_factory=dict)
    recent_24h: int = 0
    average_generation_minutes: Optional[float] = None


def _json_dumps(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, sort_keys=True)


def _json_loads(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return default
    return parsed if isinstance(parsed, type(default)) else default


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _clean_keywords(keywords: Optional[Sequence[str]]) -> List[str]:
    cleaned: List[str] = []
    for keyword in keywords or ():
        value = str(keyword).strip()
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned


def item_keywords(item: QueueItem) -> List[str]:
    return _json_loads(item.keywords_json, [])


def item_metadata(item: QueueItem) -> Dict[str, Any]:
    return _json_loads(item.metadata_json, {})


def item_generation_metadata(item: QueueItem) -> Dict[str, Any]:
    return _json_loads(item.generation_metadata_json, {})


def ensure_can_edit(item: QueueItem, *, actor_id: str, actor_role: str) -> None:
    """Creators holding ``edit_own_job`` or any ``manage_queue`` holder."""

    if has_capability(actor_role, CAP_MANAGE_QUEUE):
        return
    if item.created_by == actor_id and has_capability(actor_role, CAP_EDIT_OWN_JOB):
        return
    raise Forbidden("Not allowed to modify this queue item", queue_id=item.id)


def create_queue_item(
    session: Session,
    *,
    org_id: str,
    created_by: Optional[str],
    topic: str,
    keywords: Optional[Sequence[str]] = None,
    target_audience: Optional[str] = None,
    tone: str = "professional",
    word_count: int = 1500,
    quality_level: str = "high",
    template_type: Optional[str] = None,
    custom_instructions: Optional[str] = None,
    priority: Optional[int] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> QueueItem:
    cleaned_topic = (topic or "").strip()
    if not cleaned_topic:
        raise ValueError("topic is required")

    resolved_priority = get_settings().queue_default_priority if priority is None else int(priority)
    if resolved_priority < 1 or resolved_priority > 10:
        raise ValueError("priority must be between 1 and 10")

    item = QueueItem(
        id=str(uuid.uuid4()),
        org_id=org_id,
        created_by=created_by,
        topic=cleaned_topic,
        keywords_json=_json_dumps(_clean_keywords(keywords)),
        target_audience=target_audience,
        tone=tone,
        word_count=word_count,
        quality_level=quality_level,
        template_type=template_type,
        custom_instructions=custom_instructions,
        priority=resolved_priority,
        status="queued",
        progress_percentage=0,
        progress_updates_json="[]",
        generation_metadata_json="{}",
        metadata_json=_json_dumps(dict(metadata or {})),
    )
    session.add(item)
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceFailure("Failed to create queue item") from exc
    session.refresh(item)

    record_queue_item_created(org_id=org_id)
    logger.info("queue_item_created", queue_id=item.id, org_id=org_id, priority=item.priority)
    return item


def get_queue_item(session: Session, *, org_id: str, queue_id: str) -> QueueItem:
    item = session.scalar(select(QueueItem).where(QueueItem.id == queue_id, QueueItem.org_id == org_id))
    if item is None:
        raise NotFound("Queue item not found", queue_id=queue_id)
    return item


def list_queue_items(
    session: Session,
    *,
    org_id: str,
    status: Optional[str] = None,
    priority: Optional[int] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    sort: str = "created_at",
    order: str = "desc",
) -> tuple[List[QueueItem], int]:
    settings = get_settings()
    safe_limit = max(1, min(limit or settings.queue_list_default_limit, settings.queue_list_max_limit))
    safe_offset = max(0, offset)

    filters = [QueueItem.org_id == org_id]
    if status:
        normalized = normalize_status(status)
        if normalized not in QUEUE_STATUSES:
            raise ValueError(f"Unknown status filter: {status}")
        filters.append(QueueItem.status == normalized)
    if priority is not None:
        filters.append(QueueItem.priority == priority)

    sort_column = SORTABLE_COLUMNS.get(sort)
    if sort_column is None:
        raise ValueError(f"Unsupported sort column: {sort}")
    direction = asc if order.lower() == "asc" else desc

    total = session.scalar(select(func.count()).select_from(QueueItem).where(*filters)) or 0
    statement = (
        select(QueueItem)
        .where(*filters)
        .order_by(direction(sort_column), direction(QueueItem.id))
        .offset(safe_offset)
        .limit(safe_limit)
    )
    return list(session.scalars(statement).all()), int(total)


def get_queue_item_detail(session: Session, *, org_id: str, queue_id: str) -> QueueItemDetail:
    item = get_queue_item(session, org_id=org_id, queue_id=queue_id)
    approvals = list(
        session.scalars(
            select(ApprovalRequest)
            .where(ApprovalRequest.org_id == org_id, ApprovalRequest.queue_id == queue_id)
            .order_by(ApprovalRequest.revision_number)
        ).all()
    )
    records = list(
        session.scalars(
            select(PublishingRecord)
            .where(PublishingRecord.org_id == org_id, PublishingRecord.queue_id == queue_id)
            .order_by(PublishingRecord.platform)
        ).all()
    )
    return QueueItemDetail(
        item=item,
        approvals=approvals,
        publishing_records=records,
        aggregate_publishing_status=aggregate_publishing_status(record.status for record in records),
    )


def transition_status(
    session: Session,
    item: QueueItem,
    requested_status: str,
    *,
    fields: Optional[Mapping[str, Any]] = None,
) -> QueueItem:
    """Compare-and-set status change along the state machine.

    A same-status request is a no-op. Entering ``generating`` and
    ``generated`` stamps the matching generation timestamp only when unset;
    entering ``generated`` then materializes the draft post.
    """

    current = normalize_status(item.status)
    requested = normalize_status(requested_status)
    if requested == current:
        return item
    ensure_transition(current, requested)

    now = _now_utc()
    values: Dict[str, Any] = dict(fields or {})
    values["status"] = requested
    values["updated_at"] = now
    if requested == QUEUE_STATUS_GENERATING:
        values["generation_started_at"] = func.coalesce(QueueItem.generation_started_at, now)
    elif requested == QUEUE_STATUS_GENERATED:
        values["generation_completed_at"] = func.coalesce(QueueItem.generation_completed_at, now)

    try:
        result = session.execute(
            update(QueueItem)
            .where(QueueItem.id == item.id, QueueItem.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.rollback()
            observed = session.scalar(select(QueueItem.status).where(QueueItem.id == item.id))
            if observed is None:
                raise NotFound("Queue item not found", queue_id=item.id)
            session.refresh(item)
            raise InvalidTransition(
                observed,
                requested,
                message=f"Queue item status changed concurrently: expected {current}, found {observed}",
            )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceFailure("Failed to update queue item status", queue_id=item.id) from exc

    session.refresh(item)
    record_queue_transition(from_status=current, to_status=requested)
    logger.info("queue_status_changed", queue_id=item.id, from_status=current, to_status=requested)
    publish_status_change(
        queue_id=item.id,
        from_status=current,
        to_status=requested,
        progress_percentage=item.progress_percentage,
    )

    if requested == QUEUE_STATUS_GENERATED:
        materialize_draft(session, item)
    return item


def _coerce_field(name: str, value: Any) -> Any:
    if name == "keywords":
        return _json_dumps(_clean_keywords(value))
    if name == "progress_percentage":
        return clamp_progress(value)
    if name == "priority":
        priority = int(value)
        if priority < 1 or priority > 10:
            raise ValueError("priority must be between 1 and 10")
        return priority
    return value


def update_queue_item(
    session: Session,
    *,
    org_id: str,
    queue_id: str,
    actor_id: str,
    actor_role: str,
    changes: Mapping[str, Any],
) -> QueueItem:
    item = get_queue_item(session, org_id=org_id, queue_id=queue_id)
    ensure_can_edit(item, actor_id=actor_id, actor_role=actor_role)

    column_values: Dict[str, Any] = {}
    for name in EDITABLE_FIELDS:
        if name in changes:
            column_name = "keywords_json" if name == "keywords" else name
            column_values[column_name] = _coerce_field(name, changes[name])
    if changes.get("metadata") is not None:
        merged = item_metadata(item)
        merged.update(dict(changes["metadata"]))
        column_values["metadata_json"] = _json_dumps(merged)

    requested_status = changes.get("status")
    if requested_status and normalize_status(requested_status) != normalize_status(item.status):
        if normalize_status(requested_status) == QUEUE_STATUS_QUEUED:
            current = normalize_status(item.status)
            raise InvalidTransition(
                current,
                QUEUE_STATUS_QUEUED,
                message=f"Jobs are re-queued only through retry (current status: {current})",
            )
        return transition_status(session, item, requested_status, fields=column_values)

    if not column_values:
        return item
    for column_name, value in column_values.items():
        setattr(item, column_name, value)
    item.updated_at = _now_utc()
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceFailure("Failed to update queue item", queue_id=queue_id) from exc
    session.refresh(item)
    logger.info("queue_item_updated", queue_id=item.id, fields=sorted(column_values))
    return item


def merge_generation_metadata(session: Session, item: QueueItem, entries: Mapping[str, Any]) -> QueueItem:
    merged = item_generation_metadata(item)
    merged.update(dict(entries))
    item.generation_metadata_json = _json_dumps(merged)
    item.updated_at = _now_utc()
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceFailure("Failed to store generation metadata", queue_id=item.id) from exc
    return item


def queue_stats(session: Session, *, org_id: str) -> QueueStats:
    counts = session.execute(
        select(QueueItem.status, func.count()).where(QueueItem.org_id == org_id).group_by(QueueItem.status)
    ).all()
    by_status = {status: 0 for status in QUEUE_STATUSES}
    for status, count in counts:
        by_status[status] = int(count)

    cutoff = _now_utc() - timedelta(hours=24)
    rows = session.execute(
        select(QueueItem.created_at, QueueItem.generation_started_at, QueueItem.generation_completed_at).where(
            QueueItem.org_id == org_id
        )
    ).all()
    recent = 0
    durations: List[float] = []
    for created_at, started_at, completed_at in rows:
        created = _as_utc(created_at)
        if created is not None and created >= cutoff:
            recent += 1
        started = _as_utc(started_at)
        completed = _as_utc(completed_at)
        if started is not None and completed is not None and completed >= started:
            durations.append((completed - started).total_seconds() / 60.0)

    average = round(sum(durations) / len(durations), 2) if durations else None
    return QueueStats(
        org_id=org_id,
        total=sum(by_status.values()),
        by_status=by_status,
        recent_24h=recent,
        average_generation_minutes=average,
    )
