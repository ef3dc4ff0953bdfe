"""Publishing fan-out: per-platform records and the item's aggregate status."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
from typing import Any, Callable, Dict, List, Optional, Sequence
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.auth.capabilities import CAP_PUBLISH_CONTENT, has_capability
from src.core.errors import Forbidden, InvalidTransition, NotFound, PersistenceFailure
from src.core.logger import get_logger
from src.core.metrics import record_publish_result
from src.core.observability import capture_exception
from src.publishing.platforms import (
    SUPPORTED_PLATFORMS,
    PlatformPost,
    PlatformPublishError,
    PlatformPublisher,
    get_platform_publisher,
)
from src.queue.service import get_queue_item, item_generation_metadata, transition_status
from src.queue.states import (
    PUBLISH_RECORD_FAILED,
    PUBLISH_RECORD_PUBLISHED,
    PUBLISH_RECORD_PUBLISHING,
    PUBLISH_RECORD_SCHEDULED,
    QUEUE_STATUS_APPROVED,
    QUEUE_STATUS_PUBLISHED,
    QUEUE_STATUS_PUBLISHING,
    QUEUE_STATUS_SCHEDULED,
    aggregate_publishing_status,
    normalize_status,
)
from src.storage.models import PublishingRecord, QueueItem


logger = get_logger("content_queue.publishing")

PublisherFactory = Callable[[str], PlatformPublisher]

PUBLISHING_PATH = (
    QUEUE_STATUS_APPROVED,
    QUEUE_STATUS_SCHEDULED,
    QUEUE_STATUS_PUBLISHING,
    QUEUE_STATUS_PUBLISHED,
)
SCHEDULABLE_STATUSES = frozenset({QUEUE_STATUS_APPROVED, QUEUE_STATUS_SCHEDULED, QUEUE_STATUS_PUBLISHING})


@dataclass(frozen=True)
class PublishingRunResult:
    queue_id: str
    item_status: str
    aggregate_status: Optional[str]
    published: int
    failed: int
    records: List[PublishingRecord] = field(default_factory=list)


def _json_dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, sort_keys=True)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_dt(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _ensure_can_publish(actor_role: str, **details: Any) -> None:
    if not has_capability(actor_role, CAP_PUBLISH_CONTENT):
        raise Forbidden("Missing capability: publish_content", **details)


def _commit(session: Session, message: str, **details: Any) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceFailure(message, **details) from exc


def list_publishing_records(session: Session, *, org_id: str, queue_id: str) -> List[PublishingRecord]:
    return list(
        session.scalars(
            select(PublishingRecord)
            .where(PublishingRecord.org_id == org_id, PublishingRecord.queue_id == queue_id)
            .order_by(PublishingRecord.platform)
        ).all()
    )


def get_publishing_record(session: Session, *, org_id: str, record_id: str) -> PublishingRecord:
    record = session.scalar(
        select(PublishingRecord).where(PublishingRecord.id == record_id, PublishingRecord.org_id == org_id)
    )
    if record is None:
        raise NotFound("Publishing record not found", record_id=record_id)
    return record


def sync_item_status(session: Session, item: QueueItem) -> Optional[str]:
    """Move the item one legal step at a time until it matches its records.

    The item never moves backwards along approved -> scheduled -> publishing
    -> published, and items outside that path are left alone.
    """

    records = list_publishing_records(session, org_id=item.org_id, queue_id=item.id)
    target = aggregate_publishing_status(record.status for record in records)
    if target is None:
        return None

    current = normalize_status(item.status)
    if current not in PUBLISHING_PATH:
        logger.info("publishing_aggregate_skipped", queue_id=item.id, status=current, aggregate=target)
        return target

    current_index = PUBLISHING_PATH.index(current)
    target_index = PUBLISHING_PATH.index(target)
    for next_status in PUBLISHING_PATH[current_index + 1 : target_index + 1]:
        transition_status(session, item, next_status)
    return target


def schedule_publishing(
    session: Session,
    *,
    org_id: str,
    queue_id: str,
    platforms: Sequence[str],
    actor_id: str,
    actor_role: str,
    scheduled_at: Optional[datetime] = None,
) -> List[PublishingRecord]:
    _ensure_can_publish(actor_role, queue_id=queue_id)

    normalized_platforms: List[str] = []
    for platform in platforms:
        value = platform.strip().lower()
        if value not in SUPPORTED_PLATFORMS:
            raise ValueError(f"Unsupported publishing platform: {platform}")
        if value not in normalized_platforms:
            normalized_platforms.append(value)
    if not normalized_platforms:
        raise ValueError("At least one platform is required")

    item = get_queue_item(session, org_id=org_id, queue_id=queue_id)
    current = normalize_status(item.status)
    if current not in SCHEDULABLE_STATUSES:
        raise InvalidTransition(
            current,
            QUEUE_STATUS_SCHEDULED,
            message=f"Publishing requires an approved item (current status: {current})",
        )

    existing = {record.platform for record in list_publishing_records(session, org_id=org_id, queue_id=queue_id)}
    record_status = PUBLISH_RECORD_SCHEDULED if scheduled_at is not None else PUBLISH_RECORD_PUBLISHING
    created: List[str] = []
    for platform in normalized_platforms:
        if platform in existing:
            continue
        session.add(
            PublishingRecord(
                id=str(uuid.uuid4()),
                org_id=org_id,
                queue_id=queue_id,
                platform=platform,
                status=record_status,
                scheduled_at=_normalize_dt(scheduled_at),
                published_by=actor_id,
                publish_metadata_json="{}",
            )
        )
        created.append(platform)
    _commit(session, "Failed to schedule publishing", queue_id=queue_id)

    sync_item_status(session, item)
    logger.info(
        "publishing_scheduled",
        queue_id=queue_id,
        platforms=created,
        record_status=record_status,
        scheduled_at=scheduled_at.isoformat() if scheduled_at else None,
    )
    return list_publishing_records(session, org_id=org_id, queue_id=queue_id)


def build_platform_post(item: QueueItem) -> PlatformPost:
    metadata = item_generation_metadata(item)
    content_meta = metadata.get("content") if isinstance(metadata.get("content"), dict) else {}
    enhancement_meta = metadata.get("enhancement") if isinstance(metadata.get("enhancement"), dict) else {}
    images_meta = metadata.get("images") if isinstance(metadata.get("images"), dict) else {}
    return PlatformPost(
        queue_id=item.id,
        org_id=item.org_id,
        title=item.generated_title or item.topic,
        content=item.generated_content or "",
        slug=enhancement_meta.get("slug"),
        excerpt=content_meta.get("excerpt"),
        seo={
            "seo_title": enhancement_meta.get("seo_title"),
            "meta_description": enhancement_meta.get("meta_description"),
            "structured_data": enhancement_meta.get("structured_data") or {},
        },
        images={
            "featured_image": (images_meta.get("featured_image") or {}).get("url"),
            "thumbnail_image": (images_meta.get("thumbnail_image") or {}).get("url"),
        },
    )


def _publish_record(
    session: Session,
    record: PublishingRecord,
    *,
    post: PlatformPost,
    publisher: PlatformPublisher,
    actor_id: str,
) -> bool:
    try:
        result = publisher.publish(post)
    except Exception as exc:
        if not isinstance(exc, PlatformPublishError):
            capture_exception(exc)
        record.status = PUBLISH_RECORD_FAILED
        record.error = str(exc)[:1000] or exc.__class__.__name__
        record.retry_count = (record.retry_count or 0) + 1
        record.updated_at = _now_utc()
        _commit(session, "Failed to record publishing failure", record_id=record.id)
        record_publish_result(platform=record.platform, status=PUBLISH_RECORD_FAILED)
        logger.warning("platform_publish_failed", queue_id=post.queue_id, platform=record.platform, error=record.error)
        return False

    record.status = PUBLISH_RECORD_PUBLISHED
    record.published_at = _now_utc()
    record.platform_post_id = result.platform_post_id
    record.platform_url = result.platform_url
    record.published_by = actor_id
    record.error = None
    record.publish_metadata_json = _json_dumps({"provider_payload": result.payload})
    record.updated_at = _now_utc()
    _commit(session, "Failed to record publishing result", record_id=record.id)
    record_publish_result(platform=record.platform, status=PUBLISH_RECORD_PUBLISHED)
    logger.info("platform_published", queue_id=post.queue_id, platform=record.platform, url=record.platform_url)
    return True


def execute_publishing(
    session: Session,
    *,
    org_id: str,
    queue_id: str,
    actor_id: str,
    actor_role: str,
    now: Optional[datetime] = None,
    publisher_factory: Optional[PublisherFactory] = None,
) -> PublishingRunResult:
    """Publish every due record independently; one platform's failure never blocks another."""

    _ensure_can_publish(actor_role, queue_id=queue_id)
    item = get_queue_item(session, org_id=org_id, queue_id=queue_id)
    current = normalize_status(item.status)
    if current not in SCHEDULABLE_STATUSES:
        raise InvalidTransition(
            current,
            QUEUE_STATUS_PUBLISHING,
            message=f"Publishing cannot run for item in status {current}",
        )

    reference_time = _normalize_dt(now) or _now_utc()
    records = list_publishing_records(session, org_id=org_id, queue_id=queue_id)
    promoted = False
    for record in records:
        due_at = _normalize_dt(record.scheduled_at)
        if record.status == PUBLISH_RECORD_SCHEDULED and (due_at is None or due_at <= reference_time):
            record.status = PUBLISH_RECORD_PUBLISHING
            record.updated_at = _now_utc()
            promoted = True
    if promoted:
        _commit(session, "Failed to start publishing", queue_id=queue_id)
    sync_item_status(session, item)

    factory = publisher_factory or get_platform_publisher
    post = build_platform_post(item)
    published = failed = 0
    for record in records:
        if record.status != PUBLISH_RECORD_PUBLISHING:
            continue
        if _publish_record(session, record, post=post, publisher=factory(record.platform), actor_id=actor_id):
            published += 1
        else:
            failed += 1

    aggregate = sync_item_status(session, item)
    session.refresh(item)
    logger.info(
        "publishing_run_finished",
        queue_id=queue_id,
        published=published,
        failed=failed,
        aggregate_status=aggregate,
    )
    return PublishingRunResult(
        queue_id=queue_id,
        item_status=item.status,
        aggregate_status=aggregate,
        published=published,
        failed=failed,
        records=list_publishing_records(session, org_id=org_id, queue_id=queue_id),
    )


def retry_platform(
    session: Session,
    *,
    org_id: str,
    record_id: str,
    actor_id: str,
    actor_role: str,
) -> PublishingRecord:
    _ensure_can_publish(actor_role, record_id=record_id)
    record = get_publishing_record(session, org_id=org_id, record_id=record_id)
    if record.status != PUBLISH_RECORD_FAILED:
        raise InvalidTransition(
            record.status,
            PUBLISH_RECORD_PUBLISHING,
            message=f"Only failed publishing records can be retried (current status: {record.status})",
        )
    if record.queue_id is None:
        raise NotFound("Queue item for publishing record no longer exists", record_id=record_id)

    item = get_queue_item(session, org_id=org_id, queue_id=record.queue_id)
    if normalize_status(item.status) not in SCHEDULABLE_STATUSES:
        raise InvalidTransition(
            normalize_status(item.status),
            QUEUE_STATUS_PUBLISHING,
            message=f"Publishing cannot resume for item in status {item.status}",
        )

    record.status = PUBLISH_RECORD_PUBLISHING
    record.error = None
    record.published_by = actor_id
    record.updated_at = _now_utc()
    _commit(session, "Failed to retry publishing record", record_id=record_id)
    sync_item_status(session, item)
    logger.info("platform_publish_retried", record_id=record_id, platform=record.platform, retry_count=record.retry_count)
    return record
