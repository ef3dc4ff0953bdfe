"""Draft post materialization for freshly generated queue items."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional
import uuid

from sqlalchemy import update
from sqlalchemy.orm import Session

from src.core.logger import get_logger
from src.core.observability import capture_exception
from src.storage.models import BlogPost, QueueItem
from src.workflow.enhancement import slugify, strip_markup


logger = get_logger("content_queue.drafts")

EXCERPT_MAX_LENGTH = 300


def _json_dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, sort_keys=True)


def _draft_excerpt(item: QueueItem, metadata: Dict[str, Any]) -> str:
    content_meta = metadata.get("content") if isinstance(metadata.get("content"), dict) else {}
    excerpt = str(content_meta.get("excerpt") or "").strip()
    if excerpt:
        return excerpt
    text = strip_markup(item.generated_content or "")
    return text[:EXCERPT_MAX_LENGTH]


def materialize_draft(session: Session, item: QueueItem) -> Optional[str]:
    """Create the editable draft post and link it to the item.

    Best-effort: any failure is logged and swallowed so the ``generated``
    transition that triggered this stays committed. ``post_id`` is only ever
    written while it is still unset.
    """

    if item.post_id or not (item.generated_title or "").strip() or not (item.generated_content or "").strip():
        return item.post_id

    try:
        return _create_and_link_draft(session, item)
    except Exception as exc:
        session.rollback()
        logger.warning("draft_materialization_failed", queue_id=item.id, error=str(exc) or exc.__class__.__name__)
        capture_exception(exc)
        return None


def _create_and_link_draft(session: Session, item: QueueItem) -> Optional[str]:
    try:
        metadata = json.loads(item.generation_metadata_json or "{}")
    except json.JSONDecodeError:
        metadata = {}
    if not isinstance(metadata, dict):
        metadata = {}
    content_meta = metadata.get("content") if isinstance(metadata.get("content"), dict) else {}

    post_id = str(uuid.uuid4())
    session.add(
        BlogPost(
            id=post_id,
            org_id=item.org_id,
            created_by=item.created_by,
            queue_id=item.id,
            title=item.generated_title,
            content=item.generated_content,
            excerpt=_draft_excerpt(item, metadata),
            slug=slugify(item.generated_title or item.topic),
            status="draft",
            metadata_json=_json_dumps({"source": "blog_generation_queue", "queue_id": item.id}),
            seo_data_json=_json_dumps(content_meta.get("seo_data") or {}),
        )
    )
    session.flush()
    linked = session.execute(
        update(QueueItem)
        .where(QueueItem.id == item.id, QueueItem.post_id.is_(None))
        .values(post_id=post_id)
        .execution_options(synchronize_session=False)
    )
    if linked.rowcount == 0:
        session.rollback()
        session.refresh(item)
        return item.post_id
    session.commit()

    session.refresh(item)
    logger.info("draft_materialized", queue_id=item.id, post_id=post_id)
    return post_id
