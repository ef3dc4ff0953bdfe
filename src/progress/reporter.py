"""Append-only progress log stored on the queue row, mirrored to the hub."""

from __future__ import annotations

from datetime import datetime, timezone
import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.errors import NotFound, PersistenceFailure
from src.core.logger import get_logger
from src.progress.channel import MESSAGE_KIND_PROGRESS, ChannelMessage, ProgressHub, Subscription, get_progress_hub
from src.storage.models import QueueItem


logger = get_logger("content_queue.progress")

_EVENT_OPTIONAL_KEYS = ("stage_number", "total_stages", "status", "details", "metadata")


def _json_dumps(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, sort_keys=True)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def clamp_progress(value: Any) -> int:
    try:
        numeric = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, numeric))


def normalize_stage_event(stage_event: Mapping[str, Any], *, sequence: int) -> Dict[str, Any]:
    stage = str(stage_event.get("stage") or "").strip()
    if not stage:
        raise ValueError("stage_event.stage is required")

    event: Dict[str, Any] = {
        "stage": stage,
        "progress_percentage": clamp_progress(stage_event.get("progress_percentage", 0)),
        "timestamp": str(stage_event.get("timestamp") or _now_iso()),
        "sequence": sequence,
    }
    for key in _EVENT_OPTIONAL_KEYS:
        value = stage_event.get(key)
        if value is not None:
            event[key] = value
    return event


def load_progress_updates(item: QueueItem) -> List[Dict[str, Any]]:
    try:
        parsed = json.loads(item.progress_updates_json or "[]")
    except json.JSONDecodeError:
        logger.warning("progress_updates_unreadable", queue_id=item.id)
        return []
    return parsed if isinstance(parsed, list) else []


class ProgressReporter:
    """Writes stage events for one org's queue items."""

    def __init__(self, session: Session, *, org_id: str, hub: Optional[ProgressHub] = None) -> None:
        self.session = session
        self.org_id = org_id
        self.hub = hub or get_progress_hub()

    def _get_item(self, queue_id: str, *, for_update: bool = False) -> QueueItem:
        statement = select(QueueItem).where(QueueItem.id == queue_id, QueueItem.org_id == self.org_id)
        if for_update:
            # Lock and re-read: another session may have appended since this one loaded the row.
            statement = statement.with_for_update().execution_options(populate_existing=True)
        item = self.session.scalar(statement)
        if item is None:
            raise NotFound("Queue item not found", queue_id=queue_id)
        return item

    def append(self, queue_id: str, stage_event: Mapping[str, Any]) -> Dict[str, Any]:
        item = self._get_item(queue_id, for_update=True)
        updates = load_progress_updates(item)
        event = normalize_stage_event(stage_event, sequence=len(updates) + 1)
        updates.append(event)

        item.progress_updates_json = _json_dumps(updates)
        item.current_stage = event["stage"]
        item.progress_percentage = event["progress_percentage"]
        item.updated_at = datetime.now(timezone.utc)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceFailure("Failed to append progress update", queue_id=queue_id) from exc

        self.hub.publish(
            ChannelMessage(kind=MESSAGE_KIND_PROGRESS, queue_id=queue_id, payload=event, sequence=event["sequence"])
        )
        return event

    def snapshot(self, queue_id: str) -> List[Dict[str, Any]]:
        return load_progress_updates(self._get_item(queue_id))

    def subscribe(self, queue_id: str) -> Subscription:
        """Attach to live updates; the subscription replays the stored snapshot first."""

        subscription = self.hub.subscribe(queue_id)
        try:
            events = self.snapshot(queue_id)
        except NotFound:
            subscription.close()
            raise
        subscription.set_replay(
            [
                ChannelMessage(
                    kind=MESSAGE_KIND_PROGRESS,
                    queue_id=queue_id,
                    payload=event,
                    sequence=int(event.get("sequence") or index + 1),
                )
                for index, event in enumerate(events)
            ]
        )
        return subscription


def build_timeline(
    events: Sequence[Mapping[str, Any]],
    current_stage: Optional[str],
    *,
    stages: Optional[Sequence[str]] = None,
) -> List[Dict[str, Any]]:
    """Latest event per stage, classified against ``current_stage``.

    ``stages`` fixes the expected order; stages without events are listed as
    pending. Stage names match case-insensitively.
    """

    latest: Dict[str, Dict[str, Any]] = {}
    order: List[str] = [stage.strip().lower() for stage in stages or ()]
    for event in events:
        stage = str(event.get("stage") or "").strip()
        if not stage:
            continue
        key = stage.lower()
        if key not in order:
            order.append(key)
        latest[key] = dict(event)

    current_key = (current_stage or "").strip().lower()
    if current_key in order:
        current_index = order.index(current_key)
    else:
        reached = [index for index, key in enumerate(order) if key in latest]
        current_index = reached[-1] if reached else -1

    timeline: List[Dict[str, Any]] = []
    for index, key in enumerate(order):
        event = latest.get(key, {"stage": key})
        if index < current_index:
            state = "completed"
        elif index == current_index:
            state = "completed" if event.get("progress_percentage") == 100 else "in_progress"
        else:
            state = "pending"
        timeline.append({**event, "state": state})
    return timeline
