"""Queue status state machine: statuses, legal transitions and status helpers."""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Tuple

from src.core.errors import InvalidTransition


QUEUE_STATUS_QUEUED = "queued"
QUEUE_STATUS_GENERATING = "generating"
QUEUE_STATUS_GENERATED = "generated"
QUEUE_STATUS_IN_REVIEW = "in_review"
QUEUE_STATUS_APPROVED = "approved"
QUEUE_STATUS_REJECTED = "rejected"
QUEUE_STATUS_SCHEDULED = "scheduled"
QUEUE_STATUS_PUBLISHING = "publishing"
QUEUE_STATUS_PUBLISHED = "published"
QUEUE_STATUS_FAILED = "failed"
QUEUE_STATUS_CANCELLED = "cancelled"

QUEUE_STATUSES: Tuple[str, ...] = (
    QUEUE_STATUS_QUEUED,
    QUEUE_STATUS_GENERATING,
    QUEUE_STATUS_GENERATED,
    QUEUE_STATUS_IN_REVIEW,
    QUEUE_STATUS_APPROVED,
    QUEUE_STATUS_REJECTED,
    QUEUE_STATUS_SCHEDULED,
    QUEUE_STATUS_PUBLISHING,
    QUEUE_STATUS_PUBLISHED,
    QUEUE_STATUS_FAILED,
    QUEUE_STATUS_CANCELLED,
)

TERMINAL_QUEUE_STATUSES: FrozenSet[str] = frozenset({QUEUE_STATUS_PUBLISHED, QUEUE_STATUS_CANCELLED})
ACTIVE_QUEUE_STATUSES: FrozenSet[str] = frozenset({QUEUE_STATUS_GENERATING, QUEUE_STATUS_PUBLISHING})
WAITING_QUEUE_STATUSES: FrozenSet[str] = frozenset(
    {QUEUE_STATUS_QUEUED, QUEUE_STATUS_IN_REVIEW, QUEUE_STATUS_SCHEDULED}
)
COMPLETE_QUEUE_STATUSES: FrozenSet[str] = frozenset(
    {QUEUE_STATUS_PUBLISHED, QUEUE_STATUS_FAILED, QUEUE_STATUS_CANCELLED}
)

# failed and cancelled are appended to every non-terminal row below, except
# failed itself, which may only be retried.
_FORWARD_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    QUEUE_STATUS_QUEUED: frozenset({QUEUE_STATUS_GENERATING}),
    QUEUE_STATUS_GENERATING: frozenset({QUEUE_STATUS_GENERATED}),
    QUEUE_STATUS_GENERATED: frozenset({QUEUE_STATUS_IN_REVIEW}),
    QUEUE_STATUS_IN_REVIEW: frozenset({QUEUE_STATUS_APPROVED, QUEUE_STATUS_REJECTED}),
    QUEUE_STATUS_APPROVED: frozenset({QUEUE_STATUS_SCHEDULED}),
    QUEUE_STATUS_REJECTED: frozenset({QUEUE_STATUS_GENERATING}),
    QUEUE_STATUS_SCHEDULED: frozenset({QUEUE_STATUS_PUBLISHING}),
    QUEUE_STATUS_PUBLISHING: frozenset({QUEUE_STATUS_PUBLISHED}),
}


def _build_transition_table() -> Dict[str, FrozenSet[str]]:
    table: Dict[str, FrozenSet[str]] = {}
    for status, targets in _FORWARD_TRANSITIONS.items():
        table[status] = targets | {QUEUE_STATUS_FAILED, QUEUE_STATUS_CANCELLED}
    table[QUEUE_STATUS_FAILED] = frozenset({QUEUE_STATUS_QUEUED})
    table[QUEUE_STATUS_PUBLISHED] = frozenset()
    table[QUEUE_STATUS_CANCELLED] = frozenset()
    return table


VALID_QUEUE_TRANSITIONS: Dict[str, FrozenSet[str]] = _build_transition_table()

_STATUS_PROGRESS: Dict[str, int] = {
    QUEUE_STATUS_QUEUED: 0,
    QUEUE_STATUS_GENERATING: 25,
    QUEUE_STATUS_GENERATED: 50,
    QUEUE_STATUS_IN_REVIEW: 60,
    QUEUE_STATUS_APPROVED: 75,
    QUEUE_STATUS_REJECTED: 50,
    QUEUE_STATUS_SCHEDULED: 80,
    QUEUE_STATUS_PUBLISHING: 90,
    QUEUE_STATUS_PUBLISHED: 100,
    QUEUE_STATUS_FAILED: 0,
    QUEUE_STATUS_CANCELLED: 0,
}


def normalize_status(status: str | None) -> str:
    return str(status or "").strip().lower()


def is_known_status(status: str | None) -> bool:
    return normalize_status(status) in VALID_QUEUE_TRANSITIONS


def can_transition(current_status: str | None, requested_status: str | None) -> bool:
    """Return True when ``current_status -> requested_status`` is a legal edge."""

    allowed = VALID_QUEUE_TRANSITIONS.get(normalize_status(current_status))
    if not allowed:
        return False
    return normalize_status(requested_status) in allowed


def ensure_transition(current_status: str, requested_status: str) -> str:
    if not can_transition(current_status, requested_status):
        raise InvalidTransition(normalize_status(current_status), normalize_status(requested_status))
    return normalize_status(requested_status)


def valid_next_statuses(current_status: str | None) -> list[str]:
    allowed = VALID_QUEUE_TRANSITIONS.get(normalize_status(current_status), frozenset())
    return [status for status in QUEUE_STATUSES if status in allowed]


def is_terminal(status: str | None) -> bool:
    return normalize_status(status) in TERMINAL_QUEUE_STATUSES


def can_retry(status: str | None) -> bool:
    return normalize_status(status) == QUEUE_STATUS_FAILED


def is_active_status(status: str | None) -> bool:
    return normalize_status(status) in ACTIVE_QUEUE_STATUSES


def is_waiting_status(status: str | None) -> bool:
    return normalize_status(status) in WAITING_QUEUE_STATUSES


def is_complete_status(status: str | None) -> bool:
    return normalize_status(status) in COMPLETE_QUEUE_STATUSES


def status_progress(status: str | None) -> int:
    return _STATUS_PROGRESS.get(normalize_status(status), 0)


PUBLISH_RECORD_SCHEDULED = "scheduled"
PUBLISH_RECORD_PUBLISHING = "publishing"
PUBLISH_RECORD_PUBLISHED = "published"
PUBLISH_RECORD_FAILED = "failed"
PUBLISH_RECORD_STATUSES: Tuple[str, ...] = (
    PUBLISH_RECORD_SCHEDULED,
    PUBLISH_RECORD_PUBLISHING,
    PUBLISH_RECORD_PUBLISHED,
    PUBLISH_RECORD_FAILED,
)


def aggregate_publishing_status(record_statuses: Iterable[str]) -> str | None:
    """Item status implied by its publishing records, or None without records.

    All published -> published. A failed or publishing record, or a mix of
    published and scheduled records, means the fan-out is unfinished ->
    publishing. Otherwise every record is still waiting -> scheduled.
    """

    statuses = [normalize_status(status) for status in record_statuses]
    if not statuses:
        return None
    if all(status == PUBLISH_RECORD_PUBLISHED for status in statuses):
        return QUEUE_STATUS_PUBLISHED
    if any(status in {PUBLISH_RECORD_FAILED, PUBLISH_RECORD_PUBLISHING} for status in statuses):
        return QUEUE_STATUS_PUBLISHING
    if any(status == PUBLISH_RECORD_PUBLISHED for status in statuses):
        return QUEUE_STATUS_PUBLISHING
    return QUEUE_STATUS_SCHEDULED
