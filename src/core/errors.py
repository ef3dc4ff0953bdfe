"""Domain error taxonomy shared by services and the HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, Optional


class QueueError(RuntimeError):
    """Base class for errors surfaced to callers of the queue core."""

    code = "queue_error"
    status_code = 400
    retriable = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "error": self.code}
        if self.retriable:
            payload["retriable"] = True
        payload.update(self.details)
        return payload


class InvalidTransition(QueueError):
    code = "invalid_transition"
    status_code = 400

    def __init__(self, current_status: str, requested_status: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Invalid status transition: {current_status} -> {requested_status}",
            current_status=current_status,
            requested_status=requested_status,
        )
        self.current_status = current_status
        self.requested_status = requested_status


class NotFound(QueueError):
    code = "not_found"
    status_code = 404


class Forbidden(QueueError):
    code = "forbidden"
    status_code = 403


class ConflictingApproval(QueueError):
    code = "conflicting_approval"
    status_code = 409


class UpstreamUnavailable(QueueError):
    code = "upstream_unavailable"
    status_code = 502
    retriable = True


class PersistenceFailure(QueueError):
    code = "persistence_failure"
    status_code = 503


class PhaseDependencyError(QueueError):
    code = "phase_dependency"
    status_code = 400
