"""
Interview lifecycle rules.

    waiting -> in_progress -> completed
    waiting -> cancelled
    in_progress -> passed

Nothing moves backwards and terminal states never re-enter a queue. The functions here
mutate an `Interview` in memory only; persistence and locking belong to the scheduler.
"""
import logging
from datetime import datetime, timezone

from ..models.interview import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PASSED,
    STATUS_WAITING,
    TERMINAL_STATUSES,
    Interview,
)
from ..utils.error_handlers import ConflictError, get_error_message

logger = logging.getLogger(__name__)

TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_WAITING: frozenset({STATUS_IN_PROGRESS, STATUS_CANCELLED}),
    STATUS_IN_PROGRESS: frozenset({STATUS_COMPLETED, STATUS_PASSED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELLED: frozenset(),
    STATUS_PASSED: frozenset(),
}

# Which timestamp each target state stamps.
_STAMPS = {
    STATUS_IN_PROGRESS: "started_at",
    STATUS_COMPLETED: "completed_at",
    STATUS_PASSED: "passed_at",
    STATUS_CANCELLED: "cancelled_at",
}

# Error used when the source state is wrong for the requested target.
_PRECONDITION_KEYS = {
    STATUS_IN_PROGRESS: "not_waiting",
    STATUS_CANCELLED: "not_cancellable",
    STATUS_COMPLETED: "not_in_progress",
    STATUS_PASSED: "not_in_progress",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_terminal(status: str | None) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: str | None, target: str) -> bool:
    return target in TRANSITIONS.get(current or "", frozenset())


def transition(interview: Interview, target: str, *, now: datetime | None = None) -> Interview:
    """Move `interview` to `target`, stamping the matching timestamp once."""
    current = interview.status
    if not can_transition(current, target):
        key = _PRECONDITION_KEYS.get(target, "not_waiting")
        raise ConflictError(
            get_error_message(key),
            details={"interview_id": interview.id, "status": current, "requested": target},
        )

    now = now or utcnow()
    interview.status = target
    stamp = _STAMPS.get(target)
    if stamp and getattr(interview, stamp, None) is None:
        setattr(interview, stamp, now)
    if target != STATUS_WAITING:
        interview.queue_position = None
    interview.updated_at = now
    logger.debug("Interview %s: %s -> %s", interview.id, current, target)
    return interview


def ensure_waiting(interview: Interview, error_key: str = "not_waiting") -> None:
    if interview.status != STATUS_WAITING:
        raise ConflictError(
            get_error_message(error_key),
            details={"interview_id": interview.id, "status": interview.status},
        )
