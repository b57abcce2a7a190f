"""
Ordering of one room's waiting set.

Rank is ascending `priority_score`, then ascending `joined_at`, then id. Position 1 is
the next interview to start. Everything except `recompute_positions` is pure.
"""
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.interview import STATUS_WAITING, Interview
from ..models.user import ROLE_STUDENT, User
from ..utils.error_handlers import ForbiddenError, get_error_message

STUDENT_STATUS_BASE = {
    "ensa": 200,
    "external": 300,
}
OPPORTUNITY_MODIFIERS = {
    "pfa": 0,
    "pfe": 0,
    "employment": 10,
    "observation": 20,
}
UNKNOWN_OPPORTUNITY_MODIFIER = 30


def calculate_priority_score(user: User, opportunity_type: str) -> int:
    """Lower score = served earlier. Only students get a score."""
    if getattr(user, "role", None) != ROLE_STUDENT:
        raise ForbiddenError(get_error_message("students_only"))
    base = STUDENT_STATUS_BASE.get(user.student_status or "", STUDENT_STATUS_BASE["external"])
    return base + OPPORTUNITY_MODIFIERS.get(opportunity_type, UNKNOWN_OPPORTUNITY_MODIFIER)


def as_utc(dt: datetime | None) -> datetime:
    # SQLite hands back naive datetimes; freshly created rows still hold aware ones.
    if dt is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def sort_key(interview: Interview) -> tuple:
    return (interview.priority_score or 0, as_utc(interview.joined_at), interview.id or 0)


def order_waiting(interviews: Iterable[Interview]) -> list[Interview]:
    return sorted((it for it in interviews if it.status == STATUS_WAITING), key=sort_key)


def assign_positions(interviews: Iterable[Interview]) -> list[Interview]:
    """Rank the waiting interviews and write 1..N into `queue_position`."""
    ordered = order_waiting(interviews)
    for index, interview in enumerate(ordered, start=1):
        if interview.queue_position != index:
            interview.queue_position = index
    return ordered


def head(interviews: Iterable[Interview]) -> Interview | None:
    ordered = order_waiting(interviews)
    return ordered[0] if ordered else None


def back_of_queue_score(interview: Interview, waiting: Iterable[Interview]) -> int:
    """Score that ranks `interview` strictly behind every other waiting interview."""
    others = [it.priority_score or 0 for it in waiting if it.id != interview.id and it.status == STATUS_WAITING]
    if not others:
        return interview.priority_score or 0
    return max(interview.priority_score or 0, max(others) + 1)


def positions_are_contiguous(interviews: Iterable[Interview]) -> bool:
    positions = sorted(it.queue_position or 0 for it in interviews if it.status == STATUS_WAITING)
    return positions == list(range(1, len(positions) + 1))


def load_waiting(db: Session, company_id: int) -> list[Interview]:
    return (
        db.query(Interview)
        .filter(Interview.company_id == int(company_id), Interview.status == STATUS_WAITING)
        .all()
    )


def recompute_positions(db: Session, company_id: int) -> list[Interview]:
    """Regenerate positions for a room inside the caller's transaction."""
    db.flush()
    return assign_positions(load_waiting(db, company_id))


def waiting_count(db: Session, company_id: int) -> int:
    return (
        db.query(func.count(Interview.id))
        .filter(Interview.company_id == int(company_id), Interview.status == STATUS_WAITING)
        .scalar()
        or 0
    )
