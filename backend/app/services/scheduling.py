"""
Scheduling service: the only writer of interview state.

Each write locks the owning company row, re-reads what it validates, applies one
lifecycle transition and regenerates the room's queue positions before committing.
Reads never lock and may observe positions that go stale right after they return.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from ..config import DEFAULT_INTERVIEW_DURATION
from ..models.company import Company
from ..models.interview import (
    ACTIVE_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PASSED,
    STATUS_WAITING,
    TERMINAL_STATUSES,
    Interview,
)
from ..models.user import ROLE_ADMIN, ROLE_COMMITTEE, ROLE_STUDENT, User
from ..utils.error_handlers import ConflictError, NotFoundError, ValidationError, get_error_message
from ..utils.roles import ensure_capability
from ..utils.validation import (
    validate_id,
    validate_integer_field,
    validate_opportunity_type,
    validate_string_field,
)
from . import room_queue
from .interview_state import ensure_waiting, transition, utcnow
from .transactions import lock_company, lock_company_of_interview, run_in_transaction

logger = logging.getLogger(__name__)


@dataclass
class QueueEntry:
    interview: Interview
    company: Company
    room_busy: bool
    estimated_wait_minutes: int


@dataclass
class RoomQueueView:
    company: Company
    current: Interview | None
    waiting: list[Interview] = field(default_factory=list)

    @property
    def next_up(self) -> Interview | None:
        return self.waiting[0] if self.waiting else None

    @property
    def total_waiting(self) -> int:
        return len(self.waiting)


def interview_duration(company: Company) -> int:
    return int(company.estimated_interview_duration or DEFAULT_INTERVIEW_DURATION)


def estimated_wait_minutes(position: int | None, duration: int, room_busy: bool) -> int:
    """Minutes until the interview at `position` can start."""
    if not position:
        return 0
    return (int(position) - 1) * int(duration) + (int(duration) if room_busy else 0)


# -------------------- internal helpers --------------------


def _load_company(db: Session, company_id: int) -> Company:
    company = db.get(Company, int(company_id), populate_existing=True)
    if not company:
        raise NotFoundError(get_error_message("company_not_found"))
    return company


def _load_interview(db: Session, interview_id: int) -> Interview:
    interview = db.get(Interview, int(interview_id), populate_existing=True)
    if not interview:
        raise NotFoundError(get_error_message("interview_not_found"))
    return interview


def _running_interview(db: Session, company_id: int) -> Interview | None:
    return (
        db.query(Interview)
        .populate_existing()
        .filter(Interview.company_id == int(company_id), Interview.status == STATUS_IN_PROGRESS)
        .first()
    )


def _ensure_room_access(db: Session, committee_user_id: int, company: Company) -> User:
    """Committee member assigned to the company's room (or an admin)."""
    user = db.get(User, int(committee_user_id))
    return ensure_capability(
        user,
        ROLE_COMMITTEE,
        owns=lambda u: u.role == ROLE_ADMIN or (u.assigned_room or "").strip() == (company.room or "").strip(),
        allow_admin=True,
        denied_message=get_error_message("wrong_room"),
    )


def _ensure_owner(db: Session, requester_id: int, interview: Interview) -> User:
    user = db.get(User, int(requester_id))
    return ensure_capability(
        user,
        ROLE_STUDENT,
        owns=lambda u: int(u.id) == int(interview.student_id),
        denied_message=get_error_message("not_your_interview"),
    )


# -------------------- writes --------------------


def join_queue(db: Session, *, student_id: int, company_id: int, opportunity_type: str) -> Interview:
    student_id = validate_id(student_id, "Student ID")
    company_id = validate_id(company_id, "Company ID")
    opportunity_type = validate_opportunity_type(opportunity_type)

    def _join() -> Interview:
        if not lock_company(db, company_id):
            raise NotFoundError(get_error_message("company_not_found"))
        company = _load_company(db, company_id)
        if not company.is_active:
            raise NotFoundError(get_error_message("company_inactive"))

        student = db.get(User, student_id)
        if not student:
            raise NotFoundError(get_error_message("user_not_found"))
        ensure_capability(student, ROLE_STUDENT)

        existing = (
            db.query(Interview)
            .filter(
                Interview.student_id == student_id,
                Interview.company_id == company_id,
                Interview.status.in_(ACTIVE_STATUSES),
            )
            .first()
        )
        if existing:
            raise ConflictError(
                get_error_message("already_in_queue"),
                details={"interview_id": existing.id, "status": existing.status},
            )

        now = utcnow()
        interview = Interview(
            student_id=student_id,
            company_id=company_id,
            status=STATUS_WAITING,
            opportunity_type=opportunity_type,
            priority_score=room_queue.calculate_priority_score(student, opportunity_type),
            joined_at=now,
            updated_at=now,
        )
        db.add(interview)
        db.flush()
        room_queue.recompute_positions(db, company_id)
        return interview

    interview = run_in_transaction(
        db, _join, operation="join_queue", conflict_message=get_error_message("already_in_queue")
    )
    logger.info(
        "Student %s joined company %s queue (interview %s, position %s)",
        student_id, company_id, interview.id, interview.queue_position,
    )
    return interview


def leave_queue(db: Session, *, interview_id: int, requester_id: int) -> dict:
    interview_id = validate_id(interview_id, "Interview ID")
    requester_id = validate_id(requester_id, "Requester ID")

    def _leave() -> int:
        if not lock_company_of_interview(db, interview_id):
            raise NotFoundError(get_error_message("interview_not_found"))
        interview = _load_interview(db, interview_id)
        _ensure_owner(db, requester_id, interview)
        transition(interview, STATUS_CANCELLED)
        room_queue.recompute_positions(db, interview.company_id)
        return interview.company_id

    company_id = run_in_transaction(db, _leave, operation="leave_queue")
    logger.info("Student %s left company %s queue (interview %s)", requester_id, company_id, interview_id)
    return {"success": True, "message": "You left the queue."}


def reschedule_interview(db: Session, *, interview_id: int, requester_id: int) -> dict:
    """Send a waiting interview to the back of its room's queue."""
    interview_id = validate_id(interview_id, "Interview ID")
    requester_id = validate_id(requester_id, "Requester ID")

    def _reschedule() -> Interview:
        if not lock_company_of_interview(db, interview_id):
            raise NotFoundError(get_error_message("interview_not_found"))
        interview = _load_interview(db, interview_id)
        _ensure_owner(db, requester_id, interview)
        ensure_waiting(interview, "not_reschedulable")

        waiting = room_queue.load_waiting(db, interview.company_id)
        now = utcnow()
        interview.priority_score = room_queue.back_of_queue_score(interview, waiting)
        interview.joined_at = now
        interview.updated_at = now
        room_queue.recompute_positions(db, interview.company_id)
        return interview

    interview = run_in_transaction(db, _reschedule, operation="reschedule_interview")
    logger.info("Interview %s rescheduled to position %s", interview_id, interview.queue_position)
    return {
        "success": True,
        "message": "You were moved to the back of the queue.",
        "position": interview.queue_position,
    }


def start_interview(
    db: Session,
    *,
    company_id: int,
    committee_user_id: int,
    interview_id: int | None = None,
) -> Interview:
    """Start the head of the room's queue. A given `interview_id` must be that head."""
    company_id = validate_id(company_id, "Company ID")
    committee_user_id = validate_id(committee_user_id, "Committee user ID")
    if interview_id is not None:
        interview_id = validate_id(interview_id, "Interview ID")

    def _start() -> Interview:
        if not lock_company(db, company_id):
            raise NotFoundError(get_error_message("company_not_found"))
        company = _load_company(db, company_id)
        _ensure_room_access(db, committee_user_id, company)

        running = _running_interview(db, company_id)
        if running:
            raise ConflictError(get_error_message("room_busy"), details={"current_interview_id": running.id})

        ordered = room_queue.recompute_positions(db, company_id)
        if not ordered:
            raise ConflictError(get_error_message("queue_empty"))
        head = ordered[0]

        if interview_id is not None and head.id != interview_id:
            target = db.get(Interview, interview_id)
            if not target or target.company_id != company_id:
                raise NotFoundError(get_error_message("interview_not_found"))
            ensure_waiting(target)
            raise ConflictError(
                get_error_message("not_queue_head"),
                details={"queue_head_id": head.id, "position": target.queue_position},
            )

        transition(head, STATUS_IN_PROGRESS)
        room_queue.recompute_positions(db, company_id)
        return head

    interview = run_in_transaction(
        db, _start, operation="start_interview", conflict_message=get_error_message("room_busy")
    )
    logger.info("Committee %s started interview %s in company %s", committee_user_id, interview.id, company_id)
    return interview


def _finish_interview(db: Session, *, interview_id: int, committee_user_id: int, target: str) -> Interview:
    interview_id = validate_id(interview_id, "Interview ID")
    committee_user_id = validate_id(committee_user_id, "Committee user ID")

    def _finish() -> Interview:
        if not lock_company_of_interview(db, interview_id):
            raise NotFoundError(get_error_message("interview_not_found"))
        interview = _load_interview(db, interview_id)
        company = _load_company(db, interview.company_id)
        _ensure_room_access(db, committee_user_id, company)
        transition(interview, target)
        room_queue.recompute_positions(db, interview.company_id)
        return interview

    interview = run_in_transaction(db, _finish, operation=f"{target}_interview")
    logger.info(
        "Committee %s marked interview %s as %s (company %s)",
        committee_user_id, interview.id, target, interview.company_id,
    )
    return interview


def complete_interview(db: Session, *, interview_id: int, committee_user_id: int) -> Interview:
    return _finish_interview(
        db, interview_id=interview_id, committee_user_id=committee_user_id, target=STATUS_COMPLETED
    )


def pass_interview(db: Session, *, interview_id: int, committee_user_id: int) -> Interview:
    """No-show/skip path for a running interview."""
    return _finish_interview(
        db, interview_id=interview_id, committee_user_id=committee_user_id, target=STATUS_PASSED
    )


def move_to_next_student(db: Session, *, company_id: int, committee_user_id: int) -> Interview | None:
    """Pass the running interview, if any, and start the queue head, if any."""
    company_id = validate_id(company_id, "Company ID")
    committee_user_id = validate_id(committee_user_id, "Committee user ID")

    def _next() -> tuple[int | None, Interview | None]:
        if not lock_company(db, company_id):
            raise NotFoundError(get_error_message("company_not_found"))
        company = _load_company(db, company_id)
        _ensure_room_access(db, committee_user_id, company)

        passed_id = None
        running = _running_interview(db, company_id)
        if running:
            transition(running, STATUS_PASSED)
            passed_id = running.id
            # The room's in_progress slot must be free before the next UPDATE lands.
            db.flush()

        ordered = room_queue.recompute_positions(db, company_id)
        if not ordered:
            return passed_id, None
        head = ordered[0]
        transition(head, STATUS_IN_PROGRESS)
        room_queue.recompute_positions(db, company_id)
        return passed_id, head

    passed_id, started = run_in_transaction(
        db, _next, operation="move_to_next_student", conflict_message=get_error_message("room_busy")
    )
    logger.info(
        "Committee %s moved company %s to next student (passed=%s, started=%s)",
        committee_user_id, company_id, passed_id, started.id if started else None,
    )
    return started


# -------------------- reads --------------------


def get_company_for_room(db: Session, *, room: str) -> Company:
    room = validate_string_field(room, "Room", max_length=50)
    company = db.query(Company).filter(Company.room == room, Company.is_active.is_(True)).first()
    if not company:
        raise NotFoundError(get_error_message("no_company_for_room"))
    return company


def get_room_queue(db: Session, *, company_id: int) -> RoomQueueView:
    company = _load_company(db, validate_id(company_id, "Company ID"))
    waiting = room_queue.order_waiting(room_queue.load_waiting(db, company.id))
    return RoomQueueView(company=company, current=_running_interview(db, company.id), waiting=waiting)


def get_queue_for_room(db: Session, *, room: str) -> RoomQueueView:
    company = get_company_for_room(db, room=room)
    return get_room_queue(db, company_id=company.id)


def get_student_queues(db: Session, *, student_id: int) -> list[QueueEntry]:
    student_id = validate_id(student_id, "Student ID")
    rows = (
        db.query(Interview)
        .filter(Interview.student_id == student_id, Interview.status.in_(ACTIVE_STATUSES))
        .order_by(Interview.joined_at.asc(), Interview.id.asc())
        .all()
    )
    if not rows:
        return []

    company_ids = {it.company_id for it in rows}
    busy = {
        cid
        for (cid,) in db.query(Interview.company_id)
        .filter(Interview.company_id.in_(company_ids), Interview.status == STATUS_IN_PROGRESS)
        .all()
    }
    entries: list[QueueEntry] = []
    for it in rows:
        company = it.company
        room_busy = it.company_id in busy
        entries.append(
            QueueEntry(
                interview=it,
                company=company,
                room_busy=room_busy,
                estimated_wait_minutes=estimated_wait_minutes(
                    it.queue_position if it.status == STATUS_WAITING else None,
                    interview_duration(company),
                    room_busy,
                ),
            )
        )
    return entries


def get_student_interview_history(db: Session, *, student_id: int) -> list[Interview]:
    student_id = validate_id(student_id, "Student ID")
    return (
        db.query(Interview)
        .filter(Interview.student_id == student_id, Interview.status.in_(TERMINAL_STATUSES))
        .order_by(Interview.updated_at.desc(), Interview.id.desc())
        .all()
    )


def get_student_stats(db: Session, *, student_id: int, now: datetime | None = None) -> dict:
    student_id = validate_id(student_id, "Student ID")
    counts = dict(
        db.query(Interview.status, func.count(Interview.id))
        .filter(Interview.student_id == student_id)
        .group_by(Interview.status)
        .all()
    )
    now = now or utcnow()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    completed_today = (
        db.query(func.count(Interview.id))
        .filter(
            Interview.student_id == student_id,
            Interview.status == STATUS_COMPLETED,
            Interview.completed_at >= day_start,
            Interview.completed_at < day_start + timedelta(days=1),
        )
        .scalar()
        or 0
    )
    return {
        "total_queues": sum(counts.values()),
        "waiting": counts.get(STATUS_WAITING, 0),
        "in_progress": counts.get(STATUS_IN_PROGRESS, 0),
        "completed": counts.get(STATUS_COMPLETED, 0),
        "cancelled": counts.get(STATUS_CANCELLED, 0),
        "passed": counts.get(STATUS_PASSED, 0),
        "completed_today": completed_today,
    }


def get_queue_stats(db: Session, *, company_id: int) -> dict:
    company = _load_company(db, validate_id(company_id, "Company ID"))
    total_waiting = room_queue.waiting_count(db, company.id)
    room_busy = _running_interview(db, company.id) is not None
    duration = interview_duration(company)
    return {
        "total_waiting": total_waiting,
        "estimated_duration": duration,
        "room_busy": room_busy,
        # Until the last student currently waiting gets in.
        "estimated_wait_time": estimated_wait_minutes(total_waiting, duration, room_busy),
    }


# -------------------- room history / stats --------------------

STATS_PERIODS = ("today", "all")


def get_company(db: Session, *, company_id: int) -> Company:
    return _load_company(db, validate_id(company_id, "Company ID"))


def interview_minutes(interview: Interview) -> int | None:
    """Actual length of a finished interview, from `started_at` to its end stamp."""
    end = interview.completed_at or interview.passed_at
    if interview.started_at is None or end is None:
        return None
    return round((room_queue.as_utc(end) - room_queue.as_utc(interview.started_at)).total_seconds() / 60)


def _average_minutes(interviews: list[Interview]) -> int | None:
    minutes = [m for m in (interview_minutes(it) for it in interviews) if m is not None]
    if not minutes:
        return None
    return round(sum(minutes) / len(minutes))


def _day_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def get_room_history(
    db: Session,
    *,
    company_id: int,
    status: str | None = None,
    day: date | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Finished interviews of one room, most recent activity first, with per-status summary."""
    company = _load_company(db, validate_id(company_id, "Company ID"))
    page = validate_integer_field(page, "Page", min_value=1)
    limit = validate_integer_field(limit, "Limit", min_value=1, max_value=100)
    if status is not None and status not in TERMINAL_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(TERMINAL_STATUSES)}")

    query = db.query(Interview).filter(
        Interview.company_id == company.id,
        Interview.status.in_([status] if status else TERMINAL_STATUSES),
    )
    if day is not None:
        start, end = _day_bounds(datetime(day.year, day.month, day.day, tzinfo=timezone.utc))
        query = query.filter(
            or_(
                and_(Interview.completed_at >= start, Interview.completed_at < end),
                and_(Interview.passed_at >= start, Interview.passed_at < end),
                and_(Interview.cancelled_at >= start, Interview.cancelled_at < end),
            )
        )

    total = query.count()
    interviews = (
        query.order_by(Interview.updated_at.desc(), Interview.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    # Summary covers the whole room, not just the current page.
    by_status: dict[str, list[Interview]] = {}
    for it in db.query(Interview).filter(Interview.company_id == company.id).all():
        by_status.setdefault(it.status, []).append(it)
    summary = {
        s: {"count": len(rows), "average_duration": _average_minutes(rows)}
        for s, rows in by_status.items()
    }

    return {
        "company": company,
        "interviews": interviews,
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit),
        "stats": summary,
    }


def get_room_stats(db: Session, *, company_id: int, period: str = "today", now: datetime | None = None) -> dict:
    """
    Committee dashboard numbers for one room.

    `period` is "today" or "all" and scopes the main block and the distributions. The
    week block always covers the ISO week (from Monday, UTC) up to the end of today.
    Durations are measured from `started_at` to `completed_at`, in whole minutes.
    """
    company = _load_company(db, validate_id(company_id, "Company ID"))
    if period not in STATS_PERIODS:
        raise ValidationError(f"Period must be one of: {', '.join(STATS_PERIODS)}")
    now = now or utcnow()
    today_start, tomorrow = _day_bounds(now)
    week_start = today_start - timedelta(days=today_start.weekday())

    completed = (
        db.query(Interview)
        .filter(Interview.company_id == company.id, Interview.status == STATUS_COMPLETED)
        .all()
    )

    def _within(it: Interview, start: datetime) -> bool:
        if it.completed_at is None:
            return False
        done = room_queue.as_utc(it.completed_at)
        return start <= done < tomorrow

    main = completed if period == "all" else [it for it in completed if _within(it, today_start)]
    week = [it for it in completed if _within(it, week_start)]

    opportunities: dict[str, int] = {}
    student_statuses: dict[str, int] = {}
    for it in main:
        opportunities[it.opportunity_type] = opportunities.get(it.opportunity_type, 0) + 1
        key = (it.student.student_status if it.student else None) or "unknown"
        student_statuses[key] = student_statuses.get(key, 0) + 1

    running = _running_interview(db, company.id)
    current = None
    if running is not None:
        elapsed = 0
        if running.started_at is not None:
            elapsed = int((now - room_queue.as_utc(running.started_at)).total_seconds() // 60)
        current = {
            "interview_id": running.id,
            "student_name": running.student.display_name if running.student else None,
            "student_status": running.student.student_status if running.student else None,
            "duration": max(0, elapsed),
        }

    return {
        "period": period,
        "company": {
            "id": company.id,
            "name": company.name,
            "room": company.room,
            "estimated_duration": interview_duration(company),
        },
        "main": {
            "completed": len(main),
            "average_duration": _average_minutes(main) or 0,
            "current_interview": current,
        },
        "week": {
            "completed": len(week),
            "average_duration": _average_minutes(week) or 0,
        },
        "queue": {
            "waiting": room_queue.waiting_count(db, company.id),
            "in_progress": 1 if running is not None else 0,
        },
        "distribution": {
            "opportunities": opportunities,
            "student_status": student_statuses,
        },
    }


# -------------------- integrity --------------------


def validate_queue_integrity(db: Session, *, company_id: int) -> dict:
    company = _load_company(db, validate_id(company_id, "Company ID"))
    waiting = room_queue.load_waiting(db, company.id)
    issues: list[str] = []

    if not room_queue.positions_are_contiguous(waiting):
        issues.append("Waiting positions are not a contiguous 1..N sequence")
    expected = {it.id: index for index, it in enumerate(room_queue.order_waiting(waiting), start=1)}
    misranked = [it.id for it in waiting if it.queue_position != expected[it.id]]
    if misranked:
        issues.append(f"Interviews out of priority order: {sorted(misranked)}")

    running = (
        db.query(func.count(Interview.id))
        .filter(Interview.company_id == company.id, Interview.status == STATUS_IN_PROGRESS)
        .scalar()
        or 0
    )
    if running > 1:
        issues.append(f"{running} interviews in progress at once")

    return {
        "company_id": company.id,
        "valid": not issues,
        "issues": issues,
        "total_waiting": len(waiting),
        "in_progress": running,
    }


def repair_queue_positions(db: Session, *, company_id: int | None = None) -> dict:
    """Rebuild positions for one company, or every company with a waiting set."""
    if company_id is not None:
        company_ids = [validate_id(company_id, "Company ID")]
    else:
        company_ids = [
            cid
            for (cid,) in db.query(Interview.company_id)
            .filter(Interview.status == STATUS_WAITING)
            .distinct()
            .all()
        ]

    repaired: list[int] = []
    for cid in company_ids:

        def _repair(cid: int = cid) -> bool:
            if not lock_company(db, cid):
                raise NotFoundError(get_error_message("company_not_found"))
            waiting = room_queue.load_waiting(db, cid)
            before = {it.id: it.queue_position for it in waiting}
            room_queue.assign_positions(waiting)
            return any(before[it.id] != it.queue_position for it in waiting)

        if run_in_transaction(db, _repair, operation="repair_queue_positions"):
            repaired.append(cid)
            logger.warning("Queue positions rebuilt for company %s", cid)

    return {"companies_checked": len(company_ids), "repaired": repaired}
