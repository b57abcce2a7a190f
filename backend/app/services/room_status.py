"""Live room board: a read-only snapshot per active company."""
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ..models.company import Company
from ..models.user import ROLE_COMMITTEE, User
from ..utils.error_handlers import NotFoundError, get_error_message
from . import scheduling

ROOM_AVAILABLE = "available"
ROOM_IN_USE = "in_use"
ROOM_WAITING = "waiting"

STATUS_MESSAGES = {
    ROOM_AVAILABLE: "Available",
    ROOM_IN_USE: "Interview in progress",
    ROOM_WAITING: "Students waiting",
}


def derive_room_status(has_current: bool, total_waiting: int) -> str:
    if has_current:
        return ROOM_IN_USE
    if total_waiting > 0:
        return ROOM_WAITING
    return ROOM_AVAILABLE


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if isinstance(value, datetime) else None


def _committee_for_room(db: Session, room: str) -> User | None:
    return (
        db.query(User)
        .filter(User.role == ROLE_COMMITTEE, User.assigned_room == room)
        .order_by(User.id.asc())
        .first()
    )


def build_room_status(db: Session, company: Company) -> dict:
    view = scheduling.get_room_queue(db, company_id=company.id)
    current = view.current
    status = derive_room_status(current is not None, view.total_waiting)
    duration = scheduling.interview_duration(company)
    committee = _committee_for_room(db, company.room)

    return {
        "room_id": company.id,
        "room_name": company.room,
        "company_name": company.name,
        "status": status,
        "status_message": STATUS_MESSAGES[status],
        "estimated_duration": duration,
        "current_interview": {
            "interview_id": current.id,
            "student_name": current.student.display_name if current.student else None,
            "started_at": _iso(current.started_at),
        }
        if current
        else None,
        "committee_member": {
            "id": committee.id,
            "name": committee.display_name,
            "email": committee.email,
        }
        if committee
        else None,
        "queue_stats": {
            "total_waiting": view.total_waiting,
            # Wait for the queue head: the running interview's slot, else nothing.
            "estimated_wait_time": duration if current else 0,
        },
        "last_updated": datetime.now(timezone.utc).isoformat(),
    }


def get_room_statuses(db: Session, *, company_id: int | None = None) -> list[dict]:
    query = db.query(Company).filter(Company.is_active.is_(True))
    if company_id is not None:
        query = query.filter(Company.id == int(company_id))
    companies = query.order_by(Company.room.asc()).all()
    if company_id is not None and not companies:
        raise NotFoundError(get_error_message("company_not_found"))
    return [build_room_status(db, company) for company in companies]
