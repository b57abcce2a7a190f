import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..config import ROOM_QUEUE_PREVIEW_SIZE
from ..database import get_db
from ..models.company import Company
from ..models.user import ROLE_ADMIN, User
from ..schemas.queue import (
    StartInterviewIn,
    company_to_dict,
    history_entry_to_dict,
    interview_to_dict,
    queue_entry_to_dict,
)
from ..services import scheduling
from ..utils.dependencies import caller_id
from ..utils.error_handlers import ValidationError, get_error_message
from ..utils.rate_limit import rate_limited
from ..utils.roles import committee_only

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/committee", tags=["Committee"])


def _room_company(db: Session, user: dict, company_id: int | None) -> Company:
    """
    Company whose room the caller is acting on.

    Committee members always act on their assigned room. Admins have no room of their
    own and name the company with `?company_id=`.
    """
    if company_id is not None and user.get("role") == ROLE_ADMIN:
        return scheduling.get_company(db, company_id=company_id)

    member = db.get(User, caller_id(user))
    room = (member.assigned_room or "").strip() if member else ""
    if not room:
        key = "company_required" if user.get("role") == ROLE_ADMIN else "no_company_for_room"
        raise ValidationError(get_error_message(key), details={"assigned_room": None})
    return scheduling.get_company_for_room(db, room=room)


def _student_name(it) -> str | None:  # noqa: ANN001
    return it.student.display_name if it is not None and it.student else None


@router.get("/queue", dependencies=[Depends(rate_limited("general"))])
def room_queue(
    company_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user=Depends(committee_only),
):
    company = _room_company(db, user, company_id)
    view = scheduling.get_room_queue(db, company_id=company.id)
    return {
        "success": True,
        "company": company_to_dict(view.company),
        "current_interview": queue_entry_to_dict(view.current, student_name=_student_name(view.current))
        if view.current
        else None,
        "next_up": queue_entry_to_dict(view.next_up, student_name=_student_name(view.next_up))
        if view.next_up
        else None,
        "waiting_queue": [
            queue_entry_to_dict(it, student_name=_student_name(it)) for it in view.waiting[:ROOM_QUEUE_PREVIEW_SIZE]
        ],
        "total_waiting": view.total_waiting,
        "stats": scheduling.get_queue_stats(db, company_id=view.company.id),
    }


@router.post("/interviews/start", dependencies=[Depends(rate_limited("queue"))])
def start_interview(
    body: StartInterviewIn | None = None,
    company_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user=Depends(committee_only),
):
    company = _room_company(db, user, company_id)
    it = scheduling.start_interview(
        db,
        company_id=company.id,
        committee_user_id=caller_id(user),
        interview_id=body.interview_id if body else None,
    )
    return {"success": True, "message": "Interview started.", "interview": interview_to_dict(it)}


@router.post("/interviews/{interview_id}/complete", dependencies=[Depends(rate_limited("queue"))])
def complete_interview(
    interview_id: int,
    db: Session = Depends(get_db),
    user=Depends(committee_only),
):
    it = scheduling.complete_interview(db, interview_id=interview_id, committee_user_id=caller_id(user))
    return {"success": True, "message": "Interview completed.", "interview": interview_to_dict(it)}


@router.post("/interviews/{interview_id}/pass", dependencies=[Depends(rate_limited("queue"))])
def pass_interview(
    interview_id: int,
    db: Session = Depends(get_db),
    user=Depends(committee_only),
):
    it = scheduling.pass_interview(db, interview_id=interview_id, committee_user_id=caller_id(user))
    return {"success": True, "message": "Interview passed.", "interview": interview_to_dict(it)}


@router.post("/next", dependencies=[Depends(rate_limited("queue"))])
def next_student(
    company_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user=Depends(committee_only),
):
    company = _room_company(db, user, company_id)
    it = scheduling.move_to_next_student(db, company_id=company.id, committee_user_id=caller_id(user))
    if it is None:
        return {"success": True, "message": get_error_message("queue_empty"), "interview": None}
    return {"success": True, "message": "Next interview started.", "interview": interview_to_dict(it)}


@router.get("/history", dependencies=[Depends(rate_limited("general"))])
def room_history(
    company_id: int | None = Query(default=None, ge=1),
    status: str | None = Query(default=None),
    day: date | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    user=Depends(committee_only),
):
    company = _room_company(db, user, company_id)
    history = scheduling.get_room_history(
        db, company_id=company.id, status=status, day=day, page=page, limit=limit
    )
    return {
        "success": True,
        "company": company_to_dict(company),
        "interviews": [
            history_entry_to_dict(it, duration_minutes=scheduling.interview_minutes(it))
            for it in history["interviews"]
        ],
        "pagination": {
            "page": history["page"],
            "limit": history["limit"],
            "total": history["total"],
            "pages": history["pages"],
        },
        "stats": history["stats"],
    }


@router.get("/stats", dependencies=[Depends(rate_limited("general"))])
def room_stats(
    company_id: int | None = Query(default=None, ge=1),
    period: str = Query(default="today"),
    db: Session = Depends(get_db),
    user=Depends(committee_only),
):
    company = _room_company(db, user, company_id)
    return {"success": True, "stats": scheduling.get_room_stats(db, company_id=company.id, period=period)}
