import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.queue import InterviewRefIn, JoinQueueIn, interview_to_dict
from ..services import scheduling
from ..utils.dependencies import caller_id
from ..utils.rate_limit import rate_limited
from ..utils.roles import student_only

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["Queue"])


@router.post("/join", dependencies=[Depends(rate_limited("queue"))])
def join_queue(
    body: JoinQueueIn,
    db: Session = Depends(get_db),
    user=Depends(student_only),
):
    it = scheduling.join_queue(
        db,
        student_id=caller_id(user),
        company_id=body.company_id,
        opportunity_type=body.opportunity_type,
    )
    return {
        "success": True,
        "message": "You joined the queue.",
        "position": it.queue_position,
        "interview": interview_to_dict(it),
    }


@router.post("/leave", dependencies=[Depends(rate_limited("queue"))])
def leave_queue(
    body: InterviewRefIn,
    db: Session = Depends(get_db),
    user=Depends(student_only),
):
    return scheduling.leave_queue(db, interview_id=body.interview_id, requester_id=caller_id(user))


@router.post("/reschedule", dependencies=[Depends(rate_limited("queue"))])
def reschedule(
    body: InterviewRefIn,
    db: Session = Depends(get_db),
    user=Depends(student_only),
):
    return scheduling.reschedule_interview(db, interview_id=body.interview_id, requester_id=caller_id(user))


@router.get("/mine", dependencies=[Depends(rate_limited("general"))])
def my_queues(
    db: Session = Depends(get_db),
    user=Depends(student_only),
):
    entries = scheduling.get_student_queues(db, student_id=caller_id(user))
    items = [
        interview_to_dict(
            e.interview,
            include_company=True,
            room_busy=e.room_busy,
            estimated_wait_minutes=e.estimated_wait_minutes,
        )
        for e in entries
    ]
    return {"success": True, "queues": items}


@router.get("/history", dependencies=[Depends(rate_limited("general"))])
def my_history(
    db: Session = Depends(get_db),
    user=Depends(student_only),
):
    student_id = caller_id(user)
    rows = scheduling.get_student_interview_history(db, student_id=student_id)
    return {
        "success": True,
        "interviews": [interview_to_dict(it, include_company=True) for it in rows],
        "stats": scheduling.get_student_stats(db, student_id=student_id),
    }
