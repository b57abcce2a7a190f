from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from ..models.company import Company
from ..models.interview import OPPORTUNITY_TYPES, Interview


class JoinQueueIn(BaseModel):
    company_id: int = Field(..., ge=1)
    opportunity_type: str = Field(..., min_length=2, max_length=20)

    @field_validator("opportunity_type")
    @classmethod
    def _known_type(cls, v: str) -> str:
        v2 = (v or "").strip().lower()
        if v2 not in OPPORTUNITY_TYPES:
            raise ValueError(f"opportunity_type must be one of: {', '.join(OPPORTUNITY_TYPES)}")
        return v2


class InterviewRefIn(BaseModel):
    interview_id: int = Field(..., ge=1)


class StartInterviewIn(BaseModel):
    interview_id: int | None = Field(default=None, ge=1)


def _iso(value) -> str | None:  # noqa: ANN001
    return value.isoformat() if isinstance(value, datetime) else None


def company_to_dict(company: Company | None) -> dict | None:
    if company is None:
        return None
    return {
        "id": int(company.id),
        "name": company.name,
        "sector": company.sector,
        "website": company.website,
        "room": company.room,
        "estimated_interview_duration": company.estimated_interview_duration,
        "is_active": bool(company.is_active),
    }


def interview_to_dict(it: Interview, *, include_company: bool = False, **extra) -> dict:
    data = {
        "id": int(it.id),
        "student_id": int(it.student_id),
        "company_id": int(it.company_id),
        "status": it.status,
        "opportunity_type": it.opportunity_type,
        "priority_score": it.priority_score,
        "queue_position": it.queue_position,
        "joined_at": _iso(it.joined_at),
        "started_at": _iso(it.started_at),
        "completed_at": _iso(it.completed_at),
        "passed_at": _iso(it.passed_at),
        "cancelled_at": _iso(it.cancelled_at),
        "updated_at": _iso(it.updated_at),
    }
    if include_company:
        data["company"] = company_to_dict(it.company)
    data.update(extra)
    return data


def queue_entry_to_dict(it: Interview, *, student_name: str | None = None) -> dict:
    """Row of a committee's room view."""
    return {
        "interview_id": int(it.id),
        "student_id": int(it.student_id),
        "student_name": student_name,
        "position": it.queue_position,
        "status": it.status,
        "opportunity_type": it.opportunity_type,
        "priority_score": it.priority_score,
        "joined_at": _iso(it.joined_at),
        "started_at": _iso(it.started_at),
    }


def history_entry_to_dict(it: Interview, *, duration_minutes: int | None = None) -> dict:
    """Row of a committee's room history."""
    student = it.student
    return {
        "interview_id": int(it.id),
        "student_name": student.display_name if student else None,
        "student_email": student.email if student else None,
        "student_status": student.student_status if student else None,
        "opportunity_type": it.opportunity_type,
        "status": it.status,
        "joined_at": _iso(it.joined_at),
        "started_at": _iso(it.started_at),
        "completed_at": _iso(it.completed_at),
        "passed_at": _iso(it.passed_at),
        "cancelled_at": _iso(it.cancelled_at),
        "activity_at": _iso(it.completed_at or it.passed_at or it.cancelled_at or it.updated_at),
        "duration_minutes": duration_minutes,
        "priority_score": it.priority_score,
    }
