from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import PARTIAL_INDEX_DIALECTS, Base

STATUS_WAITING = "waiting"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_PASSED = "passed"

INTERVIEW_STATUSES = (STATUS_WAITING, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED, STATUS_PASSED)
ACTIVE_STATUSES = (STATUS_WAITING, STATUS_IN_PROGRESS)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED, STATUS_PASSED)

OPPORTUNITY_TYPES = ("pfa", "pfe", "employment", "observation")


class Interview(Base):
    __tablename__ = "interviews"
    __table_args__ = (
        # At most one waiting/in_progress claim per (student, company).
        Index(
            "uq_interviews_active_student_company",
            "student_id",
            "company_id",
            unique=True,
            sqlite_where=text("status IN ('waiting', 'in_progress')"),
            postgresql_where=text("status IN ('waiting', 'in_progress')"),
        ).ddl_if(dialect=PARTIAL_INDEX_DIALECTS),
        # At most one running interview per room.
        Index(
            "uq_interviews_company_in_progress",
            "company_id",
            unique=True,
            sqlite_where=text("status = 'in_progress'"),
            postgresql_where=text("status = 'in_progress'"),
        ).ddl_if(dialect=PARTIAL_INDEX_DIALECTS),
        Index("ix_interviews_company_status_position", "company_id", "status", "queue_position"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    # Lifecycle: waiting -> in_progress -> completed | passed, or waiting -> cancelled
    status = Column(String(20), nullable=False, default=STATUS_WAITING, index=True)
    opportunity_type = Column(String(20), nullable=False)  # pfa | pfe | employment | observation

    # Lower score is served first; ties go to the earliest joined_at.
    priority_score = Column(Integer, nullable=False, default=0)
    queue_position = Column(Integer, nullable=True)  # 1-based; NULL once the interview leaves the waiting set

    joined_at = Column(DateTime(timezone=True), nullable=False)  # stored in UTC
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    passed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    student = relationship("User", back_populates="interviews")
    company = relationship("Company", back_populates="interviews")
