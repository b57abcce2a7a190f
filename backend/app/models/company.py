from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import PARTIAL_INDEX_DIALECTS, Base


class Company(Base):
    __tablename__ = "companies"
    __table_args__ = (
        # One active company per room label.
        Index(
            "uq_companies_active_room",
            "room",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ).ddl_if(dialect=PARTIAL_INDEX_DIALECTS),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    sector = Column(String(120), nullable=True)
    website = Column(String(255), nullable=True)
    room = Column(String(50), nullable=False, index=True)
    estimated_interview_duration = Column(Integer, nullable=False, default=20)  # minutes, 5..120
    is_active = Column(Boolean, nullable=False, default=True)
    # Bumped by every scheduling write for this company; the UPDATE doubles as the room lock.
    queue_version = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    interviews = relationship("Interview", back_populates="company")
