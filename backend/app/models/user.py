from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base

ROLE_STUDENT = "student"
ROLE_COMMITTEE = "committee"
ROLE_ADMIN = "admin"
USER_ROLES = (ROLE_STUDENT, ROLE_COMMITTEE, ROLE_ADMIN)

STUDENT_STATUSES = ("ensa", "external")


class User(Base):
    """Accounts are owned by the identity service; the scheduler only reads them."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=True)
    first_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, index=True)  # student | committee | admin
    student_status = Column(String(20), nullable=True)  # ensa | external (students only)
    assigned_room = Column(String(50), nullable=True, index=True)  # committee only
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    interviews = relationship("Interview", back_populates="student")

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.name) if p]
        if parts:
            return " ".join(parts)
        return self.email.split("@", 1)[0] if self.email else f"user-{self.id}"
