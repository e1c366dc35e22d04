import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from course_allocation.db.base import Base


class EnrollmentStatus(str, Enum):
    active = "active"
    completed = "completed"
    dropped = "dropped"


# Statuses that hold a seat and block a second enrollment for the same pair.
SEAT_HOLDING_STATUSES = (EnrollmentStatus.active, EnrollmentStatus.completed)

_SEAT_HOLDING_CLAUSE = text("status IN ('active', 'completed')")


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (
        Index(
            "uq_enrollments_active_pair",
            "student_id",
            "course_id",
            unique=True,
            postgresql_where=_SEAT_HOLDING_CLAUSE,
            sqlite_where=_SEAT_HOLDING_CLAUSE,
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("students.id", ondelete="CASCADE"), index=True, nullable=False
    )
    course_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("courses.id", ondelete="CASCADE"), index=True, nullable=False
    )
    status: Mapped[EnrollmentStatus] = mapped_column(
        SAEnum(EnrollmentStatus, name="enrollment_status"), nullable=False, default=EnrollmentStatus.active
    )
    enrollment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False)
    semester: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
