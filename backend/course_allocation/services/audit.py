from __future__ import annotations

from sqlalchemy.orm import Session

from course_allocation.models.activity_log import ActivityLog
from course_allocation.models.course import Course
from course_allocation.models.enrollment import Enrollment
from course_allocation.models.user import User


def log_activity(
    db: Session,
    *,
    user: User | None,
    action: str,
    entity_type: str,
    entity_id: str,
    details: dict | None = None,
) -> None:
    """Stage an audit row; it commits or rolls back with the caller's transaction."""
    record = ActivityLog(
        user_id=user.id if user is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(record)


def record_faculty_assignment(
    db: Session,
    *,
    actor: User | None,
    course: Course,
    previous_faculty_id: str | None,
    schedule_replaced: bool,
    forced: bool,
    bulk: bool,
) -> None:
    log_activity(
        db,
        user=actor,
        action="course.faculty_assigned",
        entity_type="course",
        entity_id=course.id,
        details={
            "faculty_id": course.faculty_id,
            "previous_faculty_id": previous_faculty_id,
            "schedule_replaced": schedule_replaced,
            "forced": forced,
            "bulk": bulk,
        },
    )


def record_enrollment(db: Session, *, actor: User | None, enrollment: Enrollment, forced: bool, bulk: bool) -> None:
    log_activity(
        db,
        user=actor,
        action="enrollment.created",
        entity_type="enrollment",
        entity_id=enrollment.id,
        details={
            "student_id": enrollment.student_id,
            "course_id": enrollment.course_id,
            "forced": forced,
            "bulk": bulk,
        },
    )
