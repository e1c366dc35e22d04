from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from course_allocation.models.course import Course
from course_allocation.models.enrollment import SEAT_HOLDING_STATUSES, Enrollment
from course_allocation.models.faculty import Faculty
from course_allocation.models.student import Student


@dataclass(frozen=True)
class ScopeFilter:
    """Academic year/semester partition; a None field matches every value."""

    academic_year: str | None = None
    semester: str | None = None

    @classmethod
    def for_course(cls, course: Course) -> "ScopeFilter":
        return cls(academic_year=course.academic_year, semester=course.semester)

    def apply(self, statement: Select) -> Select:
        if self.academic_year:
            statement = statement.where(Course.academic_year == self.academic_year)
        if self.semester:
            statement = statement.where(Course.semester == self.semester)
        return statement


def get_course(db: Session, course_id: str, *, for_update: bool = False) -> Course | None:
    statement = select(Course).where(Course.id == course_id)
    if for_update:
        statement = statement.with_for_update()
    return db.execute(statement).scalar_one_or_none()


def get_faculty(db: Session, faculty_id: str) -> Faculty | None:
    return db.get(Faculty, faculty_id)


def get_student(db: Session, student_id: str) -> Student | None:
    return db.get(Student, student_id)


def find_conflicting_schedules(
    db: Session,
    faculty_id: str,
    scope: ScopeFilter | None = None,
    exclude_course_id: str | None = None,
) -> list[Course]:
    """Courses currently taught by ``faculty_id`` that a new schedule must be checked against."""
    statement = select(Course).where(Course.faculty_id == faculty_id)
    if scope is not None:
        statement = scope.apply(statement)
    if exclude_course_id:
        statement = statement.where(Course.id != exclude_course_id)
    statement = statement.order_by(Course.code.asc(), Course.id.asc())
    return list(db.execute(statement).scalars())


def find_seat_holding_enrollment(db: Session, student_id: str, course_id: str) -> Enrollment | None:
    return db.execute(
        select(Enrollment)
        .where(
            Enrollment.student_id == student_id,
            Enrollment.course_id == course_id,
            Enrollment.status.in_(SEAT_HOLDING_STATUSES),
        )
        .limit(1)
    ).scalar_one_or_none()


def count_seat_holding_enrollments(db: Session, course_id: str) -> int:
    return int(
        db.execute(
            select(func.count(Enrollment.id)).where(
                Enrollment.course_id == course_id,
                Enrollment.status.in_(SEAT_HOLDING_STATUSES),
            )
        ).scalar_one()
        or 0
    )


def seat_counts_by_course(db: Session, course_ids: list[str]) -> dict[str, int]:
    if not course_ids:
        return {}
    rows = db.execute(
        select(Enrollment.course_id, func.count(Enrollment.id))
        .where(
            Enrollment.course_id.in_(course_ids),
            Enrollment.status.in_(SEAT_HOLDING_STATUSES),
        )
        .group_by(Enrollment.course_id)
    ).all()
    return {course_id: int(count) for course_id, count in rows}
