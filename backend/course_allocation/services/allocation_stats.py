from __future__ import annotations

import math
from dataclasses import dataclass

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from course_allocation.models.course import Course
from course_allocation.models.enrollment import SEAT_HOLDING_STATUSES, Enrollment
from course_allocation.models.faculty import Faculty
from course_allocation.models.student import Student
from course_allocation.schemas.stats import (
    AllocatedCourseOut,
    AllocatedCoursePage,
    AllocationStats,
    CourseStats,
    EnrollmentStats,
    FacultyStats,
    FacultyWorkload,
    Pagination,
    StudentStats,
)
from course_allocation.services.projections import course_projection
from course_allocation.services.storage import ScopeFilter, seat_counts_by_course


def percentage(part: int, whole: int) -> int:
    """Integer percentage rounded half up; 0 when there is nothing to divide by."""
    if whole <= 0:
        return 0
    return (part * 200 + whole) // (2 * whole)


def _scalar(db: Session, statement) -> int:
    return int(db.execute(statement).scalar_one() or 0)


def faculty_workload(db: Session, scope: ScopeFilter) -> list[FacultyWorkload]:
    statement = scope.apply(
        select(
            Faculty.id,
            Faculty.first_name,
            Faculty.last_name,
            Faculty.department,
            func.count(Course.id),
        )
        .join(Course, Course.faculty_id == Faculty.id)
        .group_by(Faculty.id, Faculty.first_name, Faculty.last_name, Faculty.department)
    )
    rows = [
        FacultyWorkload(
            faculty_id=faculty_id,
            name=f"{first_name} {last_name}".strip(),
            department=department,
            course_count=int(course_count),
        )
        for faculty_id, first_name, last_name, department, course_count in db.execute(statement).all()
    ]
    rows.sort(key=lambda item: (-item.course_count, item.name, item.faculty_id))
    return rows


def compute_allocation_stats(
    db: Session,
    scope: ScopeFilter | None = None,
    *,
    include_workload: bool = True,
) -> AllocationStats:
    scope = scope or ScopeFilter()

    total_courses = _scalar(db, scope.apply(select(func.count(Course.id))))
    assigned_courses = _scalar(
        db, scope.apply(select(func.count(Course.id)).where(Course.faculty_id.is_not(None)))
    )

    total_faculty = _scalar(db, select(func.count(Faculty.id)).where(Faculty.is_active.is_(True)))
    teaching_faculty = _scalar(
        db,
        scope.apply(
            select(func.count(distinct(Course.faculty_id)))
            .join(Faculty, Faculty.id == Course.faculty_id)
            .where(Faculty.is_active.is_(True))
        ),
    )

    total_students = _scalar(db, select(func.count(Student.id)).where(Student.is_active.is_(True)))
    enrolled_students = _scalar(
        db,
        scope.apply(
            select(func.count(distinct(Enrollment.student_id)))
            .join(Course, Course.id == Enrollment.course_id)
            .join(Student, Student.id == Enrollment.student_id)
            .where(
                Enrollment.status.in_(SEAT_HOLDING_STATUSES),
                Student.is_active.is_(True),
            )
        ),
    )

    seat_holding = _scalar(
        db,
        scope.apply(
            select(func.count(Enrollment.id))
            .join(Course, Course.id == Enrollment.course_id)
            .where(Enrollment.status.in_(SEAT_HOLDING_STATUSES))
        ),
    )
    capacity = _scalar(db, scope.apply(select(func.coalesce(func.sum(Course.max_capacity), 0))))

    return AllocationStats(
        courses=CourseStats(
            total=total_courses,
            assigned=assigned_courses,
            unassigned=total_courses - assigned_courses,
            assignment_rate=percentage(assigned_courses, total_courses),
        ),
        faculty=FacultyStats(
            total=total_faculty,
            active=teaching_faculty,
            available=max(total_faculty - teaching_faculty, 0),
            utilization_rate=percentage(teaching_faculty, total_faculty),
        ),
        students=StudentStats(
            total=total_students,
            enrolled=enrolled_students,
            not_enrolled=max(total_students - enrolled_students, 0),
            enrollment_rate=percentage(enrolled_students, total_students),
        ),
        enrollments=EnrollmentStats(
            total=seat_holding,
            capacity=capacity,
            utilization_rate=percentage(seat_holding, capacity),
        ),
        faculty_workload=faculty_workload(db, scope) if include_workload else [],
    )


@dataclass(frozen=True)
class CourseListFilter:
    faculty_id: str | None = None
    academic_year: str | None = None
    semester: str | None = None
    class_id: str | None = None
    section: str | None = None


def list_allocated_courses(
    db: Session,
    filters: CourseListFilter,
    *,
    page: int = 1,
    limit: int = 10,
) -> AllocatedCoursePage:
    page = max(page, 1)
    limit = max(limit, 1)

    statement = ScopeFilter(filters.academic_year, filters.semester).apply(select(Course))
    if filters.faculty_id:
        statement = statement.where(Course.faculty_id == filters.faculty_id)
    if filters.class_id:
        statement = statement.where(Course.class_id == filters.class_id)
    if filters.section:
        statement = statement.where(Course.section == filters.section)

    total = _scalar(db, select(func.count()).select_from(statement.subquery()))
    courses = list(
        db.execute(
            statement.order_by(Course.academic_year.desc(), Course.semester.asc(), Course.name.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()
    )

    faculty_ids = {course.faculty_id for course in courses if course.faculty_id}
    faculty_by_id = (
        {item.id: item for item in db.execute(select(Faculty).where(Faculty.id.in_(faculty_ids))).scalars()}
        if faculty_ids
        else {}
    )
    seats = seat_counts_by_course(db, [course.id for course in courses])

    rows: list[AllocatedCourseOut] = []
    for course in courses:
        enrolled = seats.get(course.id, 0)
        projection = course_projection(course, faculty_by_id.get(course.faculty_id))
        rows.append(
            AllocatedCourseOut(
                **projection.model_dump(),
                enrollment_count=enrolled,
                available_slots=max(course.max_capacity - enrolled, 0),
            )
        )

    total_pages = math.ceil(total / limit) if total else 0
    return AllocatedCoursePage(
        data=rows,
        pagination=Pagination(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            items_per_page=limit,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )
