"""Response shaping for allocation results.

Everything here is a pure function of already-loaded entities; allocation
operations never shape responses themselves.
"""
from __future__ import annotations

from course_allocation.models.course import Course
from course_allocation.models.faculty import Faculty
from course_allocation.models.student import Student
from course_allocation.schemas.allocation import CourseAllocationOut, FacultySummary
from course_allocation.schemas.member import FacultyProfile, MemberRole, StudentProfile


def faculty_summary(faculty: Faculty | None) -> FacultySummary | None:
    if faculty is None:
        return None
    return FacultySummary(
        id=faculty.id,
        name=faculty.full_name,
        email=faculty.email,
        department=faculty.department,
    )


def course_projection(course: Course, faculty: Faculty | None = None) -> CourseAllocationOut:
    if faculty is not None and faculty.id != course.faculty_id:
        faculty = None
    return CourseAllocationOut(
        id=course.id,
        code=course.code,
        name=course.name,
        academic_year=course.academic_year,
        semester=course.semester,
        class_id=course.class_id,
        section=course.section,
        max_capacity=course.max_capacity,
        schedule=list(course.schedule or []),
        faculty_id=course.faculty_id,
        faculty=faculty_summary(faculty),
        last_modified=course.last_modified,
    )


def project_member(role: MemberRole, entity: Faculty | Student) -> FacultyProfile | StudentProfile:
    if role == MemberRole.faculty:
        if not isinstance(entity, Faculty):
            raise ValueError("Faculty projection requires a Faculty record")
        return FacultyProfile(
            id=entity.id,
            name=entity.full_name,
            email=entity.email,
            department=entity.department,
            is_active=entity.is_active,
        )
    if role == MemberRole.student:
        if not isinstance(entity, Student):
            raise ValueError("Student projection requires a Student record")
        return StudentProfile(
            id=entity.id,
            name=entity.full_name,
            email=entity.email,
            roll_number=entity.roll_number,
            class_id=entity.class_id,
            section=entity.section,
            is_active=entity.is_active,
        )
    raise ValueError(f"Unsupported member role: {role}")
