from __future__ import annotations

from pydantic import Field

from course_allocation.schemas.allocation import CamelModel, CourseAllocationOut


class CourseStats(CamelModel):
    total: int
    assigned: int
    unassigned: int
    assignment_rate: int


class FacultyStats(CamelModel):
    total: int
    active: int
    available: int
    utilization_rate: int


class StudentStats(CamelModel):
    total: int
    enrolled: int
    not_enrolled: int
    enrollment_rate: int


class EnrollmentStats(CamelModel):
    total: int
    capacity: int
    utilization_rate: int


class FacultyWorkload(CamelModel):
    faculty_id: str
    name: str
    department: str
    course_count: int


class AllocationStats(CamelModel):
    courses: CourseStats
    faculty: FacultyStats
    students: StudentStats
    enrollments: EnrollmentStats
    faculty_workload: list[FacultyWorkload] = Field(default_factory=list)


class AllocatedCourseOut(CourseAllocationOut):
    enrollment_count: int
    available_slots: int


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_prev_page: bool


class AllocatedCoursePage(CamelModel):
    data: list[AllocatedCourseOut]
    pagination: Pagination
