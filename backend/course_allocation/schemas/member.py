from __future__ import annotations

from enum import Enum

from course_allocation.schemas.allocation import CamelModel


class MemberRole(str, Enum):
    faculty = "faculty"
    student = "student"


class FacultyProfile(CamelModel):
    role: MemberRole = MemberRole.faculty
    id: str
    name: str
    email: str
    department: str
    is_active: bool


class StudentProfile(CamelModel):
    role: MemberRole = MemberRole.student
    id: str
    name: str
    email: str
    roll_number: str
    class_id: str | None = None
    section: str | None = None
    is_active: bool
