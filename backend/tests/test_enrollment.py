import pytest
from sqlalchemy import func, select

from course_allocation.core.exceptions import (
    CapacityExceededError,
    DuplicateEnrollmentError,
    ResourceNotFoundError,
)
from course_allocation.models import ActivityLog, Enrollment, EnrollmentStatus
from course_allocation.services.enrollment import enroll_student


def enrollment_count(db) -> int:
    return db.execute(select(func.count(Enrollment.id))).scalar_one()


def test_enrolls_student_into_course_term(db, seed):
    student = seed.student()
    course = seed.course("CS101", academic_year="2025-2026", semester="2")

    enrollment = enroll_student(db, student.id, course.id)

    assert enrollment.student_id == student.id
    assert enrollment.course_id == course.id
    assert enrollment.status == EnrollmentStatus.active
    assert enrollment.academic_year == "2025-2026"
    assert enrollment.semester == "2"
    assert enrollment.enrollment_date is not None
    assert enrollment_count(db) == 1


def test_duplicate_enrollment_is_rejected(db, seed):
    student = seed.student()
    course = seed.course("CS101")
    seed.enrollment(student, course)

    with pytest.raises(DuplicateEnrollmentError) as exc_info:
        enroll_student(db, student.id, course.id)

    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "Student already enrolled in this course"
    assert enrollment_count(db) == 1


def test_completed_enrollment_also_blocks_re_enrollment(db, seed):
    student = seed.student()
    course = seed.course("CS101")
    seed.enrollment(student, course, status=EnrollmentStatus.completed)

    with pytest.raises(DuplicateEnrollmentError):
        enroll_student(db, student.id, course.id)


def test_dropped_enrollment_allows_re_enrollment(db, seed):
    student = seed.student()
    course = seed.course("CS101")
    seed.enrollment(student, course, status=EnrollmentStatus.dropped)

    enrollment = enroll_student(db, student.id, course.id)

    assert enrollment.status == EnrollmentStatus.active
    assert enrollment_count(db) == 2


def test_full_course_rejects_enrollment(db, seed):
    course = seed.course("CS101", max_capacity=1)
    seed.enrollment(seed.student(), course)
    student = seed.student()

    with pytest.raises(CapacityExceededError) as exc_info:
        enroll_student(db, student.id, course.id)

    assert exc_info.value.details == {"course_id": course.id, "capacity": 1, "enrolled": 1}
    assert enrollment_count(db) == 1


def test_dropped_enrollments_do_not_hold_seats(db, seed):
    course = seed.course("CS101", max_capacity=1)
    seed.enrollment(seed.student(), course, status=EnrollmentStatus.dropped)

    enroll_student(db, seed.student().id, course.id)

    assert enrollment_count(db) == 2


def test_zero_capacity_course_admits_nobody(db, seed):
    course = seed.course("CS101", max_capacity=0)

    with pytest.raises(CapacityExceededError):
        enroll_student(db, seed.student().id, course.id)


def test_force_bypasses_capacity_only(db, seed):
    course = seed.course("CS101", max_capacity=1)
    enrolled = seed.student()
    seed.enrollment(enrolled, course)

    enroll_student(db, seed.student().id, course.id, force=True)
    assert enrollment_count(db) == 2

    with pytest.raises(DuplicateEnrollmentError):
        enroll_student(db, enrolled.id, course.id, force=True)


def test_missing_student_is_checked_before_course(db, seed):
    with pytest.raises(ResourceNotFoundError) as exc_info:
        enroll_student(db, "missing-student", "missing-course")

    assert exc_info.value.resource_type == "Student"
    assert exc_info.value.message == "Student not found"


def test_missing_course_raises_not_found(db, seed):
    student = seed.student()

    with pytest.raises(ResourceNotFoundError) as exc_info:
        enroll_student(db, student.id, "missing-course")

    assert exc_info.value.resource_type == "Course"


def test_duplicate_is_reported_before_capacity(db, seed):
    student = seed.student()
    course = seed.course("CS101", max_capacity=1)
    seed.enrollment(student, course)

    with pytest.raises(DuplicateEnrollmentError):
        enroll_student(db, student.id, course.id)


def test_enrollment_is_audited(db, seed):
    actor = seed.user()
    student = seed.student()
    course = seed.course("CS101")

    enrollment = enroll_student(db, student.id, course.id, actor=actor)

    entry = db.execute(select(ActivityLog)).scalar_one()
    assert entry.action == "enrollment.created"
    assert entry.entity_id == enrollment.id
    assert entry.details == {
        "student_id": student.id,
        "course_id": course.id,
        "forced": False,
        "bulk": False,
    }
