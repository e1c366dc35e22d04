from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from course_allocation.core.exceptions import (
    CapacityExceededError,
    DuplicateEnrollmentError,
    ResourceNotFoundError,
    TransactionFailureError,
)
from course_allocation.db.session import atomic
from course_allocation.models.course import Course
from course_allocation.models.enrollment import Enrollment, EnrollmentStatus
from course_allocation.models.student import Student
from course_allocation.models.user import User
from course_allocation.schemas.allocation import (
    BulkEnrollmentItemResult,
    BulkEnrollmentResult,
    BulkEnrollmentSummary,
    EnrollmentItem,
    ItemStatus,
)
from course_allocation.services.audit import record_enrollment
from course_allocation.services.storage import (
    count_seat_holding_enrollments,
    find_seat_holding_enrollment,
    get_course,
    get_student,
)

logger = logging.getLogger(__name__)


def _create_enrollment(
    db: Session,
    student_id: str,
    course_id: str,
    *,
    force: bool,
    actor: User | None,
    bulk: bool,
) -> tuple[Enrollment, Student, Course]:
    # Checks run in this order and the first failure wins.
    student = get_student(db, student_id)
    if student is None:
        raise ResourceNotFoundError("Student", student_id)
    # Locking the course row serialises concurrent capacity checks for the same course.
    course = get_course(db, course_id, for_update=True)
    if course is None:
        raise ResourceNotFoundError("Course", course_id)
    if find_seat_holding_enrollment(db, student.id, course.id) is not None:
        raise DuplicateEnrollmentError(student.id, course.id)
    if not force:
        enrolled = count_seat_holding_enrollments(db, course.id)
        if enrolled >= course.max_capacity:
            raise CapacityExceededError(course.id, course.max_capacity, enrolled)

    enrollment = Enrollment(
        id=str(uuid.uuid4()),
        student_id=student.id,
        course_id=course.id,
        status=EnrollmentStatus.active,
        enrollment_date=datetime.now(timezone.utc),
        academic_year=course.academic_year,
        semester=course.semester,
    )
    db.add(enrollment)
    record_enrollment(db, actor=actor, enrollment=enrollment, forced=force, bulk=bulk)
    db.flush()
    return enrollment, student, course


def enroll_student(
    db: Session,
    student_id: str,
    course_id: str,
    force: bool = False,
    *,
    actor: User | None = None,
) -> Enrollment:
    """Enroll one student, raising the AppError for the first precondition that fails.

    ``force`` skips only the capacity check; duplicates are always rejected.
    """
    with atomic(db):
        enrollment, _, _ = _create_enrollment(
            db, student_id, course_id, force=force, actor=actor, bulk=False
        )
    return enrollment


def _item_failure(item: EnrollmentItem, status: ItemStatus, code: str, message: str) -> BulkEnrollmentItemResult:
    return BulkEnrollmentItemResult(
        student_id=item.student_id,
        course_id=item.course_id,
        status=status,
        code=code,
        message=message,
    )


def bulk_enroll_students(
    db: Session,
    enrollments: Sequence[EnrollmentItem],
    force: bool = False,
    *,
    actor: User | None = None,
) -> BulkEnrollmentResult:
    """Enroll many students, one independent attempt per item.

    Each item runs in its own savepoint inside a single session, so a rejected or
    failed item never undoes its siblings, and later items see the seats taken by
    earlier ones. ``force`` lifts the capacity check for the whole batch.
    """
    results: list[BulkEnrollmentItemResult] = []
    try:
        with atomic(db):
            for item in enrollments:
                try:
                    with db.begin_nested():
                        enrollment, student, course = _create_enrollment(
                            db,
                            item.student_id,
                            item.course_id,
                            force=force,
                            actor=actor,
                            bulk=True,
                        )
                except ResourceNotFoundError as exc:
                    results.append(_item_failure(item, ItemStatus.error, "not_found", exc.message))
                except DuplicateEnrollmentError as exc:
                    results.append(_item_failure(item, ItemStatus.conflict, "duplicate_enrollment", exc.message))
                except CapacityExceededError as exc:
                    results.append(_item_failure(item, ItemStatus.error, "capacity_exceeded", exc.message))
                except SQLAlchemyError:
                    logger.warning(
                        "Enrollment of student %s in course %s failed",
                        item.student_id,
                        item.course_id,
                        exc_info=True,
                    )
                    results.append(
                        _item_failure(item, ItemStatus.error, "storage_error", "Enrollment could not be saved")
                    )
                else:
                    results.append(
                        BulkEnrollmentItemResult(
                            student_id=student.id,
                            course_id=course.id,
                            status=ItemStatus.success,
                            code="enrolled",
                            message="Successfully enrolled",
                            enrollment_id=enrollment.id,
                            student_name=student.full_name,
                            course_name=course.name,
                        )
                    )
    except TransactionFailureError as exc:
        for result in results:
            if result.status == ItemStatus.success:
                result.status = ItemStatus.error
                result.code = "transaction_failure"
                result.message = exc.message
                result.enrollment_id = None

    summary = BulkEnrollmentSummary(
        total=len(results),
        successful=sum(1 for result in results if result.status == ItemStatus.success),
        conflicts=sum(1 for result in results if result.status == ItemStatus.conflict),
        errors=sum(1 for result in results if result.status == ItemStatus.error),
    )
    logger.info(
        "Bulk enrollment finished: total=%d successful=%d conflicts=%d errors=%d",
        summary.total,
        summary.successful,
        summary.conflicts,
        summary.errors,
    )
    return BulkEnrollmentResult(message="Bulk enrollment completed", results=results, summary=summary)
