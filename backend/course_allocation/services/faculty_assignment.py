from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from course_allocation.core.exceptions import (
    MalformedTimeSlotError,
    ResourceNotFoundError,
    TransactionFailureError,
)
from course_allocation.db.session import atomic
from course_allocation.models.course import Course
from course_allocation.models.faculty import Faculty
from course_allocation.models.user import User
from course_allocation.schemas.allocation import (
    AssignmentItem,
    AssignmentPolicy,
    AssignmentResult,
    BulkAssignmentItemResult,
    BulkAssignmentResult,
    BulkAssignmentSummary,
    ConflictResolution,
    ItemConflicts,
    ItemStatus,
    ScheduleConflict,
)
from course_allocation.services.audit import record_faculty_assignment
from course_allocation.services.conflict_detector import (
    PlannedAssignment,
    find_conflicts,
    find_conflicts_in_schedules,
)
from course_allocation.services.projections import course_projection
from course_allocation.services.storage import ScopeFilter, get_course, get_faculty
from course_allocation.services.time_slots import Interval, normalize_schedule

logger = logging.getLogger(__name__)


def _apply_assignment(
    db: Session,
    course: Course,
    faculty: Faculty,
    schedule_override: list[Interval] | None,
    *,
    now: datetime,
    actor: User | None,
    forced: bool = False,
    bulk: bool = False,
) -> None:
    previous_faculty_id = course.faculty_id
    course.faculty_id = faculty.id
    if schedule_override is not None:
        course.schedule = [slot.to_dict() for slot in schedule_override]
    course.last_modified = now
    record_faculty_assignment(
        db,
        actor=actor,
        course=course,
        previous_faculty_id=previous_faculty_id,
        schedule_replaced=schedule_override is not None,
        forced=forced,
        bulk=bulk,
    )


def assign_faculty(
    db: Session,
    course_id: str,
    faculty_id: str,
    schedule: Sequence[object] | None = None,
    policy: AssignmentPolicy = AssignmentPolicy.reject_on_conflict,
    *,
    actor: User | None = None,
) -> AssignmentResult:
    """Assign one faculty member to one course.

    The course row is locked for the whole check-then-write unit. With the default
    policy any overlap with the faculty member's other courses in the same academic
    year and semester returns a ``conflict`` result and leaves the course untouched;
    ``force`` assigns regardless. ``schedule`` replaces the course schedule when given.
    """
    with atomic(db):
        course = get_course(db, course_id, for_update=True)
        if course is None:
            raise ResourceNotFoundError("Course", course_id)
        faculty = get_faculty(db, faculty_id)
        if faculty is None:
            raise ResourceNotFoundError("Faculty", faculty_id)

        override = normalize_schedule(schedule) if schedule is not None else None
        candidate = override if override is not None else normalize_schedule(course.schedule)
        conflicts = find_conflicts(
            db,
            faculty.id,
            candidate,
            exclude_course_id=course.id,
            scope=ScopeFilter.for_course(course),
        )
        if conflicts and policy != AssignmentPolicy.force:
            logger.info(
                "Rejected assignment of faculty %s to course %s: %d conflict(s)",
                faculty.id,
                course.id,
                len(conflicts),
            )
            return AssignmentResult(
                status=ItemStatus.conflict,
                message="Schedule conflicts detected",
                conflicts=conflicts,
            )

        _apply_assignment(
            db,
            course,
            faculty,
            override,
            now=datetime.now(timezone.utc),
            actor=actor,
            forced=bool(conflicts),
        )

    if conflicts:
        logger.warning("Faculty %s force-assigned to course %s despite %d conflict(s)", faculty.id, course.id, len(conflicts))
    return AssignmentResult(
        status=ItemStatus.success,
        message="Faculty assigned to course successfully",
        course=course_projection(course, faculty),
        conflicts=conflicts,
    )


@dataclass
class _PendingAssignment:
    result: BulkAssignmentItemResult
    course: Course
    faculty: Faculty
    schedule_override: list[Interval] | None


@dataclass
class _ValidatedBatch:
    results: list[BulkAssignmentItemResult] = field(default_factory=list)
    pending: list[_PendingAssignment] = field(default_factory=list)
    conflicts: list[ItemConflicts] = field(default_factory=list)


def _validate_batch(db: Session, assignments: Sequence[AssignmentItem]) -> _ValidatedBatch:
    batch = _ValidatedBatch()
    # Earlier pending items of this batch, keyed by (faculty, year, semester).
    planned: dict[tuple[str, str, str], list[PlannedAssignment]] = defaultdict(list)
    # Stored rows of these courses are stale once the batch commits.
    pending_course_ids: set[str] = set()
    seen_course_ids: set[str] = set()

    for item in assignments:
        course = get_course(db, item.course_id, for_update=True)
        if course is None:
            batch.results.append(
                BulkAssignmentItemResult(
                    course_id=item.course_id,
                    faculty_id=item.faculty_id,
                    status=ItemStatus.error,
                    message="Course not found",
                )
            )
            continue
        if course.id in seen_course_ids:
            batch.results.append(
                BulkAssignmentItemResult(
                    course_id=course.id,
                    faculty_id=item.faculty_id,
                    status=ItemStatus.error,
                    message="Course appears more than once in batch",
                    course_name=course.name,
                )
            )
            continue
        seen_course_ids.add(course.id)

        faculty = get_faculty(db, item.faculty_id)
        if faculty is None:
            batch.results.append(
                BulkAssignmentItemResult(
                    course_id=item.course_id,
                    faculty_id=item.faculty_id,
                    status=ItemStatus.error,
                    message="Faculty not found",
                    course_name=course.name,
                )
            )
            continue

        scope_key = (faculty.id, course.academic_year, course.semester)
        try:
            override = normalize_schedule(item.schedule) if item.schedule is not None else None
            candidate = override if override is not None else normalize_schedule(course.schedule)
            conflicts: list[ScheduleConflict] = find_conflicts(
                db,
                faculty.id,
                candidate,
                exclude_course_id=course.id,
                scope=ScopeFilter.for_course(course),
                superseded_course_ids=pending_course_ids,
            )
            conflicts.extend(
                find_conflicts_in_schedules(planned[scope_key], candidate, exclude_course_id=course.id)
            )
        except MalformedTimeSlotError as exc:
            batch.results.append(
                BulkAssignmentItemResult(
                    course_id=course.id,
                    faculty_id=faculty.id,
                    status=ItemStatus.error,
                    message=exc.message,
                    course_name=course.name,
                    faculty_name=faculty.full_name,
                )
            )
            continue

        if conflicts:
            batch.conflicts.append(
                ItemConflicts(course_id=course.id, faculty_id=faculty.id, conflicts=conflicts)
            )
            batch.results.append(
                BulkAssignmentItemResult(
                    course_id=course.id,
                    faculty_id=faculty.id,
                    status=ItemStatus.conflict,
                    message="Schedule conflict detected",
                    course_name=course.name,
                    faculty_name=faculty.full_name,
                    conflicts=conflicts,
                )
            )
            continue

        result = BulkAssignmentItemResult(
            course_id=course.id,
            faculty_id=faculty.id,
            status=ItemStatus.pending,
            message="Validated",
            course_name=course.name,
            faculty_name=faculty.full_name,
        )
        batch.results.append(result)
        batch.pending.append(
            _PendingAssignment(result=result, course=course, faculty=faculty, schedule_override=override)
        )
        pending_course_ids.add(course.id)
        planned[scope_key].append(
            PlannedAssignment(
                course_id=course.id,
                course_name=course.name,
                course_code=course.code,
                schedule=candidate,
            )
        )
    return batch


def _summarize(batch: _ValidatedBatch) -> BulkAssignmentSummary:
    return BulkAssignmentSummary(
        total=len(batch.results),
        successful=sum(1 for result in batch.results if result.status == ItemStatus.success),
        errors=sum(1 for result in batch.results if result.status == ItemStatus.error),
        conflicts=sum(1 for result in batch.results if result.status == ItemStatus.conflict),
    )


def bulk_assign_faculty(
    db: Session,
    assignments: Sequence[AssignmentItem],
    conflict_resolution: ConflictResolution = ConflictResolution.abort,
    *,
    actor: User | None = None,
) -> BulkAssignmentResult:
    """Assign faculty to many courses as one all-or-nothing unit.

    Every item is validated first, in input order. With ``abort`` a single conflict
    rejects the whole batch; with ``skip`` conflicting items are left out. The
    remaining items are written in one transaction: a storage failure rolls all of
    them back and reports each as ``error``.
    """
    try:
        batch = _validate_batch(db, assignments)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Bulk faculty assignment validation failed")
        raise TransactionFailureError("Could not validate bulk assignment") from exc

    if conflict_resolution == ConflictResolution.abort and batch.conflicts:
        db.rollback()
        for entry in batch.pending:
            entry.result.message = "Not applied: batch rejected because of schedule conflicts"
        summary = _summarize(batch)
        logger.warning(
            "Bulk faculty assignment rejected: %d of %d item(s) conflict",
            summary.conflicts,
            summary.total,
        )
        return BulkAssignmentResult(
            committed=False,
            message="Schedule conflicts detected. No assignments were made.",
            results=batch.results,
            conflicts=batch.conflicts,
            summary=summary,
        )

    now = datetime.now(timezone.utc)
    try:
        with atomic(db):
            for entry in batch.pending:
                _apply_assignment(
                    db,
                    entry.course,
                    entry.faculty,
                    entry.schedule_override,
                    now=now,
                    actor=actor,
                    bulk=True,
                )
                db.flush()
    except TransactionFailureError as exc:
        for entry in batch.pending:
            entry.result.status = ItemStatus.error
            entry.result.message = exc.message
        summary = _summarize(batch)
        return BulkAssignmentResult(
            committed=False,
            message="Bulk assignment failed. All assignments were rolled back.",
            results=batch.results,
            conflicts=batch.conflicts,
            summary=summary,
        )

    for entry in batch.pending:
        entry.result.status = ItemStatus.success
        entry.result.message = "Faculty assigned successfully"
    summary = _summarize(batch)
    logger.info(
        "Bulk faculty assignment committed: total=%d successful=%d errors=%d conflicts=%d",
        summary.total,
        summary.successful,
        summary.errors,
        summary.conflicts,
    )
    return BulkAssignmentResult(
        committed=True,
        message="Bulk assignment completed",
        results=batch.results,
        conflicts=batch.conflicts,
        summary=summary,
    )
