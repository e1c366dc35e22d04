from __future__ import annotations

from collections.abc import Collection, Iterable
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from course_allocation.schemas.allocation import ScheduleConflict
from course_allocation.services.storage import ScopeFilter, find_conflicting_schedules
from course_allocation.services.time_slots import Interval, normalize_schedule, overlaps


@dataclass
class PlannedAssignment:
    """A course a faculty member will teach once the current batch commits."""

    course_id: str
    course_name: str
    course_code: str | None
    schedule: list[Interval] = field(default_factory=list)


def _compare_schedules(
    planned: PlannedAssignment,
    candidate: list[Interval],
) -> list[ScheduleConflict]:
    # Schedules hold a handful of slots, so a full pairwise scan is enough.
    conflicts: list[ScheduleConflict] = []
    for existing_slot in planned.schedule:
        for candidate_slot in candidate:
            if overlaps(existing_slot, candidate_slot):
                conflicts.append(
                    ScheduleConflict(
                        course_id=planned.course_id,
                        course_name=planned.course_name,
                        course_code=planned.course_code,
                        existing_slot=existing_slot.to_dict(),
                        candidate_slot=candidate_slot.to_dict(),
                    )
                )
    return conflicts


def find_conflicts_in_schedules(
    planned: Iterable[PlannedAssignment],
    candidate_schedule: Iterable[object] | None,
    exclude_course_id: str | None = None,
) -> list[ScheduleConflict]:
    candidate = normalize_schedule(candidate_schedule)
    if not candidate:
        return []
    conflicts: list[ScheduleConflict] = []
    for item in planned:
        if exclude_course_id and item.course_id == exclude_course_id:
            continue
        conflicts.extend(_compare_schedules(item, candidate))
    return conflicts


def find_conflicts(
    db: Session,
    faculty_id: str,
    candidate_schedule: Iterable[object] | None,
    exclude_course_id: str | None = None,
    scope: ScopeFilter | None = None,
    *,
    superseded_course_ids: Collection[str] = (),
) -> list[ScheduleConflict]:
    """Return every (existing slot, candidate slot) overlap for the faculty's current load.

    Read only. An empty list means the candidate schedule fits; malformed slots on
    either side raise MalformedTimeSlotError. Stored courses listed in
    ``superseded_course_ids`` are left out: their pending state is compared by the
    caller instead.
    """
    candidate = normalize_schedule(candidate_schedule)
    if not candidate:
        return []

    existing = [
        PlannedAssignment(
            course_id=course.id,
            course_name=course.name,
            course_code=course.code,
            schedule=normalize_schedule(course.schedule),
        )
        for course in find_conflicting_schedules(db, faculty_id, scope, exclude_course_id)
        if course.id not in superseded_course_ids
    ]
    return find_conflicts_in_schedules(existing, candidate, exclude_course_id)
