import pytest

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from course_allocation.models import ActivityLog, Course
from course_allocation.schemas.allocation import AssignmentItem, ConflictResolution, ItemStatus
from course_allocation.services.faculty_assignment import bulk_assign_faculty

MONDAY_NINE = {"day": "Monday", "start_time": "09:00", "end_time": "10:00"}
MONDAY_HALF_NINE = {"day": "Monday", "start_time": "09:30", "end_time": "10:30"}
TUESDAY_NINE = {"day": "Tuesday", "start_time": "09:00", "end_time": "10:00"}


def item(course, faculty, **extra):
    course_id = course if isinstance(course, str) else course.id
    faculty_id = faculty if isinstance(faculty, str) else faculty.id
    return AssignmentItem(course_id=course_id, faculty_id=faculty_id, **extra)


def failing_commit():
    raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


def test_all_clean_items_commit_together(db, seed):
    ada = seed.faculty()
    grace = seed.faculty("Grace", "Hopper")
    first = seed.course("CS101", [MONDAY_NINE])
    second = seed.course("CS102", [TUESDAY_NINE])

    result = bulk_assign_faculty(db, [item(first, ada), item(second, grace)])

    assert result.committed is True
    assert result.message == "Bulk assignment completed"
    assert [entry.status for entry in result.results] == [ItemStatus.success, ItemStatus.success]
    assert result.results[0].message == "Faculty assigned successfully"
    assert result.results[0].faculty_name == "Ada Lovelace"
    assert result.results[1].course_name == second.name
    assert result.summary.model_dump() == {"total": 2, "successful": 2, "errors": 0, "conflicts": 0}
    assert seed.reload(Course, first.id).faculty_id == ada.id
    assert seed.reload(Course, second.id).faculty_id == grace.id


def test_abort_rejects_whole_batch_on_any_conflict(db, seed):
    ada = seed.faculty()
    grace = seed.faculty("Grace", "Hopper")
    seed.course("CS100", [MONDAY_NINE], faculty=ada)
    clean = seed.course("CS101", [TUESDAY_NINE])
    clashing = seed.course("CS102", [MONDAY_HALF_NINE])

    result = bulk_assign_faculty(
        db,
        [item(clean, grace), item(clashing, ada)],
        ConflictResolution.abort,
    )

    assert result.committed is False
    assert result.message == "Schedule conflicts detected. No assignments were made."
    assert result.results[0].status == ItemStatus.pending
    assert result.results[0].message == "Not applied: batch rejected because of schedule conflicts"
    assert result.results[1].status == ItemStatus.conflict
    assert len(result.conflicts) == 1
    assert result.conflicts[0].course_id == clashing.id
    assert result.conflicts[0].conflicts[0].course_code == "CS100"
    assert result.summary.model_dump() == {"total": 2, "successful": 0, "errors": 0, "conflicts": 1}

    assert seed.reload(Course, clean.id).faculty_id is None
    assert seed.reload(Course, clashing.id).faculty_id is None
    assert db.execute(select(ActivityLog)).scalars().all() == []


def test_skip_commits_clean_items_only(db, seed):
    ada = seed.faculty()
    grace = seed.faculty("Grace", "Hopper")
    seed.course("CS100", [MONDAY_NINE], faculty=ada)
    clean = seed.course("CS101", [TUESDAY_NINE])
    clashing = seed.course("CS102", [MONDAY_HALF_NINE])

    result = bulk_assign_faculty(
        db,
        [item(clean, grace), item(clashing, ada)],
        ConflictResolution.skip,
    )

    assert result.committed is True
    assert [entry.status for entry in result.results] == [ItemStatus.success, ItemStatus.conflict]
    assert result.summary.successful == 1
    assert result.summary.conflicts == 1
    assert seed.reload(Course, clean.id).faculty_id == grace.id
    assert seed.reload(Course, clashing.id).faculty_id is None


def test_missing_references_are_item_errors(db, seed):
    ada = seed.faculty()
    course = seed.course("CS101", [MONDAY_NINE])

    result = bulk_assign_faculty(
        db,
        [item("missing-course", ada), item(course, "missing-faculty"), item(course, ada)],
    )

    assert result.committed is True
    assert [entry.status for entry in result.results] == [
        ItemStatus.error,
        ItemStatus.error,
        ItemStatus.success,
    ]
    assert result.results[0].message == "Course not found"
    assert result.results[1].message == "Faculty not found"
    assert result.results[1].course_name == course.name
    assert result.summary.errors == 2
    assert seed.reload(Course, course.id).faculty_id == ada.id


def test_items_in_same_batch_cannot_double_book_faculty(db, seed):
    ada = seed.faculty()
    first = seed.course("CS101", [MONDAY_NINE])
    second = seed.course("CS102", [MONDAY_HALF_NINE])

    result = bulk_assign_faculty(db, [item(first, ada), item(second, ada)], ConflictResolution.skip)

    assert [entry.status for entry in result.results] == [ItemStatus.success, ItemStatus.conflict]
    assert result.results[1].conflicts[0].course_id == first.id
    assert seed.reload(Course, second.id).faculty_id is None


def test_schedule_override_is_checked_and_written(db, seed):
    ada = seed.faculty()
    seed.course("CS100", [MONDAY_NINE], faculty=ada)
    course = seed.course("CS101", [MONDAY_HALF_NINE])

    result = bulk_assign_faculty(
        db,
        [item(course, ada, schedule=[{"day": "Tuesday", "startTime": "09:00", "endTime": "10:00"}])],
    )

    assert result.committed is True
    assert seed.reload(Course, course.id).schedule == [TUESDAY_NINE]


def test_malformed_stored_schedule_is_an_item_error(db, seed):
    ada = seed.faculty()
    broken = seed.course("CS101", [{"day": "Monday", "start_time": "10:00", "end_time": "09:00"}])
    clean = seed.course("CS102", [TUESDAY_NINE])

    result = bulk_assign_faculty(db, [item(broken, ada), item(clean, ada)])

    assert [entry.status for entry in result.results] == [ItemStatus.error, ItemStatus.success]
    assert "must end after it starts" in result.results[0].message


def test_storage_failure_rolls_back_every_item(db, seed, monkeypatch):
    ada = seed.faculty()
    grace = seed.faculty("Grace", "Hopper")
    first = seed.course("CS101", [MONDAY_NINE])
    second = seed.course("CS102", [TUESDAY_NINE])

    monkeypatch.setattr(db, "commit", failing_commit)
    result = bulk_assign_faculty(db, [item(first, ada), item(second, grace), item("missing", ada)])
    monkeypatch.undo()

    assert result.committed is False
    assert result.message == "Bulk assignment failed. All assignments were rolled back."
    assert [entry.status for entry in result.results] == [ItemStatus.error] * 3
    assert result.results[0].message.startswith("Transaction could not be committed")
    assert result.results[2].message == "Course not found"
    assert result.summary.successful == 0
    assert result.summary.errors == 3

    assert seed.reload(Course, first.id).faculty_id is None
    assert seed.reload(Course, second.id).faculty_id is None


def test_bulk_assignments_are_audited(db, seed):
    ada = seed.faculty()
    actor = seed.user()
    course = seed.course("CS101", [MONDAY_NINE])

    bulk_assign_faculty(db, [item(course, ada)], actor=actor)

    entry = db.execute(select(ActivityLog)).scalar_one()
    assert entry.details["bulk"] is True
    assert entry.user_id == actor.id


def test_repeated_course_in_batch_is_an_item_error(db, seed):
    ada = seed.faculty()
    grace = seed.faculty("Grace", "Hopper")
    seed.course("CS900", [TUESDAY_NINE], faculty=grace)
    course = seed.course("CS101", [MONDAY_NINE])

    result = bulk_assign_faculty(
        db,
        [item(course, ada, schedule=[TUESDAY_NINE]), item(course, grace)],
        ConflictResolution.abort,
    )

    assert result.committed is True
    assert [entry.status for entry in result.results] == [ItemStatus.success, ItemStatus.error]
    assert result.results[1].message == "Course appears more than once in batch"
    assert result.results[1].course_name == course.name
    assert result.summary.model_dump() == {"total": 2, "successful": 1, "errors": 1, "conflicts": 0}
    stored = seed.reload(Course, course.id)
    assert stored.faculty_id == ada.id
    assert stored.schedule == [TUESDAY_NINE]


@pytest.mark.parametrize("resolution", [ConflictResolution.abort, ConflictResolution.skip])
def test_course_moved_away_earlier_in_batch_frees_its_slot(db, seed, resolution):
    ada = seed.faculty()
    grace = seed.faculty("Grace", "Hopper")
    moved = seed.course("CS100", [MONDAY_NINE], faculty=ada)
    incoming = seed.course("CS300", [MONDAY_NINE])

    result = bulk_assign_faculty(db, [item(moved, grace), item(incoming, ada)], resolution)

    assert result.committed is True
    assert [entry.status for entry in result.results] == [ItemStatus.success, ItemStatus.success]
    assert result.conflicts == []
    assert seed.reload(Course, moved.id).faculty_id == grace.id
    assert seed.reload(Course, incoming.id).faculty_id == ada.id


def test_course_rescheduled_earlier_in_batch_is_checked_with_new_slots(db, seed):
    ada = seed.faculty()
    rescheduled = seed.course("CS100", [TUESDAY_NINE], faculty=ada)
    incoming = seed.course("CS300", [MONDAY_NINE])

    result = bulk_assign_faculty(
        db,
        [item(rescheduled, ada, schedule=[MONDAY_HALF_NINE]), item(incoming, ada)],
        ConflictResolution.skip,
    )

    assert [entry.status for entry in result.results] == [ItemStatus.success, ItemStatus.conflict]
    assert result.results[1].conflicts[0].course_id == rescheduled.id
    assert seed.reload(Course, incoming.id).faculty_id is None
