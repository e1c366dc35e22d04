from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from course_allocation.core.config import get_settings
from course_allocation.core.exceptions import MalformedTimeSlotError
from course_allocation.models.enrollment import EnrollmentStatus
from course_allocation.services.time_slots import format_minutes, normalize_day, parse_time_to_minutes


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AssignmentPolicy(str, Enum):
    reject_on_conflict = "reject-on-conflict"
    force = "force"


class ConflictResolution(str, Enum):
    abort = "abort"
    skip = "skip"


class ItemStatus(str, Enum):
    pending = "pending"
    success = "success"
    error = "error"
    conflict = "conflict"


class TimeSlot(CamelModel):
    day: str
    start_time: str
    end_time: str
    room: str | None = Field(default=None, max_length=100)

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        try:
            return normalize_day(value)
        except MalformedTimeSlotError as exc:
            raise ValueError(exc.message) from exc

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        try:
            return format_minutes(parse_time_to_minutes(value))
        except MalformedTimeSlotError as exc:
            raise ValueError(exc.message) from exc

    @model_validator(mode="after")
    def validate_order(self) -> "TimeSlot":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class ScheduleConflict(CamelModel):
    course_id: str
    course_name: str
    course_code: str | None = None
    conflict_type: str = "time_overlap"
    existing_slot: dict
    candidate_slot: dict


class FacultySummary(CamelModel):
    id: str
    name: str
    email: str
    department: str


class CourseAllocationOut(CamelModel):
    id: str
    code: str
    name: str
    academic_year: str
    semester: str
    class_id: str | None = None
    section: str | None = None
    max_capacity: int
    schedule: list[dict] = Field(default_factory=list)
    faculty_id: str | None = None
    faculty: FacultySummary | None = None
    last_modified: datetime | None = None


def _check_batch_size(size: int) -> None:
    limit = get_settings().allocation_max_bulk_items
    if size > limit:
        raise ValueError(f"A batch may contain at most {limit} items")


class AssignFacultyRequest(CamelModel):
    course_id: str = Field(min_length=1, max_length=36)
    faculty_id: str = Field(min_length=1, max_length=36)
    schedule: list[TimeSlot] | None = Field(
        default=None,
        max_length=50,
        validation_alias=AliasChoices("schedule", "scheduleData", "schedule_data"),
    )
    policy: AssignmentPolicy = AssignmentPolicy.reject_on_conflict


class AssignmentResult(CamelModel):
    status: ItemStatus
    message: str
    course: CourseAllocationOut | None = None
    conflicts: list[ScheduleConflict] = Field(default_factory=list)


class AssignmentItem(CamelModel):
    course_id: str = Field(min_length=1, max_length=36)
    faculty_id: str = Field(min_length=1, max_length=36)
    schedule: list[TimeSlot] | None = Field(
        default=None,
        max_length=50,
        validation_alias=AliasChoices("schedule", "scheduleData", "schedule_data"),
    )


class BulkAssignRequest(CamelModel):
    assignments: list[AssignmentItem] = Field(min_length=1)
    conflict_resolution: ConflictResolution = ConflictResolution.abort

    @field_validator("assignments")
    @classmethod
    def validate_batch_size(cls, value: list[AssignmentItem]) -> list[AssignmentItem]:
        _check_batch_size(len(value))
        return value


class BulkAssignmentItemResult(CamelModel):
    course_id: str
    faculty_id: str
    status: ItemStatus
    message: str
    course_name: str | None = None
    faculty_name: str | None = None
    conflicts: list[ScheduleConflict] = Field(default_factory=list)


class ItemConflicts(CamelModel):
    course_id: str
    faculty_id: str
    conflicts: list[ScheduleConflict]


class BulkAssignmentSummary(CamelModel):
    total: int
    successful: int
    errors: int
    conflicts: int


class BulkAssignmentResult(CamelModel):
    committed: bool
    message: str
    results: list[BulkAssignmentItemResult]
    conflicts: list[ItemConflicts] = Field(default_factory=list)
    summary: BulkAssignmentSummary


class EnrollRequest(CamelModel):
    student_id: str = Field(min_length=1, max_length=36)
    course_id: str = Field(min_length=1, max_length=36)
    force: bool = False


class EnrollmentOut(CamelModel):
    id: str
    student_id: str
    course_id: str
    status: EnrollmentStatus
    enrollment_date: datetime
    academic_year: str
    semester: str

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class EnrollmentItem(CamelModel):
    student_id: str = Field(min_length=1, max_length=36)
    course_id: str = Field(min_length=1, max_length=36)


class BulkEnrollRequest(CamelModel):
    enrollments: list[EnrollmentItem] = Field(min_length=1)
    force: bool = False

    @field_validator("enrollments")
    @classmethod
    def validate_batch_size(cls, value: list[EnrollmentItem]) -> list[EnrollmentItem]:
        _check_batch_size(len(value))
        return value


class BulkEnrollmentItemResult(CamelModel):
    student_id: str
    course_id: str
    status: ItemStatus
    code: str
    message: str
    enrollment_id: str | None = None
    student_name: str | None = None
    course_name: str | None = None


class BulkEnrollmentSummary(CamelModel):
    total: int
    successful: int
    conflicts: int
    errors: int


class BulkEnrollmentResult(CamelModel):
    message: str
    results: list[BulkEnrollmentItemResult]
    summary: BulkEnrollmentSummary


class ConflictCheckRequest(CamelModel):
    faculty_id: str = Field(min_length=1, max_length=36)
    schedule: list[TimeSlot] = Field(min_length=1, max_length=50)
    exclude_course_id: str | None = Field(default=None, max_length=36)
    academic_year: str | None = Field(default=None, max_length=20)
    semester: str | None = Field(default=None, max_length=20)


class ConflictCheckOut(CamelModel):
    has_conflicts: bool
    conflicts: list[ScheduleConflict]
