from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from course_allocation.api.deps import get_db, require_allocation_manager
from course_allocation.core.config import get_settings
from course_allocation.core.exceptions import ResourceNotFoundError
from course_allocation.models.user import User
from course_allocation.schemas.allocation import (
    AssignFacultyRequest,
    AssignmentResult,
    BulkAssignmentResult,
    BulkAssignRequest,
    BulkEnrollmentResult,
    BulkEnrollRequest,
    ConflictCheckOut,
    ConflictCheckRequest,
    ConflictResolution,
    EnrollmentOut,
    EnrollRequest,
    ItemStatus,
)
from course_allocation.schemas.member import FacultyProfile, MemberRole, StudentProfile
from course_allocation.schemas.stats import AllocatedCoursePage, AllocationStats
from course_allocation.services.allocation_stats import (
    CourseListFilter,
    compute_allocation_stats,
    list_allocated_courses,
)
from course_allocation.services.conflict_detector import find_conflicts
from course_allocation.services.enrollment import bulk_enroll_students, enroll_student
from course_allocation.services.faculty_assignment import assign_faculty, bulk_assign_faculty
from course_allocation.services.projections import project_member
from course_allocation.services.storage import ScopeFilter, get_faculty, get_student

router = APIRouter()
settings = get_settings()


@router.get("/courses", response_model=AllocatedCoursePage)
def get_allocated_courses(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    faculty_id: str | None = Query(default=None, alias="facultyId"),
    academic_year: str | None = Query(default=None, alias="academicYear"),
    semester: str | None = Query(default=None),
    class_id: str | None = Query(default=None, alias="classId"),
    section: str | None = Query(default=None),
    current_user: User = Depends(require_allocation_manager),
    db: Session = Depends(get_db),
) -> AllocatedCoursePage:
    page_size = min(limit or settings.allocation_default_page_size, settings.allocation_max_page_size)
    filters = CourseListFilter(
        faculty_id=faculty_id,
        academic_year=academic_year,
        semester=semester,
        class_id=class_id,
        section=section,
    )
    return list_allocated_courses(db, filters, page=page, limit=page_size)


@router.post(
    "/assign-faculty",
    response_model=AssignmentResult,
    responses={status.HTTP_409_CONFLICT: {"model": AssignmentResult}},
)
def assign_faculty_to_course(
    payload: AssignFacultyRequest,
    current_user: User = Depends(require_allocation_manager),
    db: Session = Depends(get_db),
) -> AssignmentResult:
    result = assign_faculty(
        db,
        payload.course_id,
        payload.faculty_id,
        payload.schedule,
        payload.policy,
        actor=current_user,
    )
    if result.status == ItemStatus.conflict:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=result.model_dump(mode="json", by_alias=True),
        )
    return result


@router.post(
    "/bulk-assign-faculty",
    response_model=BulkAssignmentResult,
    responses={
        status.HTTP_409_CONFLICT: {"model": BulkAssignmentResult},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": BulkAssignmentResult},
    },
)
def bulk_assign_faculty_to_courses(
    payload: BulkAssignRequest,
    current_user: User = Depends(require_allocation_manager),
    db: Session = Depends(get_db),
) -> BulkAssignmentResult:
    result = bulk_assign_faculty(
        db,
        payload.assignments,
        payload.conflict_resolution,
        actor=current_user,
    )
    if not result.committed:
        rejected = payload.conflict_resolution == ConflictResolution.abort and bool(result.conflicts)
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT if rejected else status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=result.model_dump(mode="json", by_alias=True),
        )
    return result


@router.post("/enroll", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
def enroll_student_in_course(
    payload: EnrollRequest,
    current_user: User = Depends(require_allocation_manager),
    db: Session = Depends(get_db),
) -> EnrollmentOut:
    enrollment = enroll_student(db, payload.student_id, payload.course_id, payload.force, actor=current_user)
    return EnrollmentOut.model_validate(enrollment)


@router.post("/bulk-enroll-students", response_model=BulkEnrollmentResult)
def bulk_enroll(
    payload: BulkEnrollRequest,
    current_user: User = Depends(require_allocation_manager),
    db: Session = Depends(get_db),
) -> BulkEnrollmentResult:
    return bulk_enroll_students(db, payload.enrollments, payload.force, actor=current_user)


@router.post("/conflicts/check", response_model=ConflictCheckOut)
def check_schedule_conflicts(
    payload: ConflictCheckRequest,
    current_user: User = Depends(require_allocation_manager),
    db: Session = Depends(get_db),
) -> ConflictCheckOut:
    if get_faculty(db, payload.faculty_id) is None:
        raise ResourceNotFoundError("Faculty", payload.faculty_id)
    conflicts = find_conflicts(
        db,
        payload.faculty_id,
        payload.schedule,
        exclude_course_id=payload.exclude_course_id,
        scope=ScopeFilter(payload.academic_year, payload.semester),
    )
    return ConflictCheckOut(has_conflicts=bool(conflicts), conflicts=conflicts)


@router.get("/stats", response_model=AllocationStats)
def get_allocation_stats(
    academic_year: str | None = Query(default=None, alias="academicYear"),
    semester: str | None = Query(default=None),
    include_workload: bool = Query(default=True, alias="includeWorkload"),
    current_user: User = Depends(require_allocation_manager),
    db: Session = Depends(get_db),
) -> AllocationStats:
    return compute_allocation_stats(
        db,
        ScopeFilter(academic_year, semester),
        include_workload=include_workload,
    )


@router.get("/members/{role}/{member_id}", response_model=FacultyProfile | StudentProfile)
def get_member_profile(
    role: MemberRole,
    member_id: str,
    current_user: User = Depends(require_allocation_manager),
    db: Session = Depends(get_db),
) -> FacultyProfile | StudentProfile:
    if role == MemberRole.faculty:
        entity = get_faculty(db, member_id)
        resource_type = "Faculty"
    else:
        entity = get_student(db, member_id)
        resource_type = "Student"
    if entity is None:
        raise ResourceNotFoundError(resource_type, member_id)
    return project_member(role, entity)
