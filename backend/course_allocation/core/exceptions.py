class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ResourceNotFoundError(AppError):
    """Raised when a referenced course, faculty member or student does not exist."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id

class MalformedTimeSlotError(AppError):
    """Raised when a time slot cannot be normalised for comparison."""
    def __init__(self, message: str, slot: object = None):
        super().__init__(message, status_code=422, details={"slot": slot} if slot is not None else {})

class DuplicateEnrollmentError(AppError):
    """Raised when a student already holds an active or completed enrollment for a course."""
    def __init__(self, student_id: str, course_id: str):
        super().__init__(
            "Student already enrolled in this course",
            status_code=409,
            details={"student_id": student_id, "course_id": course_id},
        )

class CapacityExceededError(AppError):
    """Raised when a course has no seats left."""
    def __init__(self, course_id: str, capacity: int, enrolled: int):
        super().__init__(
            "Course capacity exceeded",
            status_code=409,
            details={"course_id": course_id, "capacity": capacity, "enrolled": enrolled},
        )

class TransactionFailureError(AppError):
    """Raised when the persistence layer could not commit a unit of work."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
