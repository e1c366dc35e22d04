from course_allocation.models.activity_log import ActivityLog  # noqa: F401
from course_allocation.models.course import Course  # noqa: F401
from course_allocation.models.enrollment import Enrollment, EnrollmentStatus  # noqa: F401
from course_allocation.models.faculty import Faculty  # noqa: F401
from course_allocation.models.student import Student  # noqa: F401
from course_allocation.models.user import User, UserRole  # noqa: F401
