import itertools
import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient  # in-process client, no server needed
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from course_allocation.api.deps import get_db
from course_allocation.core.security import create_access_token
from course_allocation.db.base import Base
from course_allocation.db.session import enable_sqlite_savepoints
from course_allocation.main import app
from course_allocation.models import Course, Enrollment, EnrollmentStatus, Faculty, Student, User, UserRole


def _memory_engine(*, savepoints: bool = False):
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    if savepoints:
        enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    return engine


class Seeder:
    """Creates committed rows for a test through the given session."""

    _counter = itertools.count(1)

    def __init__(self, db: Session) -> None:
        self.db = db

    def _save(self, record):
        self.db.add(record)
        self.db.commit()
        return record

    def faculty(self, first_name: str = "Ada", last_name: str = "Lovelace", **overrides) -> Faculty:
        number = next(self._counter)
        values = {
            "id": str(uuid.uuid4()),
            "first_name": first_name,
            "last_name": last_name,
            "email": f"faculty{number}@school.test",
            "department": "Computer Science",
            "is_active": True,
        }
        values.update(overrides)
        return self._save(Faculty(**values))

    def student(self, first_name: str = "Sam", last_name: str = "Student", **overrides) -> Student:
        number = next(self._counter)
        values = {
            "id": str(uuid.uuid4()),
            "first_name": first_name,
            "last_name": last_name,
            "email": f"student{number}@school.test",
            "roll_number": f"R{number:04d}",
            "class_id": "10",
            "section": "A",
            "is_active": True,
        }
        values.update(overrides)
        return self._save(Student(**values))

    def course(self, code: str, schedule: list[dict] | None = None, faculty: Faculty | None = None, **overrides) -> Course:
        values = {
            "id": str(uuid.uuid4()),
            "code": code,
            "name": f"Course {code}",
            "academic_year": "2025-2026",
            "semester": "1",
            "class_id": "10",
            "section": "A",
            "max_capacity": 30,
            "schedule": schedule or [],
            "faculty_id": faculty.id if faculty is not None else None,
        }
        values.update(overrides)
        return self._save(Course(**values))

    def enrollment(
        self,
        student: Student,
        course: Course,
        status: EnrollmentStatus = EnrollmentStatus.active,
    ) -> Enrollment:
        return self._save(
            Enrollment(
                id=str(uuid.uuid4()),
                student_id=student.id,
                course_id=course.id,
                status=status,
                enrollment_date=datetime.now(timezone.utc),
                academic_year=course.academic_year,
                semester=course.semester,
            )
        )

    def user(self, role: UserRole = UserRole.admin) -> User:
        number = next(self._counter)
        return self._save(
            User(
                id=str(uuid.uuid4()),
                name=f"{role.value.title()} {number}",
                email=f"{role.value}{number}@school.test",
                role=role,
                is_active=True,
            )
        )

    def reload(self, model, record_id: str):
        self.db.expire_all()
        return self.db.get(model, record_id)


@pytest.fixture()
def engine():
    engine = _memory_engine()
    yield engine
    engine.dispose()


@pytest.fixture()
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def strict_db():
    # Separate engine where SAVEPOINT and ROLLBACK behave as on a server database.
    engine = _memory_engine(savepoints=True)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def seed(db):
    return Seeder(db)


@pytest.fixture()
def client(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers(seed):
    admin = seed.user(UserRole.admin)
    return {"Authorization": f"Bearer {create_access_token(admin.id)}"}


@pytest.fixture()
def strict_seed(strict_db):
    return Seeder(strict_db)
