"""
Pytest configuration and shared fixtures for testing.
"""
import json
import os
import sys
from datetime import timedelta
from pathlib import Path

# Point the app at a throwaway SQLite file before anything imports oapoint
_TEST_DB = Path(__file__).parent / "test.db"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB}"
os.environ.setdefault("JWT_SECRET", "test-secret")

backend_root = Path(__file__).parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from oapoint.auth import create_access_token  # noqa: E402
from oapoint.database import Base, get_db, enable_sqlite_pragmas  # noqa: E402
from oapoint.main import app, request_pacer  # noqa: E402
from oapoint.models import User, Test, Section, Question  # noqa: E402
from oapoint.models.user import ROLE_ADMIN, ROLE_STUDENT  # noqa: E402
from oapoint.services.judge import CodeExecutor, ExecutionResult, get_code_executor  # noqa: E402
from oapoint.timeutils import utcnow  # noqa: E402

engine = create_engine(
    f"sqlite:///{_TEST_DB}", connect_args={"check_same_thread": False}
)
enable_sqlite_pragmas(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# No pacing delay between test requests
request_pacer.min_delay = 0


class FakeExecutor(CodeExecutor):
    """Judge stand-in: answers from a fixed input -> output table."""

    def __init__(self, outputs=None, error=None):
        self.outputs = outputs or {}
        self.error = error
        self.calls = []

    def execute(self, code, language, input):
        self.calls.append((code, language, input))
        if self.error:
            return ExecutionResult(output="", error=self.error, time_ms=1.0)
        return ExecutionResult(output=self.outputs.get(input, ""), time_ms=1.0)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_executor():
    return FakeExecutor(outputs={"2 3": "5", "10 20": "30", "-5 5": "0"})


@pytest.fixture(scope="function")
def client(db_session, fake_executor):
    """
    Create a test client with database and judge dependency overrides.
    """

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_code_executor] = lambda: fake_executor
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(db, name, email, role=ROLE_STUDENT, registration_number=None):
    user = User(name=name, email=email, role=role, registration_number=registration_number)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def headers_for(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def mcq(text, options, correct, qtype="single-correct", points=1):
    return Question(
        question_text=text,
        question_type=qtype,
        options=json.dumps([{"text": o, "isCorrect": i in correct} for i, o in enumerate(options)]),
        points=points,
    )


def coding(text, examples, test_cases, points=10):
    return Question(
        question_text=text,
        question_type="coding",
        options="[]",
        coding_details=json.dumps({
            "problemStatement": text,
            "examples": examples,
            "testCases": test_cases,
            "timeLimit": 1000,
            "memoryLimit": 256,
        }),
        points=points,
    )


def build_test(db, admin, students=(), active=True, start=None, end=None, sections=None):
    """
    Persist a test. Default layout:
    - section 0 "Aptitude" (10 min): single-correct (B correct), multi-correct {0, 2} worth 2
    - section 1 "Coding" (20 min): one coding question worth 10 with an example,
      one visible and one hidden test case
    """
    now = utcnow()
    if sections is None:
        aptitude = Section(name="Aptitude", time_limit_minutes=10, order=0)
        aptitude.questions = [
            mcq("Pick B", ["A", "B", "C"], {1}),
            mcq("Pick 0 and 2", ["w", "x", "y", "z"], {0, 2}, qtype="multi-correct", points=2),
        ]
        code_section = Section(name="Coding", time_limit_minutes=20, order=1)
        code_section.questions = [
            coding("Sum", [{"input": "2 3", "output": "5"}], [
                {"input": "10 20", "output": "30", "isHidden": False},
                {"input": "-5 5", "output": "0", "isHidden": True},
            ]),
        ]
        sections = [aptitude, code_section]
    for index, section in enumerate(sections):
        section.order = index
        for position, question in enumerate(section.questions):
            question.position = position

    test = Test(
        title="Placement Round",
        created_by=admin.id,
        start_date=start or now - timedelta(hours=1),
        end_date=end or now + timedelta(hours=1),
        duration_minutes=sum(s.time_limit_minutes for s in sections),
        is_active=active,
        sections=sections,
        allowed_students=list(students),
    )
    db.add(test)
    db.commit()
    db.refresh(test)
    return test


@pytest.fixture
def admin(db_session):
    return make_user(db_session, "Admin", "admin@example.com", role=ROLE_ADMIN)


@pytest.fixture
def student(db_session):
    return make_user(db_session, "Student One", "one@example.com", registration_number="REG001")


@pytest.fixture
def other_student(db_session):
    return make_user(db_session, "Student Two", "two@example.com", registration_number="REG002")


@pytest.fixture
def sample_test(db_session, admin, student):
    return build_test(db_session, admin, students=[student])


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture
def student_headers(student):
    return headers_for(student)
