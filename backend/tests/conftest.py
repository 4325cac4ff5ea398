"""
Shared fixtures: an in-memory SQLite database per test, a FastAPI test
client bound to it, a scripted judge, and a seeded assessment.
"""

import os

# Must be set before attempt_engine.database creates its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JUDGE_MODE", "local")

from datetime import timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from attempt_engine import clock
from attempt_engine.database import Base, enable_sqlite_pragmas, get_db
from attempt_engine.deps import get_executor
from attempt_engine.errors import JudgeUnavailable
from attempt_engine.judge.executor import Executor
from attempt_engine.judge.harness import CaseResult, JudgeResult
from attempt_engine.main import app
from attempt_engine.models import (
    Assessment, AssessmentBatch, AssessmentQuestion, BatchStudent, Question, QuestionOption,
)
from attempt_engine.models.assessment import AssessmentPublishStatus
from attempt_engine.models.coding_submission import SubmissionStatus
from attempt_engine.models.question import QuestionType
from attempt_engine.services import readiness

STUDENT_ID = 1001
OUTSIDER_ID = 2002
BATCH_ID = 10
HEADERS = {"X-Student-Id": str(STUDENT_ID)}


class FakeExecutor(Executor):
    """Judge double. Passes the first `passed` cases (all by default)."""

    def __init__(self):
        self.calls = []
        self.passed = None
        self.status = None
        self.error = None
        self.unavailable = False

    def run(self, language, code, tests, timeout_ms=2000, entry="solve"):
        self.calls.append({"language": language, "code": code, "tests": list(tests),
                           "timeout_ms": timeout_ms, "entry": entry})
        if self.unavailable:
            raise JudgeUnavailable()

        total = len(tests)
        passed = total if self.passed is None else min(self.passed, total)
        status = self.status or (
            SubmissionStatus.ACCEPTED if passed == total else SubmissionStatus.WRONG_ANSWER)
        if status == SubmissionStatus.RUNTIME_ERROR:
            passed = 0
        cases = [
            CaseResult(index=i, passed=i < passed, expected=t.expected_text,
                       actual=t.expected_text if i < passed else "nope")
            for i, t in enumerate(tests)
        ]
        return JudgeResult(status=status, passed=passed, total=total,
                           outputs=[c.actual for c in cases], cases=cases, error=self.error)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_pragmas(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def client(session_factory, fake_executor):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_executor] = lambda: fake_executor
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_exam(db, negative_points=1.0, coding_tests=2, **overrides) -> SimpleNamespace:
    """
    Seed a published assessment open now, assigned to STUDENT_ID's batch:
    one single-correct MCQ, one multiple-correct MCQ (4 points each) and
    one coding question worth 10 points with `coding_tests` test cases.
    """
    now = clock.utcnow()
    fields = dict(
        title="Aptitude Round 1",
        status=AssessmentPublishStatus.PUBLISHED,
        duration_minutes=60,
        start_time=now - timedelta(hours=1),
        end_time=now + timedelta(days=1),
    )
    fields.update(overrides)
    assessment = Assessment(**fields)
    db.add(assessment)
    db.flush()

    db.add(AssessmentBatch(assessment_id=assessment.id, batch_id=BATCH_ID))
    db.merge(BatchStudent(batch_id=BATCH_ID, student_id=STUDENT_ID, is_active=True))

    single = Question(
        question_type=QuestionType.SINGLE_CORRECT,
        question_text="What is 2 + 2?",
        options=[
            QuestionOption(option_label="A", option_text="3", sort_order=1),
            QuestionOption(option_label="B", option_text="4", is_correct=True, sort_order=2),
            QuestionOption(option_label="C", option_text="5", sort_order=3),
            QuestionOption(option_label="D", option_text="22", sort_order=4),
        ],
    )
    multi = Question(
        question_type=QuestionType.MULTIPLE_CORRECT,
        question_text="Which of these are prime?",
        options=[
            QuestionOption(option_label="A", option_text="2", is_correct=True, sort_order=1),
            QuestionOption(option_label="B", option_text="3", is_correct=True, sort_order=2),
            QuestionOption(option_label="C", option_text="4", sort_order=3),
            QuestionOption(option_label="D", option_text="9", sort_order=4),
        ],
    )
    coding = Question(
        question_type=QuestionType.CODING,
        question_text="Return the sum of a list of integers.",
        question_metadata={
            "supported_languages": ["python", "javascript"],
            "entry_function": "solve",
            "constraints": "1 <= len(nums) <= 10^5",
            "starter_code": {"python": "def solve(nums):\n    pass\n"},
            "sample_test_cases": [
                {"input": [1, 2], "output": 3},
                {"input": [5], "output": 5},
                {"input": [], "output": 0},
            ],
            "test_cases": [
                {"input": list(range(i + 1)), "output": sum(range(i + 1))}
                for i in range(coding_tests)
            ],
        },
    )
    db.add_all([single, multi, coding])
    db.flush()

    aq_single = AssessmentQuestion(assessment_id=assessment.id, question_id=single.id,
                                   points=4, negative_points=negative_points, sort_order=1)
    aq_multi = AssessmentQuestion(assessment_id=assessment.id, question_id=multi.id,
                                  points=4, negative_points=negative_points, sort_order=2)
    aq_coding = AssessmentQuestion(assessment_id=assessment.id, question_id=coding.id,
                                   points=10, negative_points=0, sort_order=3)
    db.add_all([aq_single, aq_multi, aq_coding])
    db.flush()

    exam = SimpleNamespace(
        assessment_id=assessment.id,
        aq_single=aq_single.id,
        aq_multi=aq_multi.id,
        aq_coding=aq_coding.id,
        single_correct=single.options[1].id,
        single_wrong=single.options[0].id,
        multi_correct=[multi.options[0].id, multi.options[1].id],
        multi_wrong=multi.options[2].id,
    )
    db.commit()
    return exam


@pytest.fixture
def exam(db):
    return create_exam(db)


def begin_and_start(db, assessment_id, student_id=STUDENT_ID) -> dict:
    """Consent and start through the services; returns the begin payload."""
    issued = readiness.begin(db, student_id, assessment_id)
    readiness.start(db, issued["session_token"])
    return issued


def api_begin_and_start(client, assessment_id) -> str:
    resp = client.post(f"/api/assessments/{assessment_id}/begin", headers=HEADERS)
    assert resp.status_code == 200, resp.text
    token = resp.json()["session_token"]
    resp = client.post(f"/api/sessions/{token}/start")
    assert resp.status_code == 200, resp.text
    return token
