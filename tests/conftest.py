import os
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ["TESTING"] = "true"
os.environ.setdefault("LOG_DIR", "./logs")

import pytest
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.clock import FrozenClock
from app.core.constants import QuestionTypeEnum
from app.core.database import Base
from app.crud.exam import exam as crud_exam
from app.crud.question import question as crud_question
from app.models.exam import Exam
from app.models.question import Question
from app.models.exam_attempt import ExamAttempt  # noqa: F401  registers the table
from app.services.exam_session_service import ExamSessionService
from app.services.reconciler import PersistenceReconciler
from app.services.session_registry import SessionRegistry
from app.utils import deps as deps_utils
import main

JFT_SECTIONS = [
    {"number": 1, "title": "Script and Vocabulary", "duration_minutes": 15},
    {"number": 2, "title": "Conversation and Expression", "duration_minutes": 15},
    {"number": 3, "title": "Listening Comprehension", "duration_minutes": 15},
    {"number": 4, "title": "Reading Comprehension", "duration_minutes": 15},
]


@pytest.fixture(scope="function")
def database_engine(tmp_path):
    # A fresh file per test: the store commits, so rollback alone cannot isolate tests.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(database_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=database_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def no_retry_delay(monkeypatch):
    monkeypatch.setattr(settings, "SUBMIT_RETRY_DELAY_SECONDS", 0)


@pytest.fixture
def reconciler(clock, no_retry_delay):
    return PersistenceReconciler(clock)


@pytest.fixture
def session_service(clock, reconciler, session_factory):
    return ExamSessionService(
        clock=clock,
        registry=SessionRegistry(),
        reconciler=reconciler,
        session_factory=session_factory,
    )


@pytest.fixture(scope="function")
def client(db_session, session_service):
    main.app.dependency_overrides[deps_utils.get_db] = lambda: db_session
    main.app.dependency_overrides[deps_utils.get_exam_session_service] = lambda: session_service
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


@pytest.fixture
def make_token():
    def _make_token(user_id: str) -> str:
        return jwt.encode({"sub": user_id}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return _make_token


@pytest.fixture
def auth_headers(make_token):
    def _auth_headers(user_id: str = "candidate-1") -> dict:
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _auth_headers


@pytest.fixture
def exam_factory(db_session):
    """
    Creates an exam and its questions. ``questions`` items are dicts passed to
    QuestionCreate; exam_id is filled in.
    """
    def _create(questions, sections=None, title="JFT-Basic Mock Test"):
        exam = crud_exam.create(db_session, obj_in={
            "title": title,
            "description": "Practice exam",
            "sections_json": sections or JFT_SECTIONS,
            "language_options": ["en", "ja"],
        })
        rows = [crud_question.create(db_session, obj_in=dict(q, exam_id=exam.id)) for q in questions]
        return exam, rows
    return _create


def _text_question(section, order, category, correct="A", options=("A", "B", "C", "D")):
    return {
        "section_number": section,
        "category": category,
        "type": QuestionTypeEnum.TEXT,
        "content_text": f"Section {section} question {order}",
        "options_json": list(options),
        "correct_answer": correct,
        "explanation": f"The answer is {correct}.",
        "question_order": order,
    }


def _audio_question(section, order, correct="A"):
    return {
        "section_number": section,
        "category": "Listening",
        "type": QuestionTypeEnum.AUDIO,
        "content_text": f"Listen and choose ({order})",
        "audio_url": f"https://cdn.example.com/audio/{section}-{order}.mp3",
        "options_json": ["A", "B", "C", "D"],
        "correct_answer": correct,
        "question_order": order,
    }


@pytest.fixture
def jft_exam(exam_factory):
    """Four sections, two questions each; section 3 is listening."""
    exam, questions = exam_factory([
        _text_question(1, 1, "Script and Vocabulary", correct="A"),
        _text_question(1, 2, "Script and Vocabulary", correct="B"),
        _text_question(2, 1, "Conversation and Expression", correct="C"),
        _text_question(2, 2, "Conversation and Expression", correct="D"),
        _audio_question(3, 1, correct="A"),
        _audio_question(3, 2, correct="B"),
        _text_question(4, 1, "Reading Comprehension", correct="C"),
        _text_question(4, 2, "Reading Comprehension", correct="D"),
    ])
    return exam, questions


@pytest.fixture
def single_section_exam(exam_factory):
    exam, questions = exam_factory(
        [
            _text_question(1, 1, "Vocabulary", correct="A", options=("A", "B")),
            _text_question(1, 2, "Vocabulary", correct="B", options=("A", "B")),
        ],
        sections=[{"number": 1, "title": "Vocabulary"}],
        title="One Section",
    )
    return exam, questions
