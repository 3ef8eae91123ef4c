"""
Quiz Attempt Service - Test Configuration and Fixtures
"""
import os
import uuid
from datetime import timedelta
from typing import Generator

import pytest
from faker import Faker

# Set testing environment
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['REDIS_URL'] = ''
os.environ['RATE_LIMIT_PER_MINUTE'] = '100000'
os.environ['RATE_LIMIT_PER_HOUR'] = '100000'
os.environ['LOG_LEVEL'] = 'WARNING'

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from assessment.main import app
from assessment.database import Base, SessionLocal, engine, get_db
from assessment.models import Question, QuestionType, Quiz
from assessment.services.attempt_state_machine import AttemptStateMachine, TabSwitchPolicy
from assessment.utils.clock import utcnow

fake = Faker()


@pytest.fixture(scope='function')
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create test client with database override"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def student_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def student_headers(student_id: uuid.UUID) -> dict:
    return {'X-Student-Id': str(student_id)}


@pytest.fixture
def machine() -> AttemptStateMachine:
    """State machine without tab-switch policy or answer grace"""
    return AttemptStateMachine(answer_grace_seconds=0)


@pytest.fixture
def strict_machine() -> AttemptStateMachine:
    """State machine that auto-submits after two tab switches"""
    return AttemptStateMachine(policy=TabSwitchPolicy(max_switches=2), answer_grace_seconds=0)


@pytest.fixture
def make_quiz(db_session: Session):
    """
    Factory for published, open quizzes

    questions: list of dicts passed to Question(**kwargs); defaults to two
    single-choice questions with correct options A and C.
    """
    def _make_quiz(questions=None, **overrides) -> Quiz:
        now = utcnow()
        fields = {
            'title': fake.sentence(nb_words=4),
            'description': fake.paragraph(),
            'subject': fake.word(),
            'duration_minutes': 10,
            'max_attempts': 3,
            'passing_marks': 1,
            'start_time': now - timedelta(hours=1),
            'end_time': now + timedelta(days=1),
            'is_active': True,
            'is_published': True,
        }
        fields.update(overrides)

        quiz = Quiz(**fields)
        db_session.add(quiz)
        db_session.flush()

        if questions is None:
            questions = [
                {
                    'question_type': QuestionType.SINGLE_CHOICE.value,
                    'options': [{'id': 'A', 'text': 'a'}, {'id': 'B', 'text': 'b'}, {'id': 'C', 'text': 'c'}],
                    'correct_answer': 'A',
                },
                {
                    'question_type': QuestionType.SINGLE_CHOICE.value,
                    'options': [{'id': 'A', 'text': 'a'}, {'id': 'B', 'text': 'b'}, {'id': 'C', 'text': 'c'}],
                    'correct_answer': 'C',
                },
            ]

        total_marks = 0.0
        for index, question in enumerate(questions):
            data = {'question_text': fake.sentence(), 'marks': 1, 'order_number': index + 1}
            data.update(question)
            total_marks += float(data['marks'])
            db_session.add(Question(quiz_id=quiz.id, **data))

        quiz.total_marks = total_marks
        db_session.commit()
        return quiz

    return _make_quiz
