import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LLM_PROVIDER", "mock")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from quizhub.db import models  # noqa: F401
from quizhub.db.session import Base
from quizhub.schemas.quiz import Question, QuestionOption


@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def fake_clock():
    return FakeClock()


def make_question(question_id: str, correct_index: int = 0, difficulty: str = "medium") -> Question:
    return Question(
        id=question_id,
        text=f"Question {question_id}?",
        category="Python",
        difficulty=difficulty,
        options=[
            QuestionOption(id=f"{question_id}-a{i + 1}", text=f"{question_id} option {i + 1}", is_correct=i == correct_index)
            for i in range(4)
        ],
    )
