import json
import threading

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import FakeClock
from quizhub.db import models
from quizhub.schemas.quiz import QuizSettings
from quizhub.services.llm.mock import MockLLM
from quizhub.services.quiz_service import (
    QuestionGenerationError,
    SessionRegistry,
    build_session_view,
    finalize_session,
    generate_questions,
    parse_generated_questions,
    start_session,
)
from quizhub.services.session_engine import SessionError, SessionStatus


def _settings(count=3, time_limit=10):
    return QuizSettings(
        topic="cloud-native",
        category="Kubernetes",
        difficulty="hard",
        number_of_questions=count,
        time_limit=time_limit,
    )


class FailingLLM:
    def generate_answer(self, query, context):
        raise RuntimeError("upstream down")


class BlockingLLM:
    def __init__(self):
        self.release = threading.Event()

    def generate_answer(self, query, context):
        self.release.wait(5)
        return "{}"


class FakeDB:
    def __init__(self):
        self.rolled_back = False

    def add(self, record):
        pass

    def commit(self):
        raise SQLAlchemyError("database is gone")

    def rollback(self):
        self.rolled_back = True


def test_parse_string_options_with_correct_answer():
    raw = json.dumps(
        {
            "questions": [
                {
                    "question": "What schedules pods?",
                    "options": ["kubelet", "kube-scheduler", "etcd", "kube-proxy"],
                    "correctAnswer": "kube-scheduler",
                    "difficulty": "hard",
                }
            ]
        }
    )
    questions = parse_generated_questions(raw, _settings())
    assert len(questions) == 1
    assert questions[0].correct_option().text == "kube-scheduler"
    assert questions[0].category == "Kubernetes"


def test_parse_option_objects_and_skip_invalid_entries():
    raw = json.dumps(
        [
            {
                "id": "x1",
                "question": "Pick one",
                "difficulty": "easy",
                "options": [
                    {"id": "o1", "text": "A", "isCorrect": False},
                    {"id": "o2", "text": "B", "isCorrect": True},
                    {"id": "o3", "text": "C"},
                    {"id": "o4", "text": "D"},
                ],
            },
            {"question": "Two right", "options": ["A", "A", "B", "C"], "correctAnswer": "A"},
            {"question": "Too few", "options": ["A", "B"], "correctAnswer": "A"},
            "nonsense",
        ]
    )
    questions = parse_generated_questions(raw)
    assert [question.id for question in questions] == ["x1"]
    assert questions[0].correct_option().id == "o2"


def test_parse_rejects_invalid_or_empty_output():
    with pytest.raises(QuestionGenerationError) as exc:
        parse_generated_questions("not json")
    assert exc.value.status_code == 502
    with pytest.raises(QuestionGenerationError):
        parse_generated_questions(json.dumps({"questions": []}))
    with pytest.raises(QuestionGenerationError):
        parse_generated_questions(json.dumps({"other": 1}))


def test_generate_questions_with_mock_llm():
    questions = generate_questions(MockLLM(), _settings(count=5))
    assert len(questions) == 5
    assert all(question.difficulty.value == "hard" for question in questions)
    assert questions[1].correct_option().text == "Kubernetes option B"


def test_generator_failure_is_reported():
    with pytest.raises(QuestionGenerationError) as exc:
        generate_questions(FailingLLM(), _settings())
    assert exc.value.status_code == 502
    assert "upstream down" in exc.value.details["error"]


def test_generator_timeout_is_reported():
    llm = BlockingLLM()
    try:
        with pytest.raises(QuestionGenerationError) as exc:
            generate_questions(llm, _settings(), timeout=0.05)
        assert exc.value.status_code == 504
    finally:
        llm.release.set()


def test_start_session_runs_engine():
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)
    handle = start_session(registry, MockLLM(), "u1", _settings())
    assert handle.engine.status == SessionStatus.in_progress
    assert handle.clock.running
    clock.advance(4.5)
    handle.clock.sync()
    view = build_session_view(handle)
    assert view["time_remaining"] == 6
    assert view["total_questions"] == 3
    assert "is_correct" not in view["question"]["options"][0]


def test_failed_generation_leaves_session_in_error():
    registry = SessionRegistry(clock=FakeClock())
    handle = start_session(registry, FailingLLM(), "u1", _settings())
    assert handle.engine.status == SessionStatus.error
    assert handle.engine.error == "Question generation failed"
    assert not handle.clock.running
    assert finalize_session(FakeDB(), handle) is None


def test_registry_scopes_sessions_to_owner():
    registry = SessionRegistry(clock=FakeClock())
    handle = registry.create("owner", _settings())
    assert registry.get(handle.session_id, "owner") is handle
    with pytest.raises(SessionError) as exc:
        registry.get(handle.session_id, "someone-else")
    assert exc.value.status_code == 403
    with pytest.raises(SessionError) as exc:
        registry.get("missing", "owner")
    assert exc.value.status_code == 404
    registry.discard(handle.session_id, "owner")
    assert len(registry) == 0


def test_registry_evicts_oldest_when_full():
    registry = SessionRegistry(clock=FakeClock(), max_items=2)
    first = registry.create("u1", _settings())
    registry.create("u1", _settings())
    registry.create("u1", _settings())
    assert len(registry) == 2
    with pytest.raises(SessionError):
        registry.get(first.session_id, "u1")


def test_finalize_saves_result_once(db):
    registry = SessionRegistry(clock=FakeClock())
    handle = start_session(registry, MockLLM(), "u1", _settings())
    handle.clock.select_answer("a1")
    handle.engine.expire()

    result = finalize_session(db, handle)
    again = finalize_session(db, handle)

    assert result is again
    assert result.score == 1
    assert handle.saved_quiz_id is not None
    assert db.query(models.QuizHistory).count() == 1
    stored = db.query(models.QuizHistory).one()
    assert stored.topic == "cloud-native"
    assert stored.questions_json[0]["user_answer"] == "Kubernetes option A"
    assert stored.questions_json[1]["user_answer"] is None


def test_finalize_keeps_result_when_persistence_fails():
    registry = SessionRegistry(clock=FakeClock())
    handle = start_session(registry, MockLLM(), "u1", _settings())
    handle.engine.expire()
    fake_db = FakeDB()

    result = finalize_session(fake_db, handle)

    assert result is not None
    assert fake_db.rolled_back
    assert handle.saved_quiz_id is None
    assert handle.persist_error == "Failed to save quiz result"
    assert handle.engine.status == SessionStatus.completed


class ScriptedLLM:
    def __init__(self, payload):
        self.payload = payload

    def generate_answer(self, query, context):
        return json.dumps(self.payload)


def test_repeated_generated_ids_keep_answers_consistent(caplog):
    payload = {
        "questions": [
            {"id": "q1", "question": "First?", "options": ["x", "y", "z", "w"], "correctAnswer": "x"},
            {"id": "q1", "question": "Second?", "options": ["p", "q", "r", "s"], "correctAnswer": "p"},
            {"id": "q3", "question": "Third?", "options": ["m", "n", "o", "k"], "correctAnswer": "k"},
        ]
    }
    registry = SessionRegistry(clock=FakeClock())
    with caplog.at_level("WARNING"):
        handle = start_session(registry, ScriptedLLM(payload), "u1", _settings())
    assert [question.id for question in handle.engine.questions] == ["q1", "q3"]
    assert "duplicate id q1" in caplog.text

    engine = handle.engine
    engine.select_answer("a1")
    engine.advance()
    engine.select_answer("a2")
    engine.advance()

    result = engine.result
    matches = [item for item in result.questions if item.user_answer == item.correct_answer]
    assert result.score == len(matches) == 1
    assert [(item.user_answer, item.correct_answer) for item in result.questions] == [("x", "x"), ("n", "k")]
