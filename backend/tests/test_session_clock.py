import pytest

from conftest import FakeClock, make_question
from quizhub.services.session_clock import SessionClock
from quizhub.services.session_engine import QuizSessionEngine, SessionStatus


def _running(clock: FakeClock, count: int = 3, time_limit: int = 10, delay: float = 0.3):
    engine = QuizSessionEngine()
    engine.load([make_question(f"q{i + 1}") for i in range(count)], time_limit)
    session_clock = SessionClock(engine, advance_delay=delay, clock=clock)
    session_clock.start()
    return engine, session_clock


def test_sync_replays_elapsed_seconds():
    clock = FakeClock()
    engine, session_clock = _running(clock)
    clock.advance(3.5)
    assert session_clock.sync() == 3
    assert engine.elapsed_seconds == 3
    assert engine.time_remaining == 7


def test_answer_advances_after_delay():
    clock = FakeClock()
    engine, session_clock = _running(clock)
    clock.advance(1.2)
    assert session_clock.select_answer("q1-a1") is True
    clock.advance(0.2)
    session_clock.sync()
    assert engine.status == SessionStatus.answer_locked
    clock.advance(0.2)
    session_clock.sync()
    assert engine.status == SessionStatus.in_progress
    assert engine.current_question_index == 1
    assert engine.time_remaining == 10


def test_wall_clock_scenario():
    clock = FakeClock()
    engine, session_clock = _running(clock)

    clock.advance(2.0)
    assert session_clock.select_answer("q1-a1") is True

    # q2 starts at 2.3 and times out on the tick at 12.0
    clock.advance(15.5)
    assert session_clock.select_answer("q3-a2") is True

    clock.advance(1.0)
    session_clock.sync()

    assert engine.status == SessionStatus.completed
    assert engine.result.score == 1
    assert engine.result.time_taken == 17
    assert engine.result.questions[1].user_answer is None
    assert not session_clock.running


def test_answer_after_timeout_is_ignored():
    clock = FakeClock()
    engine, session_clock = _running(clock, count=2)
    clock.advance(10.0)
    assert session_clock.select_answer("q1-a1") is False
    assert engine.answers == {"q1": None}
    assert engine.score == 0


def test_stop_freezes_engine():
    clock = FakeClock()
    engine, session_clock = _running(clock)
    session_clock.stop()
    clock.advance(30)
    assert session_clock.sync() == 0
    assert engine.elapsed_seconds == 0
    assert session_clock.select_answer("q1-a1") is False


def test_clock_does_not_start_for_failed_engine():
    engine = QuizSessionEngine()
    engine.load([], 10)
    session_clock = SessionClock(engine, clock=FakeClock())
    session_clock.start()
    assert not session_clock.running


def test_advance_delay_must_be_positive():
    with pytest.raises(ValueError):
        SessionClock(QuizSessionEngine(), advance_delay=0)
