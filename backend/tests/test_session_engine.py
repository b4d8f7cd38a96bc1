import pytest

from conftest import make_question
from quizhub.schemas.quiz import QuizSettings
from quizhub.services.session_engine import QuizSessionEngine, SessionError, SessionStatus


def _engine(count: int = 3, time_limit: int = 10) -> QuizSessionEngine:
    engine = QuizSessionEngine()
    settings = QuizSettings(
        topic="programming",
        category="Python",
        difficulty="medium",
        number_of_questions=count,
        time_limit=time_limit,
    )
    engine.load([make_question(f"q{i + 1}") for i in range(count)], time_limit, settings)
    return engine


def test_load_starts_first_question_with_full_timer():
    engine = _engine()
    assert engine.status == SessionStatus.in_progress
    assert engine.current_question_index == 0
    assert engine.time_remaining == 10
    assert engine.current_question.id == "q1"


def test_empty_question_list_enters_error_state():
    engine = QuizSessionEngine()
    engine.load([], 10)
    assert engine.status == SessionStatus.error
    assert engine.error
    assert engine.select_answer("anything") is False


def test_correct_answer_scores_once_even_when_clicked_twice():
    engine = _engine()
    assert engine.select_answer("q1-a1") is True
    assert engine.select_answer("q1-a1") is False
    assert engine.select_answer("q1-a2") is False
    assert engine.score == 1
    assert engine.status == SessionStatus.answer_locked
    assert engine.answers == {"q1": "q1-a1"}


def test_wrong_answer_does_not_score():
    engine = _engine()
    engine.select_answer("q1-a3")
    assert engine.score == 0


def test_unknown_option_is_rejected():
    engine = _engine()
    with pytest.raises(SessionError) as exc:
        engine.select_answer("nope")
    assert exc.value.status_code == 422
    assert engine.status == SessionStatus.in_progress


def test_timeout_locks_question_with_no_answer():
    engine = _engine(time_limit=10)
    for _ in range(10):
        engine.tick()
    assert engine.status == SessionStatus.answer_locked
    assert engine.answers == {"q1": None}
    assert engine.score == 0
    assert engine.select_answer("q1-a1") is False


def test_locked_question_stops_countdown():
    engine = _engine(time_limit=10)
    engine.tick()
    engine.select_answer("q1-a1")
    engine.tick()
    assert engine.time_remaining == 9
    assert engine.elapsed_seconds == 2


def test_advance_moves_exactly_one_question_and_resets_timer():
    engine = _engine()
    engine.tick()
    engine.select_answer("q1-a2")
    engine.advance()
    assert engine.current_question_index == 1
    assert engine.selected_answer_id is None
    assert engine.time_remaining == 10
    engine.advance()
    assert engine.current_question_index == 1


def test_completes_after_exactly_len_questions_advances():
    engine = _engine(count=3)
    advances = 0
    while engine.status != SessionStatus.completed:
        engine.select_answer(f"q{engine.current_question_index + 1}-a1")
        engine.advance()
        advances += 1
    assert advances == 3
    assert engine.current_question_index == 2
    assert engine.result.score == 3
    engine.advance()
    engine.tick()
    assert engine.elapsed_seconds == 0
    assert engine.result.total_questions == 3


def test_mixed_session_scenario():
    engine = _engine(count=3, time_limit=10)

    for _ in range(2):
        engine.tick()
    engine.select_answer("q1-a1")
    engine.advance()

    for _ in range(10):
        engine.tick()
    engine.advance()

    for _ in range(5):
        engine.tick()
    engine.select_answer("q3-a4")
    engine.advance()

    result = engine.result
    assert engine.status == SessionStatus.completed
    assert result.score == 1
    assert result.time_taken == 17
    assert result.questions[1].user_answer is None
    assert result.questions[2].user_answer == "q3 option 4"
    assert result.topic == "programming"
    assert result.category == "Python"
    correct = [item for item in result.questions if item.user_answer is not None and item.user_answer == item.correct_answer]
    assert len(correct) == result.score


def test_listeners_fire_and_completion_fires_once():
    engine = _engine(count=1)
    changes = []
    completions = []
    unsubscribe = engine.subscribe(lambda e: changes.append(e.status))
    engine.on_complete(completions.append)

    engine.select_answer("q1-a1")
    engine.advance()
    engine.expire()

    assert changes == [SessionStatus.answer_locked, SessionStatus.completed]
    assert len(completions) == 1
    assert completions[0].score == 1

    unsubscribe()
    late = []
    engine.on_complete(late.append)
    assert late == [engine.result]


def test_expire_completes_with_remaining_questions_unanswered():
    engine = _engine(count=3)
    engine.select_answer("q1-a1")
    engine.expire()
    result = engine.result
    assert engine.completed
    assert [item.user_answer for item in result.questions] == ["q1 option 1", None, None]


def test_load_twice_is_rejected():
    engine = _engine()
    with pytest.raises(SessionError):
        engine.load([make_question("x")], 10)


def test_load_rejects_repeated_question_ids():
    engine = QuizSessionEngine()
    with pytest.raises(SessionError) as exc:
        engine.load([make_question("q1"), make_question("q1", correct_index=2)], 10)
    assert exc.value.status_code == 422
    assert engine.status == SessionStatus.idle
