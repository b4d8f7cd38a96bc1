"""State machine for a single timed quiz attempt.

The engine is tick driven: every call to :meth:`QuizSessionEngine.tick` is one
second of wall time, every call to :meth:`QuizSessionEngine.advance` is the end
of the short pause after an answer is locked. Something outside the engine
(``SessionClock`` for the HTTP API, a UI event loop elsewhere) decides when
those calls happen, so the engine itself never sleeps and never spawns threads.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from quizhub.schemas.quiz import AnsweredQuestion, Difficulty, Question, QuizResult, QuizSettings

logger = logging.getLogger(__name__)

ADVANCE_DELAY_SECONDS = 0.3

Listener = Callable[["QuizSessionEngine"], None]
CompletionListener = Callable[[QuizResult], None]


class SessionStatus(str, Enum):
    idle = "idle"
    in_progress = "in_progress"
    answer_locked = "answer_locked"
    completed = "completed"
    error = "error"


@dataclass
class SessionError(Exception):
    status_code: int
    message: str
    details: Optional[Dict[str, object]] = None


class QuizSessionEngine:
    def __init__(self) -> None:
        self._status = SessionStatus.idle
        self._questions: List[Question] = []
        self._settings: Optional[QuizSettings] = None
        self._time_limit = 0
        self._time_remaining = 0
        self._current_index = 0
        self._selected_answer_id: Optional[str] = None
        self._score = 0
        self._elapsed_seconds = 0
        self._answers: Dict[str, Optional[str]] = {}
        self._error: Optional[str] = None
        self._result: Optional[QuizResult] = None
        self._listeners: List[Listener] = []
        self._completion_listeners: List[CompletionListener] = []

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def questions(self) -> List[Question]:
        return list(self._questions)

    @property
    def current_question_index(self) -> int:
        return self._current_index

    @property
    def current_question(self) -> Optional[Question]:
        if self._status not in (SessionStatus.in_progress, SessionStatus.answer_locked):
            return None
        return self._questions[self._current_index]

    @property
    def selected_answer_id(self) -> Optional[str]:
        return self._selected_answer_id

    @property
    def score(self) -> int:
        return self._score

    @property
    def elapsed_seconds(self) -> int:
        return self._elapsed_seconds

    @property
    def time_limit(self) -> int:
        return self._time_limit

    @property
    def time_remaining(self) -> int:
        return self._time_remaining

    @property
    def answers(self) -> Dict[str, Optional[str]]:
        return dict(self._answers)

    @property
    def completed(self) -> bool:
        return self._status == SessionStatus.completed

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def result(self) -> Optional[QuizResult]:
        return self._result

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener and return a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def on_complete(self, listener: CompletionListener) -> None:
        if self._result is not None:
            listener(self._result)
            return
        self._completion_listeners.append(listener)

    def load(
        self,
        questions: Sequence[Question],
        time_limit: int,
        settings: Optional[QuizSettings] = None,
    ) -> None:
        if self._status != SessionStatus.idle:
            raise SessionError(409, "Session already started", {"status": self._status.value})
        if time_limit <= 0:
            raise SessionError(422, "time_limit must be positive", {"time_limit": time_limit})
        ids = [question.id for question in questions]
        if len(set(ids)) != len(ids):
            raise SessionError(422, "Question ids must be unique", {"question_ids": ids})
        self._settings = settings
        if not questions:
            self.fail("No questions were returned by the generator.")
            return
        self._questions = list(questions)
        self._time_limit = int(time_limit)
        self._time_remaining = self._time_limit
        self._status = SessionStatus.in_progress
        logger.info("Quiz session started with %s questions (limit=%ss)", len(self._questions), time_limit)
        self._notify()

    def fail(self, message: str) -> None:
        if self._status != SessionStatus.idle:
            raise SessionError(409, "Only an idle session can fail", {"status": self._status.value})
        self._status = SessionStatus.error
        self._error = message
        logger.warning("Quiz session could not start: %s", message)
        self._notify()

    def select_answer(self, option_id: str) -> bool:
        """Lock ``option_id`` for the current question.

        Returns ``False`` without touching any state when the current question
        already has an answer or the session is not running.
        """
        if self._status != SessionStatus.in_progress or self._selected_answer_id is not None:
            return False
        question = self._questions[self._current_index]
        option = question.find_option(option_id)
        if option is None:
            raise SessionError(
                422,
                "Unknown option for current question",
                {"question_id": question.id, "option_id": option_id},
            )
        self._lock(question, option.id)
        if option.is_correct:
            self._score += 1
        self._notify()
        return True

    def tick(self) -> None:
        if self._status not in (SessionStatus.in_progress, SessionStatus.answer_locked):
            return
        self._elapsed_seconds += 1
        if self._status == SessionStatus.in_progress:
            self._time_remaining = max(self._time_remaining - 1, 0)
            if self._time_remaining == 0:
                question = self._questions[self._current_index]
                logger.debug("Question %s timed out", question.id)
                self._lock(question, None)
        self._notify()

    def advance(self) -> None:
        if self._status != SessionStatus.answer_locked:
            return
        if self._current_index >= len(self._questions) - 1:
            self._complete()
            return
        self._current_index += 1
        self._selected_answer_id = None
        self._time_remaining = self._time_limit
        self._status = SessionStatus.in_progress
        self._notify()

    def expire(self) -> None:
        """End the attempt now; unanswered questions stay ``None``."""
        if self._status not in (SessionStatus.in_progress, SessionStatus.answer_locked):
            return
        self._complete()

    def build_result(self) -> QuizResult:
        answered: List[AnsweredQuestion] = []
        for question in self._questions:
            selected_id = self._answers.get(question.id)
            selected = question.find_option(selected_id) if selected_id else None
            answered.append(
                AnsweredQuestion(
                    id=question.id,
                    question=question.text,
                    options=[option.text for option in question.options],
                    correct_answer=question.correct_option().text,
                    user_answer=selected.text if selected else None,
                )
            )
        settings = self._settings
        difficulty = settings.difficulty if settings else self._fallback_difficulty()
        return QuizResult(
            score=self._score,
            total_questions=len(self._questions),
            time_taken=self._elapsed_seconds,
            difficulty=difficulty,
            topic=settings.topic if settings else "",
            category=settings.category if settings else None,
            questions=answered,
        )

    def _fallback_difficulty(self) -> Difficulty:
        if self._questions:
            return self._questions[0].difficulty
        return Difficulty.easy

    def _lock(self, question: Question, option_id: Optional[str]) -> None:
        self._answers[question.id] = option_id
        self._selected_answer_id = option_id
        self._status = SessionStatus.answer_locked

    def _complete(self) -> None:
        self._status = SessionStatus.completed
        self._time_remaining = 0
        self._result = self.build_result()
        logger.info(
            "Quiz session completed: score=%s/%s time=%ss",
            self._result.score,
            self._result.total_questions,
            self._result.time_taken,
        )
        listeners, self._completion_listeners = self._completion_listeners, []
        for listener in listeners:
            listener(self._result)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
