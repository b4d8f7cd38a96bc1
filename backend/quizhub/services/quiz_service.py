import concurrent.futures
import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizhub.schemas.quiz import Difficulty, Question, QuestionOption, QuizResult, QuizSettings
from quizhub.services.history_service import save_result
from quizhub.services.llm.base import LLMClient
from quizhub.services.llm.real import RAW_JSON_PREFIX
from quizhub.services.session_clock import SessionClock
from quizhub.services.session_engine import ADVANCE_DELAY_SECONDS, QuizSessionEngine, SessionError

logger = logging.getLogger(__name__)

DEFAULT_GENERATION_TIMEOUT = 60
MAX_GENERATED_QUESTIONS = 30

DIFFICULTY_GUIDE = (
    "- easy: Basic knowledge questions that most beginners would know\n"
    "- medium: Intermediate knowledge requiring some subject familiarity\n"
    "- hard: Advanced questions that only experts would likely answer correctly\n"
)


@dataclass
class QuestionGenerationError(Exception):
    status_code: int
    message: str
    details: Optional[Dict[str, object]] = None


def _build_generation_prompt(settings: QuizSettings) -> str:
    category_clause = f" in the category of {settings.category}" if settings.category else ""
    difficulty = settings.difficulty.value
    return (
        f"{RAW_JSON_PREFIX}"
        f"Create {settings.number_of_questions} multiple-choice questions about "
        f"{settings.topic}{category_clause}.\n"
        f"IMPORTANT: ALL questions MUST be at {difficulty} difficulty level. "
        "Do not generate questions of any other difficulty level.\n"
        "For difficulty levels:\n"
        f"{DIFFICULTY_GUIDE}"
        "Each question should have 4 options with exactly one correct answer.\n"
        "Format your response as a JSON object with a 'questions' array containing objects "
        "with the following structure:\n"
        "{\"questions\":[{\"question\":\"Question text\","
        "\"options\":[\"Option 1\",\"Option 2\",\"Option 3\",\"Option 4\"],"
        "\"correctAnswer\":\"The correct option text\","
        f"\"category\":\"{settings.category or 'Subject category'}\","
        f"\"difficulty\":\"{difficulty}\"}}]}}\n"
    )


def _build_generation_context(settings: QuizSettings) -> str:
    return json.dumps(
        {
            "topic": settings.topic,
            "category": settings.category or "",
            "difficulty": settings.difficulty.value,
            "count": settings.number_of_questions,
        }
    )


def _coerce_question(item: Any, index: int, settings: Optional[QuizSettings]) -> Question:
    if not isinstance(item, dict):
        raise ValueError("question entry is not an object")
    text = str(item.get("question") or item.get("text") or "").strip()
    raw_options = item.get("options") or []
    if not isinstance(raw_options, list):
        raise ValueError("options is not a list")
    difficulty = str(item.get("difficulty") or "").strip().lower()
    if difficulty not in Difficulty.__members__:
        difficulty = settings.difficulty.value if settings else Difficulty.easy.value
    category = str(item.get("category") or (settings.category if settings else "") or "").strip()

    correct_text = item.get("correctAnswer", item.get("correct_answer"))
    options: List[QuestionOption] = []
    for position, raw in enumerate(raw_options, start=1):
        if isinstance(raw, dict):
            option_text = str(raw.get("text") or "").strip()
            is_correct = bool(raw.get("isCorrect", raw.get("is_correct", False)))
            option_id = str(raw.get("id") or f"a{position}")
        else:
            option_text = str(raw).strip()
            is_correct = correct_text is not None and option_text == str(correct_text).strip()
            option_id = f"a{position}"
        options.append(QuestionOption(id=option_id, text=option_text, is_correct=is_correct))

    return Question(
        id=str(item.get("id") or f"q{index + 1}"),
        text=text,
        category=category,
        difficulty=difficulty,
        options=options,
    )


def parse_generated_questions(raw: str, settings: Optional[QuizSettings] = None) -> List[Question]:
    """Turn generator output into validated questions.

    Accepts either ``{"questions": [...]}`` or a bare list, with options given
    as plain strings plus ``correctAnswer`` or as ``{id, text, isCorrect}``
    objects. Entries that violate the one-correct-option rule are dropped, as
    are entries whose id repeats an earlier question's id.
    """
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise QuestionGenerationError(502, "Generator returned invalid JSON", {"error": str(exc)}) from exc
    items = data.get("questions") if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise QuestionGenerationError(502, "Generator response has no questions array")

    questions: List[Question] = []
    seen_ids = set()
    for index, item in enumerate(items[:MAX_GENERATED_QUESTIONS]):
        try:
            question = _coerce_question(item, index, settings)
        except (ValueError, ValidationError) as exc:
            logger.warning("Skipping malformed generated question #%s: %s", index + 1, exc)
            continue
        if question.id in seen_ids:
            logger.warning("Skipping generated question #%s: duplicate id %s", index + 1, question.id)
            continue
        seen_ids.add(question.id)
        questions.append(question)
    if not questions:
        raise QuestionGenerationError(
            502,
            "No questions were generated. Please try again with a different topic.",
            {"received": len(items)},
        )
    return questions


def _safe_llm_generate(llm: LLMClient, query: str, context: str, timeout: float) -> str:
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = executor.submit(llm.generate_answer, query, context)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError as exc:
        future.cancel()
        logger.warning("Question generation timed out after %ss.", timeout)
        raise QuestionGenerationError(504, "Question generation timed out", {"timeout": timeout}) from exc
    except Exception as exc:
        logger.warning("Question generation failed: %s", exc)
        raise QuestionGenerationError(502, "Question generation failed", {"error": str(exc)}) from exc
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def generate_questions(
    llm: LLMClient,
    settings: QuizSettings,
    timeout: Optional[float] = None,
) -> List[Question]:
    raw = _safe_llm_generate(
        llm,
        _build_generation_prompt(settings),
        _build_generation_context(settings),
        timeout or DEFAULT_GENERATION_TIMEOUT,
    )
    questions = parse_generated_questions(raw, settings)
    logger.info(
        "Generated %s/%s questions for topic=%s category=%s",
        len(questions),
        settings.number_of_questions,
        settings.topic,
        settings.category,
    )
    return questions


@dataclass
class SessionHandle:
    session_id: str
    user_id: str
    settings: QuizSettings
    engine: QuizSessionEngine
    clock: SessionClock
    created_at: float = field(default_factory=time.time)
    lock: threading.RLock = field(default_factory=threading.RLock)
    saved_quiz_id: Optional[int] = None
    persist_error: Optional[str] = None
    persisted: bool = False


class SessionRegistry:
    def __init__(
        self,
        advance_delay: float = ADVANCE_DELAY_SECONDS,
        ttl_seconds: int = 6 * 3600,
        max_items: int = 1000,
        clock=time.monotonic,
    ):
        self.advance_delay = advance_delay
        self.ttl_seconds = ttl_seconds
        self.max_items = max_items
        self._clock = clock
        self._sessions: Dict[str, SessionHandle] = {}
        self._lock = threading.Lock()

    def create(self, user_id: str, settings: QuizSettings) -> SessionHandle:
        engine = QuizSessionEngine()
        handle = SessionHandle(
            session_id=uuid.uuid4().hex,
            user_id=user_id,
            settings=settings,
            engine=engine,
            clock=SessionClock(engine, advance_delay=self.advance_delay, clock=self._clock),
        )
        with self._lock:
            self._prune()
            self._sessions[handle.session_id] = handle
        return handle

    def get(self, session_id: str, user_id: str) -> SessionHandle:
        with self._lock:
            handle = self._sessions.get(session_id)
        if not handle:
            raise SessionError(404, "Quiz session not found", {"session_id": session_id})
        if handle.user_id != user_id:
            raise SessionError(403, "Session belongs to another user", {"session_id": session_id})
        return handle

    def discard(self, session_id: str, user_id: str) -> None:
        handle = self.get(session_id, user_id)
        with handle.lock:
            handle.clock.stop()
        with self._lock:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)

    def _prune(self) -> None:
        now = time.time()
        if self.ttl_seconds > 0:
            expired = [key for key, item in self._sessions.items() if now - item.created_at > self.ttl_seconds]
            for key in expired:
                self._sessions.pop(key).clock.stop()
        while len(self._sessions) >= self.max_items:
            oldest = min(self._sessions.values(), key=lambda item: item.created_at)
            self._sessions.pop(oldest.session_id).clock.stop()


def start_session(
    registry: SessionRegistry,
    llm: LLMClient,
    user_id: str,
    settings: QuizSettings,
    timeout: Optional[float] = None,
) -> SessionHandle:
    handle = registry.create(user_id, settings)
    try:
        questions = generate_questions(llm, settings, timeout)
    except QuestionGenerationError as exc:
        handle.engine.fail(exc.message)
        return handle
    handle.engine.load(questions, settings.time_limit, settings)
    handle.clock.start()
    return handle


def finalize_session(db: Session, handle: SessionHandle) -> Optional[QuizResult]:
    """Persist a completed session's result once; failures stay on the handle."""
    result = handle.engine.result
    if result is None or handle.persisted:
        return result
    handle.persisted = True
    try:
        record = save_result(db, handle.user_id, result)
        handle.saved_quiz_id = record.id
    except SQLAlchemyError as exc:
        db.rollback()
        handle.persist_error = "Failed to save quiz result"
        logger.warning("Saving quiz result for session %s failed: %s", handle.session_id, exc)
    return result


def build_session_view(handle: SessionHandle) -> Dict[str, Any]:
    engine = handle.engine
    question = engine.current_question
    return {
        "session_id": handle.session_id,
        "status": engine.status.value,
        "current_question_index": engine.current_question_index,
        "total_questions": len(engine.questions),
        "time_remaining": engine.time_remaining,
        "time_limit": engine.time_limit,
        "elapsed_seconds": engine.elapsed_seconds,
        "score": engine.score,
        "selected_answer_id": engine.selected_answer_id,
        "question": (
            {
                "id": question.id,
                "text": question.text,
                "category": question.category,
                "difficulty": question.difficulty,
                "options": [{"id": option.id, "text": option.text} for option in question.options],
            }
            if question
            else None
        ),
        "error": engine.error,
        "result": engine.result,
        "saved_quiz_id": handle.saved_quiz_id,
        "persist_error": handle.persist_error,
    }
