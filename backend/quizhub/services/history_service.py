import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from quizhub.db import models
from quizhub.schemas.history import DateRange, DifficultyFilter, HistoryFilters, SortKey, TopicFilter
from quizhub.schemas.quiz import AnsweredQuestion, QuizResult

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass
class HistoryQueryError(Exception):
    status_code: int
    message: str
    details: Optional[Dict[str, object]] = None


def date_range_start(date_range: DateRange, now: Optional[datetime] = None) -> Optional[datetime]:
    """Lower bound (local time) for ``date_range``; ``None`` means unbounded."""
    current = now or datetime.now()
    today = current.replace(hour=0, minute=0, second=0, microsecond=0)
    if date_range == DateRange.today:
        return today
    if date_range == DateRange.this_week:
        # weekday(): Monday=0 .. Sunday=6
        return today - timedelta(days=(today.weekday() + 1) % 7)
    if date_range == DateRange.this_month:
        return today.replace(day=1)
    if date_range == DateRange.this_year:
        return today.replace(month=1, day=1)
    return None


def _like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def apply_history_filters(
    query: Query,
    user_id: str,
    filters: HistoryFilters,
    now: Optional[datetime] = None,
) -> Query:
    record = models.QuizHistory
    query = query.filter(record.user_id == user_id)
    if filters.difficulty != DifficultyFilter.all:
        query = query.filter(record.difficulty == filters.difficulty.value)
    if filters.topic != TopicFilter.all:
        query = query.filter(record.topic.ilike(_like_pattern(filters.topic.value), escape="\\"))
    search = filters.search.strip()
    if search:
        pattern = _like_pattern(search)
        query = query.filter(
            or_(
                record.topic.ilike(pattern, escape="\\"),
                record.category.ilike(pattern, escape="\\"),
            )
        )
    start = date_range_start(filters.date_range, now)
    if start is not None:
        query = query.filter(record.date.is_not(None), record.date >= start)
    return query


def _apply_sort(query: Query, sort: SortKey) -> Query:
    record = models.QuizHistory
    undated_last = record.date.is_(None)
    if sort == SortKey.oldest:
        return query.order_by(undated_last, record.date.asc(), record.id.asc())
    if sort == SortKey.highest:
        return query.order_by(record.score.desc(), undated_last, record.date.desc(), record.id.desc())
    if sort == SortKey.lowest:
        return query.order_by(record.score.asc(), undated_last, record.date.desc(), record.id.desc())
    return query.order_by(undated_last, record.date.desc(), record.id.desc())


def count_pages(total_count: int, page_size: int) -> int:
    if total_count <= 0:
        return 0
    return math.ceil(total_count / page_size)


def is_page_in_range(page: int, total_pages: int) -> bool:
    return 1 <= page <= max(total_pages, 1)


def _serialize_item(record: models.QuizHistory) -> Dict[str, Any]:
    return {
        "id": record.id,
        "date": record.date,
        "topic": record.topic,
        "category": record.category,
        "score": record.score or 0,
        "total_questions": record.total_questions or 0,
        "time_taken": record.time_taken or 0,
        "difficulty": record.difficulty,
    }


def query_history(
    db: Session,
    user_id: str,
    filters: HistoryFilters,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise HistoryQueryError(422, "page_size out of range", {"page_size": page_size, "max": MAX_PAGE_SIZE})
    filtered = apply_history_filters(db.query(models.QuizHistory), user_id, filters, now)
    total_count = filtered.order_by(None).count()
    total_pages = count_pages(total_count, page_size)
    if not is_page_in_range(page, total_pages):
        raise HistoryQueryError(
            422,
            "Page out of range",
            {"page": page, "total_pages": total_pages},
        )
    rows = _apply_sort(filtered, filters.sort).offset((page - 1) * page_size).limit(page_size).all()
    return {
        "items": [_serialize_item(row) for row in rows],
        "total_count": total_count,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
    }


def format_duration(seconds: float) -> str:
    total = max(int(round(seconds or 0)), 0)
    minutes, remainder = divmod(total, 60)
    return f"{minutes:02d}:{remainder:02d}"


def aggregate_history(
    db: Session,
    user_id: str,
    filters: HistoryFilters,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Summary over every matching record, independent of paging.

    ``average_score`` is ``sum(score) / sum(total_questions) * 100``: the share of
    all answered questions that were correct, not the mean of per-quiz percentages.
    """
    record = models.QuizHistory
    filtered = apply_history_filters(db.query(record), user_id, filters, now)
    count, score_sum, questions_sum, time_sum = filtered.with_entities(
        func.count(record.id),
        func.coalesce(func.sum(record.score), 0),
        func.coalesce(func.sum(record.total_questions), 0),
        func.coalesce(func.sum(record.time_taken), 0),
    ).one()
    count = int(count or 0)
    questions_sum = int(questions_sum or 0)
    average_score = (float(score_sum) / questions_sum * 100) if questions_sum > 0 else 0.0
    average_time = (float(time_sum) / count) if count > 0 else 0.0
    return {
        "total_count": count,
        "average_score": average_score,
        "average_time_seconds": average_time,
        "average_time": format_duration(average_time),
        "total_questions_sum": questions_sum,
    }


def save_result(
    db: Session,
    user_id: str,
    result: QuizResult,
    date: Optional[datetime] = None,
) -> models.QuizHistory:
    record = models.QuizHistory(
        user_id=user_id,
        date=date or datetime.now(),
        topic=result.topic,
        category=result.category,
        score=result.score,
        total_questions=result.total_questions,
        time_taken=result.time_taken,
        difficulty=result.difficulty.value,
        questions_json=[item.model_dump() for item in result.questions],
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info("Saved quiz result %s for user %s", record.id, user_id)
    return record


def _parse_answered_question(item: Any) -> AnsweredQuestion:
    if not isinstance(item, dict):
        raise ValueError("entry is not an object")
    return AnsweredQuestion(
        id=str(item.get("id") or ""),
        question=item.get("question"),
        options=item.get("options"),
        correct_answer=item.get("correct_answer", item.get("correctAnswer")),
        user_answer=item.get("user_answer", item.get("userAnswer")),
    )


def get_quiz_details(db: Session, user_id: str, quiz_id: int) -> Dict[str, Any]:
    record = db.query(models.QuizHistory).filter(models.QuizHistory.id == quiz_id).first()
    if not record:
        raise HistoryQueryError(404, "Quiz not found", {"quiz_id": quiz_id})
    if record.user_id != user_id:
        raise HistoryQueryError(403, "Quiz belongs to another user", {"quiz_id": quiz_id})

    raw_questions = record.questions_json
    if raw_questions is None:
        raw_questions = []
    if not isinstance(raw_questions, list):
        logger.warning("Quiz %s has malformed question data (%s); ignoring it.", quiz_id, type(raw_questions).__name__)
        raw_questions = []

    questions: List[AnsweredQuestion] = []
    skipped = 0
    for index, item in enumerate(raw_questions):
        try:
            questions.append(_parse_answered_question(item))
        except (ValueError, ValidationError) as exc:
            skipped += 1
            logger.warning("Skipping malformed question #%s in quiz %s: %s", index + 1, quiz_id, exc)

    details = _serialize_item(record)
    details["questions"] = questions
    details["skipped_questions"] = skipped
    return details


def list_recent_quizzes(db: Session, user_id: str, limit: int) -> List[Dict[str, Any]]:
    record = models.QuizHistory
    rows = (
        db.query(record)
        .filter(record.user_id == user_id)
        .order_by(record.date.is_(None), record.date.desc(), record.id.desc())
        .limit(limit)
        .all()
    )
    items: List[Dict[str, Any]] = []
    for row in rows:
        total = row.total_questions or 0
        items.append(
            {
                "quiz_id": row.id,
                "submitted_at": row.date,
                "topic": row.topic,
                "category": row.category,
                "difficulty": row.difficulty,
                "score": row.score or 0,
                "total_questions": total,
                "percentage": round((row.score or 0) / total * 100, 2) if total else 0.0,
            }
        )
    return items


PageFetcher = Callable[[HistoryFilters, int, int], Dict[str, Any]]
AggregateFetcher = Callable[[HistoryFilters], Dict[str, Any]]


class HistoryBrowser:
    """State holder for one history view.

    The paged result and the aggregates are fetched independently and each has
    its own error slot, so one failing leaves the other intact. After
    :meth:`close` late results are dropped.
    """

    def __init__(
        self,
        fetch_page: PageFetcher,
        fetch_aggregates: AggregateFetcher,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self._fetch_page = fetch_page
        self._fetch_aggregates = fetch_aggregates
        self.page_size = page_size
        self.filters = HistoryFilters()
        self.page = 1
        self.page_result: Optional[Dict[str, Any]] = None
        self.page_error: Optional[str] = None
        self.aggregates: Optional[Dict[str, Any]] = None
        self.aggregate_error: Optional[str] = None
        self.closed = False
        self._page_request = 0
        self._aggregate_request = 0
        self._listeners: List[Callable[["HistoryBrowser"], None]] = []

    @classmethod
    def for_user(cls, db: Session, user_id: str, page_size: int = DEFAULT_PAGE_SIZE) -> "HistoryBrowser":
        return cls(
            fetch_page=lambda filters, page, size: query_history(db, user_id, filters, page, size),
            fetch_aggregates=lambda filters: aggregate_history(db, user_id, filters),
            page_size=page_size,
        )

    @property
    def total_pages(self) -> int:
        if self.page_result is not None:
            return self.page_result["total_pages"]
        if self.aggregates is not None:
            return count_pages(self.aggregates["total_count"], self.page_size)
        return 0

    def subscribe(self, listener: Callable[["HistoryBrowser"], None]) -> None:
        self._listeners.append(listener)

    def load(self) -> None:
        self.refresh_page()
        self.refresh_aggregates()

    def set_filters(self, filters: HistoryFilters) -> None:
        if self.closed:
            return
        self.filters = filters
        self.page = 1
        # results for the old filters must not bound navigation under the new ones
        self.page_result = None
        self.aggregates = None
        self.load()

    def set_page_size(self, page_size: int) -> None:
        if self.closed or page_size < 1:
            return
        self.page_size = page_size
        self.page = 1
        self.page_result = None
        self.refresh_page()

    def go_to_page(self, page: int) -> bool:
        if self.closed or not is_page_in_range(page, self.total_pages):
            return False
        self.page = page
        self.refresh_page()
        return True

    def next_page(self) -> bool:
        return self.go_to_page(self.page + 1)

    def previous_page(self) -> bool:
        return self.go_to_page(self.page - 1)

    def refresh_page(self) -> None:
        if self.closed:
            return
        self._page_request += 1
        request_id = self._page_request
        try:
            result = self._fetch_page(self.filters, self.page, self.page_size)
        except (HistoryQueryError, SQLAlchemyError) as exc:
            if self._is_stale(request_id, self._page_request):
                return
            logger.warning("History page fetch failed: %s", exc)
            self.page_error = getattr(exc, "message", None) or "Failed to load quiz history"
            self._notify()
            return
        if self._is_stale(request_id, self._page_request):
            return
        self.page_result = result
        self.page_error = None
        self._notify()

    def refresh_aggregates(self) -> None:
        if self.closed:
            return
        self._aggregate_request += 1
        request_id = self._aggregate_request
        try:
            result = self._fetch_aggregates(self.filters)
        except (HistoryQueryError, SQLAlchemyError) as exc:
            if self._is_stale(request_id, self._aggregate_request):
                return
            logger.warning("History aggregate fetch failed: %s", exc)
            self.aggregate_error = getattr(exc, "message", None) or "Failed to load quiz statistics"
            self._notify()
            return
        if self._is_stale(request_id, self._aggregate_request):
            return
        self.aggregates = result
        self.aggregate_error = None
        self._notify()

    def close(self) -> None:
        self.closed = True
        self._listeners.clear()

    def _is_stale(self, request_id: int, latest: int) -> bool:
        return self.closed or request_id != latest

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
