import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizhub.core.config import load_settings
from quizhub.db.session import Base, engine, get_db
from quizhub.schemas.history import (
    DateRange,
    DifficultyFilter,
    HistoryAggregates,
    HistoryFilters,
    HistoryPage,
    QuizDetails,
    SortKey,
    TopicFilter,
)
from quizhub.schemas.leaderboard import LeaderboardResponse
from quizhub.schemas.quiz import QuizResult, QuizSettings
from quizhub.schemas.quiz_recent import QuizRecentRequest, QuizRecentResponse
from quizhub.schemas.session import AnswerRequest, AnswerResponse, ExplainRequest, ExplainResponse, SessionResponse
from quizhub.services.catalog import build_catalog
from quizhub.services.explain_service import ExplanationError, explain_answer
from quizhub.services.history_service import (
    HistoryQueryError,
    aggregate_history,
    get_quiz_details,
    list_recent_quizzes,
    query_history,
    save_result,
)
from quizhub.services.leaderboard_service import (
    get_leaderboard,
    sort_leaderboard,
    to_leaderboard_param,
    upsert_display_name,
)
from quizhub.services.provider_factory import build_llm_client
from quizhub.services.quiz_service import (
    SessionRegistry,
    build_session_view,
    finalize_session,
    start_session,
)
from quizhub.services.session_engine import SessionError, SessionStatus


def _load_cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "")
    if raw:
        return [item.strip() for item in raw.split(",") if item.strip()]
    return ["http://localhost:5173", "http://127.0.0.1:5173"]


settings = load_settings()
llm_client = build_llm_client(settings)
session_registry = SessionRegistry(advance_delay=settings.quiz_advance_delay)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(docs_url="/api-docs", redoc_url="/api-redoc", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_load_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_llm_client():
    return llm_client


def get_session_registry() -> SessionRegistry:
    return session_registry


def get_user_id(
    x_user_id: str | None = Header(default=None),
) -> str:
    trimmed = (x_user_id or "").strip()
    if not trimmed:
        raise HTTPException(status_code=401, detail="X-User-Id is required")
    return trimmed


def _error_response(status: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"code": code, "message": message, "details": details or {}},
    )


def _exception_response(exc, code: str) -> JSONResponse:
    return _error_response(exc.status_code, code, exc.message, exc.details)


def _database_error_response(db: Session, exc: SQLAlchemyError, message: str) -> JSONResponse:
    db.rollback()
    logger.warning("%s: %s", message, exc)
    return _error_response(503, "HISTORY_QUERY_FAILED", message, {"error": type(exc).__name__})


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/catalog")
def catalog():
    return build_catalog()


@app.post("/quiz/sessions", response_model=SessionResponse)
def create_quiz_session(
    request: QuizSettings,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
    x_display_name: str | None = Header(default=None),
    llm=Depends(get_llm_client),
    registry: SessionRegistry = Depends(get_session_registry),
):
    try:
        upsert_display_name(db, user_id, x_display_name)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Saving display name for user %s failed: %s", user_id, exc)
    handle = start_session(registry, llm, user_id, request, timeout=settings.llm_timeout)
    if handle.engine.status == SessionStatus.error:
        registry.discard(handle.session_id, user_id)
        return _error_response(
            502,
            "GENERATION_FAILED",
            f"Unable to generate questions. Please try again. Error: {handle.engine.error}",
            {"session_id": handle.session_id, "retry": "settings"},
        )
    return build_session_view(handle)


@app.get("/quiz/sessions/{session_id}", response_model=SessionResponse)
def get_quiz_session(
    session_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
):
    try:
        handle = registry.get(session_id, user_id)
        with handle.lock:
            handle.clock.sync()
            finalize_session(db, handle)
            return build_session_view(handle)
    except SessionError as exc:
        return _exception_response(exc, "SESSION_ERROR")


@app.post("/quiz/sessions/{session_id}/answer", response_model=AnswerResponse)
def answer_quiz_question(
    session_id: str,
    request: AnswerRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
):
    try:
        handle = registry.get(session_id, user_id)
        with handle.lock:
            accepted = handle.clock.select_answer(request.option_id)
            finalize_session(db, handle)
            return {**build_session_view(handle), "accepted": accepted}
    except SessionError as exc:
        return _exception_response(exc, "SESSION_ERROR")


@app.delete("/quiz/sessions/{session_id}")
def delete_quiz_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
):
    try:
        registry.discard(session_id, user_id)
    except SessionError as exc:
        return _exception_response(exc, "SESSION_ERROR")
    return {"status": "deleted", "session_id": session_id}


@app.post("/quiz/history", response_model=QuizDetails)
def store_quiz_result(
    request: QuizResult,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
):
    record = save_result(db, user_id, request)
    return get_quiz_details(db, user_id, record.id)


@app.get("/quiz/history", response_model=HistoryPage)
def list_quiz_history(
    search: str = Query("", max_length=255),
    topic: TopicFilter = TopicFilter.all,
    difficulty: DifficultyFilter = DifficultyFilter.all,
    sort: SortKey = SortKey.newest,
    date_range: DateRange = DateRange.all_time,
    page: int = Query(1),
    page_size: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
):
    filters = HistoryFilters(search=search, topic=topic, difficulty=difficulty, sort=sort, date_range=date_range)
    try:
        return query_history(db, user_id, filters, page, page_size or settings.history_page_size)
    except HistoryQueryError as exc:
        return _exception_response(exc, "HISTORY_QUERY_FAILED")
    except SQLAlchemyError as exc:
        return _database_error_response(db, exc, "Failed to load quiz history")


@app.get("/quiz/history/stats", response_model=HistoryAggregates)
def quiz_history_stats(
    search: str = Query("", max_length=255),
    topic: TopicFilter = TopicFilter.all,
    difficulty: DifficultyFilter = DifficultyFilter.all,
    date_range: DateRange = DateRange.all_time,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
):
    filters = HistoryFilters(search=search, topic=topic, difficulty=difficulty, date_range=date_range)
    try:
        return aggregate_history(db, user_id, filters)
    except SQLAlchemyError as exc:
        return _database_error_response(db, exc, "Failed to load quiz statistics")


@app.get("/quiz/history/{quiz_id}", response_model=QuizDetails)
def quiz_history_detail(
    quiz_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
):
    try:
        return get_quiz_details(db, user_id, quiz_id)
    except HistoryQueryError as exc:
        return _exception_response(exc, "HISTORY_QUERY_FAILED")


@app.post("/quizzes/recent", response_model=QuizRecentResponse)
def quizzes_recent(
    request: QuizRecentRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
):
    items = list_recent_quizzes(db, user_id, request.limit)
    return {"items": items}


@app.get("/leaderboard", response_model=LeaderboardResponse)
def leaderboard(
    topic: str = "",
    category: str = "",
    difficulty: str = "",
    limit: int | None = Query(None, ge=1, le=100),
    sort_column: str = "rank",
    sort_direction: str = Query("asc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
):
    entries = get_leaderboard(
        db,
        topic=to_leaderboard_param(topic),
        category=to_leaderboard_param(category),
        difficulty=to_leaderboard_param(difficulty),
        limit=limit or settings.leaderboard_limit,
    )
    try:
        entries = sort_leaderboard(entries, sort_column, sort_direction)
    except ValueError as exc:
        return _error_response(422, "INVALID_SORT", str(exc), {"sort_column": sort_column})
    return {"items": entries}


@app.post("/quiz/explain", response_model=ExplainResponse)
def quiz_explain(request: ExplainRequest, llm=Depends(get_llm_client)):
    try:
        return {"explanation": explain_answer(llm, request.question, request.answer)}
    except ExplanationError as exc:
        return _exception_response(exc, "EXPLANATION_FAILED")
