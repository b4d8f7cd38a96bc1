from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from quizhub.db import models

ALL_SENTINEL = "all"
SORT_COLUMNS = {"rank", "display_name", "avg_percentage", "quiz_count", "total_questions_answered"}


def to_leaderboard_param(value: Optional[str], all_sentinel: str = ALL_SENTINEL) -> str:
    """Map the UI "all" sentinel (or nothing) to the empty-string "no filter" value."""
    cleaned = (value or "").strip()
    if not cleaned or cleaned == all_sentinel:
        return ""
    return cleaned


def upsert_display_name(db: Session, user_id: str, display_name: Optional[str]) -> None:
    name = (display_name or "").strip()
    if not name:
        return
    profile = db.query(models.UserProfile).filter(models.UserProfile.user_id == user_id).first()
    if profile and profile.display_name == name:
        return
    if not profile:
        profile = models.UserProfile(user_id=user_id)
        db.add(profile)
    profile.display_name = name[:255]
    db.commit()


def get_leaderboard(
    db: Session,
    topic: str = "",
    category: str = "",
    difficulty: str = "",
    limit: int = 10,
) -> List[Dict[str, Any]]:
    record = models.QuizHistory
    score_sum = func.sum(record.score)
    questions_sum = func.sum(record.total_questions)
    query = db.query(
        record.user_id,
        func.count(record.id).label("quiz_count"),
        score_sum.label("score_sum"),
        questions_sum.label("questions_sum"),
    )
    if topic:
        query = query.filter(record.topic == topic)
    if category:
        query = query.filter(record.category == category)
    if difficulty:
        query = query.filter(record.difficulty == difficulty)
    rows = query.group_by(record.user_id).having(questions_sum > 0).all()

    user_ids = [row.user_id for row in rows]
    names = dict(
        db.query(models.UserProfile.user_id, models.UserProfile.display_name)
        .filter(models.UserProfile.user_id.in_(user_ids))
        .all()
    ) if user_ids else {}

    entries = []
    for row in rows:
        total = int(row.questions_sum or 0)
        entries.append(
            {
                "user_id": row.user_id,
                "display_name": names.get(row.user_id) or row.user_id,
                "avg_percentage": round(float(row.score_sum or 0) / total * 100, 2),
                "quiz_count": int(row.quiz_count or 0),
                "total_questions_answered": total,
            }
        )
    entries.sort(key=lambda item: (-item["avg_percentage"], -item["quiz_count"], item["user_id"]))
    ranked = []
    for position, entry in enumerate(entries[:limit], start=1):
        ranked.append({"rank": position, **entry})
    return ranked


def sort_leaderboard(
    entries: List[Dict[str, Any]],
    column: str = "avg_percentage",
    direction: str = "desc",
) -> List[Dict[str, Any]]:
    if column not in SORT_COLUMNS:
        raise ValueError(f"Unknown leaderboard column: {column}")
    return sorted(entries, key=lambda item: item[column], reverse=direction == "desc")
