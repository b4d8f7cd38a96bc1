import os
import sys
import uuid

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

from quizhub.db import models
from quizhub.db.session import SessionLocal
from quizhub.schemas.history import HistoryFilters
from quizhub.services.history_service import aggregate_history, query_history


def main() -> None:
    user_id = f"verify-{uuid.uuid4().hex[:8]}"
    db = SessionLocal()
    try:
        record = models.QuizHistory(
            user_id=user_id,
            topic="programming",
            category="Python",
            score=7,
            total_questions=10,
            time_taken=95,
            difficulty="medium",
            questions_json=[
                {
                    "id": "q1",
                    "question": "Sample question?",
                    "options": ["A", "B", "C", "D"],
                    "correct_answer": "A",
                    "user_answer": "B",
                }
            ],
        )
        db.add(record)
        db.commit()

        page = query_history(db, user_id, HistoryFilters())
        stats = aggregate_history(db, user_id, HistoryFilters())

        print(
            "record_id={record_id} page_total={page_total} stats_total={stats_total} "
            "average_score={average_score:.2f} user_id={user_id}".format(
                record_id=record.id,
                page_total=page["total_count"],
                stats_total=stats["total_count"],
                average_score=stats["average_score"],
                user_id=user_id,
            )
        )

        db.delete(record)
        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    main()
