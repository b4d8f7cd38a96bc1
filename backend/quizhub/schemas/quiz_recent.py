from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class QuizRecentRequest(BaseModel):
    limit: int = Field(5, ge=1, le=20)


class QuizRecentItem(BaseModel):
    quiz_id: int
    submitted_at: Optional[datetime] = None
    topic: str
    category: Optional[str] = None
    difficulty: str
    score: int
    total_questions: int
    percentage: float


class QuizRecentResponse(BaseModel):
    items: List[QuizRecentItem]
