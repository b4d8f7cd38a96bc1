from typing import List

from pydantic import BaseModel, Field


class LeaderboardRequest(BaseModel):
    topic: str = ""
    category: str = ""
    difficulty: str = ""
    limit: int = Field(10, ge=1, le=100)


class LeaderboardEntry(BaseModel):
    rank: int
    display_name: str
    avg_percentage: float
    quiz_count: int
    total_questions_answered: int
    user_id: str


class LeaderboardResponse(BaseModel):
    items: List[LeaderboardEntry]
