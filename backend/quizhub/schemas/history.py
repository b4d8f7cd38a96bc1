from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .quiz import AnsweredQuestion


class TopicFilter(str, Enum):
    all = "all"
    programming = "programming"
    databases = "databases"
    networking = "networking"
    linux = "linux"
    cloud_native = "cloud-native"
    general_knowledge = "general-knowledge"


class DifficultyFilter(str, Enum):
    all = "all"
    easy = "easy"
    medium = "medium"
    hard = "hard"


class SortKey(str, Enum):
    newest = "newest"
    oldest = "oldest"
    highest = "highest"
    lowest = "lowest"


class DateRange(str, Enum):
    all_time = "all-time"
    today = "today"
    this_week = "this-week"
    this_month = "this-month"
    this_year = "this-year"


class HistoryFilters(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    search: str = Field("", max_length=255)
    topic: TopicFilter = TopicFilter.all
    difficulty: DifficultyFilter = DifficultyFilter.all
    sort: SortKey = SortKey.newest
    date_range: DateRange = DateRange.all_time


class HistoryItem(BaseModel):
    id: int
    date: Optional[datetime] = None
    topic: str
    category: Optional[str] = None
    score: int
    total_questions: int
    time_taken: int
    difficulty: str


class HistoryPage(BaseModel):
    items: List[HistoryItem] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 10
    total_pages: int = 0


class HistoryAggregates(BaseModel):
    total_count: int = 0
    average_score: float = 0.0
    average_time_seconds: float = 0.0
    average_time: str = "00:00"
    total_questions_sum: int = 0


class QuizDetails(HistoryItem):
    questions: List[AnsweredQuestion] = Field(default_factory=list)
    skipped_questions: int = 0
