from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from quizhub.services.catalog import (
    MAX_QUESTIONS,
    MAX_TIME_LIMIT,
    MIN_QUESTIONS,
    MIN_TIME_LIMIT,
    validate_topic_category,
)


class Difficulty(str, Enum):
    easy = "easy"
    medium = "medium"
    hard = "hard"


class QuestionOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    text: str
    is_correct: bool = False


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    category: str = ""
    difficulty: Difficulty
    options: List[QuestionOption] = Field(..., min_length=4, max_length=4)

    @model_validator(mode="after")
    def _check_options(self) -> "Question":
        correct = [option for option in self.options if option.is_correct]
        if len(correct) != 1:
            raise ValueError(f"Question {self.id} must have exactly one correct option, got {len(correct)}")
        ids = [option.id for option in self.options]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Question {self.id} has duplicate option ids")
        return self

    def correct_option(self) -> QuestionOption:
        return next(option for option in self.options if option.is_correct)

    def find_option(self, option_id: str) -> Optional[QuestionOption]:
        return next((option for option in self.options if option.id == option_id), None)


class AnsweredQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    question: str
    options: List[str]
    correct_answer: str
    user_answer: Optional[str] = None


class QuizSettings(BaseModel):
    topic: str = Field(..., min_length=1)
    category: Optional[str] = None
    difficulty: Difficulty = Difficulty.easy
    number_of_questions: int = Field(10, ge=MIN_QUESTIONS, le=MAX_QUESTIONS)
    time_limit: int = Field(30, ge=MIN_TIME_LIMIT, le=MAX_TIME_LIMIT)

    @model_validator(mode="after")
    def _check_category(self) -> "QuizSettings":
        validate_topic_category(self.topic, self.category)
        return self


class QuizResult(BaseModel):
    score: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    time_taken: int = Field(..., ge=0)
    difficulty: Difficulty
    topic: str
    category: Optional[str] = None
    questions: List[AnsweredQuestion] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_counts(self) -> "QuizResult":
        if self.score > self.total_questions:
            raise ValueError(f"score {self.score} exceeds total_questions {self.total_questions}")
        if self.questions and len(self.questions) != self.total_questions:
            raise ValueError(
                f"questions has {len(self.questions)} entries but total_questions is {self.total_questions}"
            )
        return self


class QuizResultRead(QuizResult):
    id: int
    user_id: str
    date: Optional[datetime] = None
