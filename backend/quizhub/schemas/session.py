from typing import List, Optional

from pydantic import BaseModel, Field

from .quiz import Difficulty, QuizResult


class AnswerRequest(BaseModel):
    option_id: str = Field(..., min_length=1)


class OptionView(BaseModel):
    id: str
    text: str


class QuestionView(BaseModel):
    id: str
    text: str
    category: str
    difficulty: Difficulty
    options: List[OptionView]


class SessionResponse(BaseModel):
    session_id: str
    status: str
    current_question_index: int
    total_questions: int
    time_remaining: int
    time_limit: int
    elapsed_seconds: int
    score: int
    selected_answer_id: Optional[str] = None
    question: Optional[QuestionView] = None
    error: Optional[str] = None
    result: Optional[QuizResult] = None
    saved_quiz_id: Optional[int] = None
    persist_error: Optional[str] = None


class AnswerResponse(SessionResponse):
    accepted: bool


class ExplainRequest(BaseModel):
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)


class ExplainResponse(BaseModel):
    explanation: str
