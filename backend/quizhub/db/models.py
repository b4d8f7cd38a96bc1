from sqlalchemy import Column, DateTime, Integer, JSON, String, func

from .session import Base


class QuizHistory(Base):
    __tablename__ = "quiz_history"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    date = Column(DateTime, server_default=func.now(), nullable=True, index=True)
    topic = Column(String(64), nullable=False)
    category = Column(String(64), nullable=True)
    score = Column(Integer, nullable=False, default=0)
    total_questions = Column(Integer, nullable=False, default=0)
    time_taken = Column(Integer, nullable=False, default=0)
    difficulty = Column(String(16), nullable=False)
    questions_json = Column(JSON, nullable=True)


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
