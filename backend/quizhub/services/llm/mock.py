import json
from typing import Any, Dict, List

from .base import LLMClient
from .real import RAW_JSON_PREFIX


class MockLLM(LLMClient):
    """Offline stand-in that returns well-formed, predictable content."""

    def __init__(self, options_per_question: int = 4):
        self.options_per_question = options_per_question

    def generate_answer(self, query: str, context: str) -> str:
        if query.startswith(RAW_JSON_PREFIX):
            return json.dumps({"questions": self._build_questions(context)})
        answer = ""
        for line in (query or "").splitlines():
            if line.lower().startswith("correct answer:"):
                answer = line.split(":", 1)[1].strip()
                break
        if not answer:
            return "No explanation available."
        return f"The correct answer is {answer} because it matches the core concept tested by the question."

    def _build_questions(self, context: str) -> List[Dict[str, Any]]:
        try:
            request = json.loads(context or "{}")
        except json.JSONDecodeError:
            request = {}
        count = int(request.get("count") or 5)
        topic = request.get("topic") or "general knowledge"
        category = request.get("category") or topic
        difficulty = request.get("difficulty") or "easy"
        questions = []
        for index in range(count):
            options = [f"{category} option {letter}" for letter in "ABCD"[: self.options_per_question]]
            questions.append(
                {
                    "question": f"Sample {difficulty} question {index + 1} about {category}?",
                    "options": options,
                    "correctAnswer": options[index % len(options)],
                    "category": category,
                    "difficulty": difficulty,
                }
            )
        return questions
