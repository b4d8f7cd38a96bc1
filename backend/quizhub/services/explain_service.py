import logging
from dataclasses import dataclass
from typing import Dict, Optional

from quizhub.services.llm.base import LLMClient

logger = logging.getLogger(__name__)


@dataclass
class ExplanationError(Exception):
    status_code: int
    message: str
    details: Optional[Dict[str, object]] = None


def explain_answer(llm: LLMClient, question: str, answer: str) -> str:
    question = (question or "").strip()
    answer = (answer or "").strip()
    if not question or not answer:
        raise ExplanationError(400, "Missing or invalid 'question' or 'answer'")
    prompt = f"Question: {question}\nCorrect Answer: {answer}\n\nExplanation:"
    try:
        explanation = (llm.generate_answer(prompt, "") or "").strip()
    except Exception as exc:
        logger.warning("Explanation generation failed: %s", exc)
        raise ExplanationError(502, "Failed to generate explanation", {"error": str(exc)}) from exc
    if not explanation:
        raise ExplanationError(502, "Failed to generate explanation from AI model.")
    return explanation
