import re

import httpx

from .base import LLMClient

RAW_JSON_PREFIX = "RAW_JSON:"
QUIZ_SYSTEM_PROMPT = "You are a strict JSON generator for quiz questions. Output JSON only, no extra text."
TUTOR_SYSTEM_PROMPT = (
    "You are an expert tutor. Explain why the given answer is correct for the provided question "
    "in a clear, concise, and helpful manner. Focus on the core concepts being tested. "
    "Do not just repeat the question and answer."
)


def normalize_base_url(base_url: str) -> str:
    cleaned = (base_url or "").strip().rstrip("/")
    if not cleaned:
        return ""
    if re.search(r"/v\d+$", cleaned):
        return cleaned
    return f"{cleaned}/v1"


class RealLLMClient(LLMClient):
    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        timeout: float = 60.0,
        max_tokens: int = 4096,
    ):
        self.base_url = normalize_base_url(base_url)
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens

    def generate_answer(self, query: str, context: str) -> str:
        raw_json = False
        if query.startswith(RAW_JSON_PREFIX):
            raw_json = True
            query = query[len(RAW_JSON_PREFIX):].lstrip()

        if raw_json:
            system_prompt = QUIZ_SYSTEM_PROMPT
            user_prompt = query
        else:
            system_prompt = TUTOR_SYSTEM_PROMPT
            cleaned = (context or "").strip()
            user_prompt = f"{query}\n\n{cleaned}" if cleaned else query
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": 0.5,
            "max_tokens": self.max_tokens if raw_json else min(self.max_tokens, 300),
        }
        if raw_json:
            payload["response_format"] = {"type": "json_object"}

        headers = {"Authorization": f"Bearer {self.api_key}"}
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=headers,
            )
        response.raise_for_status()
        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            raise RuntimeError("LLM response missing choices.")
        message = choices[0].get("message") or {}
        content = (message.get("content") or "").strip()
        if not content:
            raise RuntimeError("LLM response missing content.")
        return content
