import logging

from quizhub.core.config import Settings
from quizhub.services.llm.mock import MockLLM
from quizhub.services.llm.real import RealLLMClient, normalize_base_url

logger = logging.getLogger(__name__)


def build_llm_client(settings: Settings):
    provider = (settings.llm_provider or "").strip().lower() or "mock"
    api_key = (settings.openai_api_key or "").strip()
    base_url = normalize_base_url(settings.llm_base_url)
    if provider in {"openai", "openai-compatible", "deepseek", "auto", "real"}:
        if not api_key:
            logger.warning(
                "LLM_PROVIDER=%s but OPENAI_API_KEY is missing. Falling back to MockLLM.",
                provider,
            )
            return MockLLM()
        if not base_url:
            logger.warning(
                "LLM_PROVIDER=%s but LLM_BASE_URL is missing. Falling back to MockLLM.",
                provider,
            )
            return MockLLM()
        return RealLLMClient(
            base_url=base_url,
            api_key=api_key,
            model=settings.llm_model,
            timeout=settings.llm_timeout,
            max_tokens=settings.llm_max_tokens,
        )

    if provider in {"mock", "offline"}:
        return MockLLM()

    logger.warning("Unknown LLM_PROVIDER=%s. Falling back to MockLLM.", provider)
    return MockLLM()
