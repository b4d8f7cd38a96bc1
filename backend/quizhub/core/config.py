import os
from dataclasses import dataclass
from urllib.parse import quote_plus


@dataclass(frozen=True)
class Settings:
    mysql_host: str
    mysql_port: int
    mysql_user: str
    mysql_password: str
    mysql_database: str
    database_url: str
    llm_provider: str
    llm_base_url: str
    llm_model: str
    llm_timeout: float
    llm_max_tokens: int
    openai_api_key: str
    quiz_advance_delay: float
    history_page_size: int
    leaderboard_limit: int


def _build_database_url(
    mysql_host: str,
    mysql_port: int,
    mysql_user: str,
    mysql_password: str,
    mysql_database: str,
) -> str:
    password = quote_plus(mysql_password)
    return (
        "mysql+pymysql://"
        f"{mysql_user}:{password}@{mysql_host}:{mysql_port}/{mysql_database}"
        "?charset=utf8mb4"
    )


def load_settings() -> Settings:
    mysql_host = os.getenv("MYSQL_HOST", "localhost")
    mysql_port = int(os.getenv("MYSQL_PORT", "3306"))
    mysql_user = os.getenv("MYSQL_USER", "app_user")
    mysql_password = os.getenv("MYSQL_PASSWORD", "app_pass")
    mysql_database = os.getenv("MYSQL_DATABASE", "app_db")

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        database_url = _build_database_url(
            mysql_host=mysql_host,
            mysql_port=mysql_port,
            mysql_user=mysql_user,
            mysql_password=mysql_password,
            mysql_database=mysql_database,
        )

    llm_provider = os.getenv("LLM_PROVIDER", "openai")
    llm_base_url = os.getenv("LLM_BASE_URL", "https://api.openai.com")
    llm_model = os.getenv("LLM_MODEL", "gpt-4o")
    llm_timeout = float(os.getenv("LLM_TIMEOUT", "60"))
    llm_max_tokens = int(os.getenv("LLM_MAX_TOKENS", "4096"))
    openai_api_key = os.getenv("OPENAI_API_KEY", "")
    quiz_advance_delay = float(os.getenv("QUIZ_ADVANCE_DELAY", "0.3"))
    if quiz_advance_delay <= 0:
        quiz_advance_delay = 0.3
    history_page_size = max(int(os.getenv("HISTORY_PAGE_SIZE", "10")), 1)
    leaderboard_limit = max(int(os.getenv("LEADERBOARD_LIMIT", "10")), 1)

    return Settings(
        mysql_host=mysql_host,
        mysql_port=mysql_port,
        mysql_user=mysql_user,
        mysql_password=mysql_password,
        mysql_database=mysql_database,
        database_url=database_url,
        llm_provider=llm_provider,
        llm_base_url=llm_base_url,
        llm_model=llm_model,
        llm_timeout=llm_timeout,
        llm_max_tokens=llm_max_tokens,
        openai_api_key=openai_api_key,
        quiz_advance_delay=quiz_advance_delay,
        history_page_size=history_page_size,
        leaderboard_limit=leaderboard_limit,
    )
