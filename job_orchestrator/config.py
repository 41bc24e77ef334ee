from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Language-model service used for planning and recovery
    LLM_PROVIDER: str = Field("anthropic")
    LLM_API_KEY: str = Field("")
    LLM_MODEL: str = Field("claude-sonnet-4-20250514")
    LLM_BASE_URL: str = Field("")
    LLM_TIMEOUT_SECONDS: float = Field(60.0)
    # 1 means transport failures surface immediately to the caller
    LLM_MAX_ATTEMPTS: int = Field(1)
    PLAN_MAX_TOKENS: int = Field(2000)
    RECOVERY_MAX_TOKENS: int = Field(1000)

    # Executor service (the harness)
    HARNESS_URL: str = Field("http://localhost:9000")
    EXECUTOR_TIMEOUT_SECONDS: float = Field(30.0)

    # Poll loop
    POLL_INTERVAL_SECONDS: float = Field(3.0)
    POLL_ERROR_BACKOFF_SECONDS: float = Field(5.0)
    # 0 disables the deadline: poll until the executor reports a terminal status
    POLL_DEADLINE_SECONDS: float = Field(0.0)

    # Local adaptive recovery when the executor reports a failed job
    ENABLE_LOCAL_RECOVERY: bool = Field(True)
    MAX_RECOVERY_ATTEMPTS: int = Field(2)

    # Messaging channel
    TELEGRAM_BOT_TOKEN: str = Field("")
    TELEGRAM_API_URL: str = Field("https://api.telegram.org")
    TELEGRAM_MAX_ATTEMPTS: int = Field(3)

    # Admin API token for job cancellation
    ADMIN_TOKEN: str = Field("")
    METRICS_PORT: int = Field(0)
    LOG_LEVEL: str = Field("INFO")
    LOG_DIR: str = Field("")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
