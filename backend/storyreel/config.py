from __future__ import annotations
"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """StoryReel application settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "StoryReel"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # --- Database (MySQL 8.0+) ---
    DB_HOST: str = "127.0.0.1"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_NAME: str = "storyreel"
    DATABASE_URL_OVERRIDE: str = ""

    @property
    def DATABASE_URL(self) -> str:
        """Async MySQL connection string using asyncmy driver."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        encoded_password = quote_plus(self.DB_PASSWORD)
        return (
            f"mysql+asyncmy://{self.DB_USER}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            "?charset=utf8mb4"
        )

    # --- Media Volume (durable blob storage root) ---
    MEDIA_VOLUME: str = "media_volume"

    # --- Providers ---
    DEFAULT_API_BASE: str = "https://api.antsk.cn"
    DASHSCOPE_ENDPOINT: str = "https://dashscope.aliyuncs.com"
    ARK_ENDPOINT: str = "https://ark.cn-beijing.volces.com/api/v3"

    # --- Polling (async providers) ---
    POLL_TIMEOUT_SECONDS: float = 1200.0  # 20 min overall ceiling
    POLL_INTERVAL_SECONDS: float = 5.0
    POLL_INTERVAL_MIN_SECONDS: float = 5.0
    POLL_INTERVAL_MAX_SECONDS: float = 10.0

    # --- Provider HTTP retry ---
    HTTP_MAX_RETRIES: int = 3
    HTTP_RETRY_BASE_DELAY: float = 2.0
    HTTP_TIMEOUT_SECONDS: float = 60.0
    HTTP_MEDIA_TIMEOUT_SECONDS: float = 1200.0  # large media transfers

    # --- Project saves ---
    SAVE_MAX_RETRIES: int = 3
    SAVE_RETRY_BASE_DELAY: float = 0.5

    # --- Tasks ---
    TASK_ERROR_MAX_LENGTH: int = 2000
    PROJECT_TASK_LIST_LIMIT: int = 50

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
