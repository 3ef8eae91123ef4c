"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str
    DB_ECHO: bool = False

    # Redis (empty string disables event publishing and distributed rate limiting)
    REDIS_URL: str = "redis://redis:6379/0"
    EVENT_CHANNEL: str = "assessment.events"

    # Application
    APP_NAME: str = "Quiz Attempt Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 120
    RATE_LIMIT_PER_HOUR: int = 3000

    # Attempt Settings
    TAB_SWITCH_LIMIT: Optional[int] = None  # auto-submit once exceeded; unset = record only
    ANSWER_GRACE_SECONDS: int = 5  # network slack for answers saved right at the deadline

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
