"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.crm.proposals.followup import FollowUpPolicy


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Follow-up detection thresholds (whole days)
    FOLLOW_UP_AFTER_DAYS: int = 3
    REPEAT_FOLLOW_UP_AFTER_DAYS: int = 2
    MAX_FOLLOW_UPS: int = 2
    NO_RESPONSE_AFTER_DAYS: int = 4

    def follow_up_policy(self) -> FollowUpPolicy:
        """Build the follow-up detector policy from the configured thresholds."""
        return FollowUpPolicy(
            follow_up_after_days=self.FOLLOW_UP_AFTER_DAYS,
            repeat_follow_up_after_days=self.REPEAT_FOLLOW_UP_AFTER_DAYS,
            max_follow_ups=self.MAX_FOLLOW_UPS,
            no_response_after_days=self.NO_RESPONSE_AFTER_DAYS,
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
