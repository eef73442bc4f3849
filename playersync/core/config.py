"""
Application configuration with environment-specific overrides.

Supported environment files (loaded in order of precedence):
1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
2. .env (fallback)

Matching thresholds and weights are tunable policy, not fixed algorithm
constants. Every MATCH_* and SYNC_* field can be overridden per environment.
"""
import os
import logging
from pathlib import Path
from typing import Literal
from pydantic_settings import BaseSettings
from pydantic import ConfigDict

# Get the project root directory (2 levels up from this file's package)
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment-specific configuration."""

    # Environment
    ENVIRONMENT: Literal["development", "production", "test"] = "development"

    model_config = ConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Allow extra fields from .env
    )

    # Application
    APP_NAME: str = "playersync"
    APP_VERSION: str = "1.0.0"

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./playersync.db")
    SQL_ECHO: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Player matching policy
    MATCH_AUTO_LINK_THRESHOLD: float = 0.9
    MATCH_MANUAL_REVIEW_THRESHOLD: float = 0.1
    MATCH_MAX_ALTERNATES: int = 5
    MATCH_NAME_WEIGHT: float = 0.7
    MATCH_TEAM_WEIGHT: float = 0.2
    MATCH_POSITION_WEIGHT: float = 0.1
    MATCH_ENABLE_PHONETIC: bool = True
    MATCH_ENABLE_NAME_VARIATION: bool = True
    MATCH_PHONETIC_BONUS: float = 0.1
    MATCH_NICKNAME_BONUS: float = 0.15
    MATCH_AMBIGUITY_MARGIN: float = 0.0
    MATCH_VERBOSE_LOGGING: bool = False

    # Sync defaults
    SYNC_BATCH_SIZE: int = 100
    SYNC_MAX_RETRIES: int = 3
    SYNC_RETRY_DELAY_SECONDS: float = 1.0
    SYNC_REQUEST_TIMEOUT_SECONDS: float = 30.0
    SYNC_MAX_CONSECUTIVE_API_ERRORS: int = 5
    SYNC_WEEK_DELAY_SECONDS: float = 1.0
    SYNC_BATCH_DELAY_SECONDS: float = 0.0
    SYNC_TIMEOUT_MINUTES: int = 60

    # ESPN (upstream provider)
    ESPN_BASE_URL: str = "https://site.api.espn.com/apis/site/v2/sports"
    ESPN_SPORT_PATH: str = "football/nfl"
    ESPN_TIMEOUT: float = 30.0
    ESPN_SEASON_TYPE: int = 2  # 1=preseason, 2=regular, 3=postseason

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == "production"

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT == "development"

    def validate_required_settings(self) -> list[str]:
        """
        Validate settings that must be explicit for the current environment.

        Returns:
            List of problem descriptions (empty if all present)
        """
        problems = []

        if self.is_production() and self.DATABASE_URL.startswith("sqlite"):
            problems.append("DATABASE_URL")

        if not 0.0 <= self.MATCH_MANUAL_REVIEW_THRESHOLD <= self.MATCH_AUTO_LINK_THRESHOLD <= 1.0:
            problems.append("MATCH_MANUAL_REVIEW_THRESHOLD/MATCH_AUTO_LINK_THRESHOLD")

        if self.SYNC_BATCH_SIZE <= 0:
            problems.append("SYNC_BATCH_SIZE")

        return problems


def _load_env_file() -> Path:
    """
    Load the appropriate environment file based on ENVIRONMENT variable.

    Loads in order of precedence:
    1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
    2. .env (fallback)
    """
    environment = os.getenv("ENVIRONMENT", "development")

    env_file = PROJECT_ROOT / f".env.{environment}"
    if env_file.exists():
        logger.info(f"Loading environment from {env_file.name}")
        return env_file

    default_env = PROJECT_ROOT / ".env"
    if default_env.exists():
        logger.info(f"Loading environment from .env (environment: {environment})")
    else:
        logger.debug(f"No environment file found for '{environment}', using process environment")
    return default_env


_env_file = _load_env_file()


class _SettingsWithEnvFile(Settings):
    model_config = ConfigDict(
        env_file=str(_env_file),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


settings = _SettingsWithEnvFile()

problems = settings.validate_required_settings()
if problems:
    logger.warning(f"Invalid settings for {settings.ENVIRONMENT}: {', '.join(problems)}")
    if settings.is_production():
        raise ValueError(
            f"Cannot start in production with invalid settings: {', '.join(problems)}"
        )
