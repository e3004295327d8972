"""
Environment settings for the Task Recommendation Engine

Values come from the process environment or a .env file. The build_*_config
helpers turn them into the dataclasses the services take, and
configure_logging sets up the root logger.
"""

import logging
import os
from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

from config.config import BanditConfig, LearningConfig, RewardConfig

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database settings
    database_url: str = Field(
        default="sqlite:///taskweave.db",
        description="SQLAlchemy URL of the database holding models and decision logs"
    )

    # Redis settings
    redis_enabled: bool = Field(
        default=False,
        description="Cache persisted models in Redis"
    )
    redis_host: str = Field(
        default="localhost",
        description="Redis server host"
    )
    redis_port: int = Field(
        default=6379,
        description="Redis server port"
    )
    redis_password: Optional[str] = Field(
        default=None,
        description="Redis server password"
    )
    cache_ttl: int = Field(
        default=3600,
        description="Time-to-live of cached models in seconds"
    )

    # Contextual Bandit settings
    bandit_alpha: float = Field(
        default=0.5,
        description="Exploration parameter for LinUCB algorithm"
    )
    persistence_timeout_seconds: Optional[float] = Field(
        default=10.0,
        description="Timeout applied to model load/save I/O (None disables it)"
    )

    # Reward settings
    reward_accepted: float = Field(default=1.0, description="Reward for a followed suggestion")
    reward_failed_completion: float = Field(default=-0.2, description="Reward for a followed but unfinished suggestion")
    reward_rejected: float = Field(default=-0.5, description="Reward for an explicit rejection")
    reward_organic_match: float = Field(default=1.0, description="Reward for arms matching an organic pick")
    reward_organic_skipped: float = Field(default=-0.1, description="Reward for a suggested arm passed over")

    # Pattern miner settings
    learning_window_days: int = Field(
        default=30,
        description="Days of decision logs considered by the pattern miner"
    )
    max_learned_patterns: int = Field(
        default=100,
        description="Maximum decision logs read per pattern query"
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Log file path"
    )


# Global settings instance
_settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def update_settings(**kwargs) -> Settings:
    """Update settings with new values."""
    global _settings
    if _settings is None:
        _settings = Settings()

    for key, value in kwargs.items():
        if hasattr(_settings, key):
            setattr(_settings, key, value)

    return _settings


# Environment-specific configurations
class DevelopmentSettings(Settings):
    """Development environment settings."""
    debug: bool = True
    log_level: str = "DEBUG"
    database_url: str = "sqlite:///taskweave_dev.db"


class ProductionSettings(Settings):
    """Production environment settings."""
    debug: bool = False
    log_level: str = "WARNING"
    redis_enabled: bool = True
    cache_ttl: int = 7200


class TestingSettings(Settings):
    """Testing environment settings."""
    debug: bool = True
    log_level: str = "DEBUG"
    database_url: str = "sqlite:///taskweave_test.db"
    redis_enabled: bool = False
    persistence_timeout_seconds: Optional[float] = 2.0


def get_environment_settings(environment: str = None) -> Settings:
    """Get settings for a specific environment."""
    if environment is None:
        environment = os.getenv("ENVIRONMENT", "development")

    if environment == "production":
        return ProductionSettings()
    elif environment == "testing":
        return TestingSettings()
    else:
        return DevelopmentSettings()


def build_bandit_config(settings: Settings, feature_dim: int, num_arms: int) -> BanditConfig:
    """Bandit configuration for the given settings and encoder dimension."""
    return BanditConfig(alpha=settings.bandit_alpha, feature_dim=feature_dim, num_arms=num_arms)


def build_reward_config(settings: Settings) -> RewardConfig:
    return RewardConfig(
        accepted=settings.reward_accepted,
        failed_completion=settings.reward_failed_completion,
        rejected=settings.reward_rejected,
        organic_match=settings.reward_organic_match,
        organic_skipped=settings.reward_organic_skipped,
    )


def build_learning_config(settings: Settings) -> LearningConfig:
    return LearningConfig(
        learning_window_days=settings.learning_window_days,
        max_patterns=settings.max_learned_patterns,
    )


def configure_logging(settings: Settings):
    """Configure root logging from the settings' level and optional log file."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    handlers = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=handlers,
        force=True,
    )


# Configuration validation
def validate_settings(settings: Settings) -> bool:
    """Validate configuration settings."""
    errors = []

    if not settings.database_url.startswith(("sqlite://", "postgresql", "postgres://", "mysql")):
        errors.append("Invalid database URL format")

    if not (0 <= settings.redis_port <= 65535):
        errors.append("Invalid Redis port number")

    if not (0 < settings.bandit_alpha <= 10):
        errors.append("Bandit alpha must be between 0 and 10")

    if settings.persistence_timeout_seconds is not None and settings.persistence_timeout_seconds <= 0:
        errors.append("Persistence timeout must be positive")

    if settings.learning_window_days <= 0:
        errors.append("Learning window must be positive")

    if settings.max_learned_patterns <= 0:
        errors.append("Max learned patterns must be positive")

    if not (1 <= settings.api_port <= 65535):
        errors.append("Invalid API port number")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True


# Settings written to a fresh .env; everything else keeps its field default
ENV_FILE_KEYS = (
    "database_url",
    "redis_enabled",
    "redis_host",
    "redis_port",
    "bandit_alpha",
    "persistence_timeout_seconds",
    "learning_window_days",
    "max_learned_patterns",
    "api_host",
    "api_port",
    "debug",
    "log_level",
)


def default_env_lines() -> List[str]:
    """KEY=value lines holding the field defaults of ENV_FILE_KEYS."""
    lines = []
    for name in ENV_FILE_KEYS:
        value = Settings.model_fields[name].default
        if isinstance(value, str):
            lines.append(f'{name.upper()}="{value}"')
        else:
            lines.append(f'{name.upper()}={value}')
    return lines


def create_default_config_file(filepath: str = ".env"):
    """Write a .env file with the default settings."""
    lines = default_env_lines() + [
        "",
        "# REDIS_PASSWORD=",
        "# ENVIRONMENT=development  (development, production or testing)",
    ]

    with open(filepath, 'w') as f:
        f.write('\n'.join(lines) + '\n')

    print(f"Wrote default settings to {filepath}")


if __name__ == "__main__":
    current = get_environment_settings()
    try:
        validate_settings(current)
    except ValueError as e:
        print(e)
        raise SystemExit(1)

    for name, value in current.model_dump(exclude={"redis_password"}).items():
        print(f"{name:<28} {value}")
