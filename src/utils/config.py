"""Configuration management for the application."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Values shipped in sample .env files that are never real credentials
PLACEHOLDER_KEYS = frozenset(
    {
        "demo_key",
        "demo",
        "your-api-key",
        "your_api_key",
        "changeme",
        "change-me",
        "xxx",
        "test",
        "sample",
    }
)


def is_usable_key(key: str | None) -> bool:
    """Return True if the key is present and not a known placeholder."""
    if not key or not key.strip():
        return False
    return key.strip().lower() not in PLACEHOLDER_KEYS


@dataclass
class SourceConfig:
    """Upstream source credentials and timeouts."""

    ecos_api_key: str | None = None
    opinet_api_key: str | None = None
    reb_api_key: str | None = None
    request_timeout: float = 15.0
    default_fx_rate: float = 1400.0


@dataclass
class CollectorConfig:
    """Collection trigger and scheduling configuration."""

    cron_secret: str
    manual_key: str | None = None
    schedule: str = "*/30 * * * *"  # crontab, five fields
    scheduler_enabled: bool = False
    timezone: str = "Asia/Seoul"
    max_workers: int = 8


@dataclass
class ServingConfig:
    """Serving endpoint configuration."""

    cache_control: str = "public, s-maxage=60, stale-while-revalidate=300"


@dataclass
class DatabaseConfig:
    """Database configuration."""

    database_url: str
    echo: bool = False


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    level: str = "INFO"
    file_path: str | None = None


class Config:
    """Main application configuration."""

    def __init__(self):
        self.sources = SourceConfig(
            ecos_api_key=os.getenv("ECOS_API_KEY"),
            opinet_api_key=os.getenv("OPINET_API_KEY"),
            reb_api_key=os.getenv("REB_API_KEY"),
            request_timeout=float(os.getenv("SOURCE_TIMEOUT_SECONDS", "15")),
            default_fx_rate=float(os.getenv("DEFAULT_FX_RATE", "1400")),
        )

        self.collector = CollectorConfig(
            cron_secret=os.getenv("CRON_SECRET", ""),
            manual_key=os.getenv("COLLECTOR_MANUAL_KEY") or None,
            schedule=os.getenv("COLLECTOR_SCHEDULE", "*/30 * * * *"),
            scheduler_enabled=os.getenv("SCHEDULER_ENABLED", "false").lower() == "true",
            timezone=os.getenv("TIMEZONE", "Asia/Seoul"),
            max_workers=int(os.getenv("COLLECTOR_MAX_WORKERS", "8")),
        )

        self.serving = ServingConfig(
            cache_control=os.getenv(
                "MARKET_CACHE_CONTROL", "public, s-maxage=60, stale-while-revalidate=300"
            ),
        )

        self.database = DatabaseConfig(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./money_weather.db"),
            echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
        )

        self.logging = LoggingConfig(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            file_path=os.getenv("LOG_FILE") or None,
        )

    def validate(self) -> bool:
        """
        Validate configuration.

        Returns:
            True if configuration is valid

        Raises:
            ValueError if configuration is invalid
        """
        if not self.collector.cron_secret:
            raise ValueError("CRON_SECRET environment variable is required")

        if len(self.collector.schedule.split()) != 5:
            raise ValueError(
                f"Invalid COLLECTOR_SCHEDULE: {self.collector.schedule!r}. "
                "Use a five-field crontab expression"
            )

        if self.sources.request_timeout <= 0:
            raise ValueError("SOURCE_TIMEOUT_SECONDS must be positive")

        if self.collector.max_workers < 1:
            raise ValueError("COLLECTOR_MAX_WORKERS must be at least 1")

        return True


# Global config instance
config = Config()
