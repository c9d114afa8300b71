"""Configuration settings for the tracker."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
BACKUPS_DIR = DATA_DIR / "backups"

# Learning settings
REVIEW_INTERVALS = [1, 2, 4, 7, 15, 30]  # days between reviews

# Study plans offered by the catalog listing, in display order
STUDY_PLANS = {
    "top-interview-150": "#FFA116",
    "top-100-liked": "#F6465D",
    "leetcode-75": "#2DB55D",
    "30-days-of-javascript": "#F7DF1E",
}


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [
        DATA_DIR,
        BACKUPS_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


def get_review_intervals() -> List[int]:
    """Get review intervals from environment variable."""
    raw = os.getenv("REVIEW_INTERVALS", "")
    if not raw:
        return list(REVIEW_INTERVALS)
    return [int(days) for days in raw.split(",") if days.strip()]


@dataclass
class PathSettings:
    """Path configuration settings."""
    base_dir: Path = BASE_DIR
    data_dir: Path = DATA_DIR
    backups_dir: Path = BACKUPS_DIR


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///algotrack.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class CatalogSettings:
    """Remote catalog settings."""
    api_url: str = os.getenv("CATALOG_API_URL", "https://leetcode.cn/graphql")
    site_url: str = os.getenv("CATALOG_SITE_URL", "https://leetcode.cn")
    timeout: float = float(os.getenv("CATALOG_TIMEOUT", "15"))
    default_plan: str = os.getenv("DEFAULT_PLAN", "top-100-liked")
    plans: Dict[str, str] = field(default_factory=lambda: dict(STUDY_PLANS))


@dataclass
class LearningSettings:
    """Review schedule and statistics settings."""
    review_intervals: List[int] = field(default_factory=get_review_intervals)
    timezone: str = os.getenv("TIMEZONE", "UTC")
    streak_freeze_days: int = int(os.getenv("STREAK_FREEZE_DAYS", "1"))
    heatmap_days: int = int(os.getenv("HEATMAP_DAYS", "366"))
    suggestion_count: int = int(os.getenv("SUGGESTION_COUNT", "8"))
    schedule_days: int = int(os.getenv("SCHEDULE_DAYS", "7"))


@dataclass
class MonitoringSettings:
    """Prometheus exporter settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_catalog_settings() -> CatalogSettings:
    """Get catalog settings."""
    return CatalogSettings()


def get_learning_settings() -> LearningSettings:
    """Get learning settings."""
    return LearningSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    catalog: CatalogSettings = field(default_factory=get_catalog_settings)
    learning: LearningSettings = field(default_factory=get_learning_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if not self.learning.review_intervals:
            raise ValueError("REVIEW_INTERVALS must contain at least one interval")

        if any(days <= 0 for days in self.learning.review_intervals):
            raise ValueError("REVIEW_INTERVALS must be positive integers")

        try:
            ZoneInfo(self.learning.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"TIMEZONE {self.learning.timezone} is not a known timezone") from e

        if self.learning.streak_freeze_days < 0:
            raise ValueError("STREAK_FREEZE_DAYS cannot be negative")

        if self.learning.heatmap_days < 1:
            raise ValueError("HEATMAP_DAYS must be positive")

        if self.catalog.timeout <= 0:
            raise ValueError("CATALOG_TIMEOUT must be positive")

        if self.catalog.default_plan not in self.catalog.plans:
            raise ValueError(f"DEFAULT_PLAN {self.catalog.default_plan} is not a known study plan")


# Create global settings instance
settings = Settings()
settings.validate()
