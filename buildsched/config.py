# buildsched/config.py
"""
Configuration settings for the scheduling engine.
Values come from environment variables, optionally loaded from a .env file.
"""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / ".env"
if env_file.exists():
    load_dotenv(env_file)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.DB_URL = os.getenv("BUILDSCHED_DB_URL", "")
        self.LOG_LEVEL = os.getenv("BUILDSCHED_LOG_LEVEL", "INFO")

        # Reschedule coordinator timing
        self.DEBOUNCE_SECONDS = _env_float("BUILDSCHED_DEBOUNCE_SECONDS", 0.3)
        self.DRAG_GRACE_SECONDS = _env_float("BUILDSCHED_DRAG_GRACE_SECONDS", 0.3)

        # Placeholder duration for line items that were never scheduled
        self.DEFAULT_DURATION_DAYS = max(1, _env_int("BUILDSCHED_DEFAULT_DURATION_DAYS", 7))

        # Notice lifetimes
        self.SUCCESS_NOTICE_SECONDS = _env_float("BUILDSCHED_SUCCESS_NOTICE_SECONDS", 3.0)
        self.FAILURE_NOTICE_SECONDS = _env_float("BUILDSCHED_FAILURE_NOTICE_SECONDS", 5.0)

        # Warning rule toggles
        self.WARN_SEQUENCE = _env_bool("BUILDSCHED_WARN_SEQUENCE", False)
        self.WARN_DEPENDENCY_OVERLAP = _env_bool("BUILDSCHED_WARN_DEPENDENCY_OVERLAP", True)
        self.WARN_CHANGE_ORDER_TIMING = _env_bool("BUILDSCHED_WARN_CHANGE_ORDER_TIMING", False)
        self.WARN_OVERDUE = _env_bool("BUILDSCHED_WARN_OVERDUE", False)
        self.WARN_MISSING_DEPENDENCIES = _env_bool("BUILDSCHED_WARN_MISSING_DEPENDENCIES", False)

    def get_database_url(self) -> str:
        """Return the configured database URL or a local SQLite file under gen/."""
        if self.DB_URL:
            return self.DB_URL
        gen_folder = Path("gen")
        gen_folder.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{(gen_folder / 'buildsched.db').resolve()}"


def configure_logging(level: str = None) -> None:
    """Configure the package logger once; later calls only adjust the level."""
    logger = logging.getLogger("buildsched")
    logger.setLevel(level or settings.LOG_LEVEL)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)


settings = Settings()
