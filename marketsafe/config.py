"""
Client configuration.

Values come from the environment (a ``.env`` file in the working directory
is loaded first), falling back to the defaults below.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_API_URL = "http://localhost:5000/api"
DEFAULT_CACHE_PATH = Path.home() / ".marketsafe" / "session.json"
SESSION_KEY = "user"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseModel):
    api_url: str = DEFAULT_API_URL
    cache_path: Path = DEFAULT_CACHE_PATH
    cache_key: str = SESSION_KEY
    request_timeout: float = Field(default=30.0, gt=0)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        values = {
            "api_url": os.getenv("MARKETSAFE_API_URL"),
            "cache_path": os.getenv("MARKETSAFE_CACHE_PATH"),
            "cache_key": os.getenv("MARKETSAFE_CACHE_KEY"),
            "request_timeout": os.getenv("MARKETSAFE_TIMEOUT"),
            "log_level": os.getenv("MARKETSAFE_LOG_LEVEL"),
        }
        return cls(**{k: v for k, v in values.items() if v})


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach one stream handler to the package logger (idempotent)."""
    logger = logging.getLogger("marketsafe")
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
