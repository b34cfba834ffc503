"""
Runtime configuration for the relay.

Values come from the process environment (a local .env file is loaded first),
so the same image can run in development and production unchanged.
"""

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

DEFAULT_MODEL = "gemini-2.0-flash"

# Applied to every new chat session.
GENERATION_CONFIG = {
    "temperature": 1.0,
    "top_p": 0.95,
    "top_k": 40,
    "max_output_tokens": 8192,
}


class Settings(BaseModel):
    """
    Application settings.

    Attributes:
        gemini_api_key:          Secret key for the Gemini API. Required only once
                                 a provider call is actually made.
        gemini_model:            Model id used for every chat session.
        host / port:             Bind address for uvicorn.
        upload_dir:              Scratch directory for incoming multipart files.
        poll_interval_seconds:   Delay between file status fetches.
        poll_max_attempts:       Status fetch budget before giving up.
        session_idle_minutes:    Idle time after which a session is evicted (0 = never).
        session_max_entries:     LRU capacity of the session store (0 = unbounded).
        session_cleanup_seconds: Period of the background idle sweep.
        log_level:               Root logging level name.
    """
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_MODEL
    host: str = "0.0.0.0"
    port: int = 3000
    upload_dir: str = "uploads"
    poll_interval_seconds: float = 2.0
    poll_max_attempts: int = 150
    session_idle_minutes: float = 30
    session_max_entries: int = 1000
    session_cleanup_seconds: float = 60
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        env = {
            "gemini_api_key": os.getenv("GEMINI_API_KEY"),
            "gemini_model": os.getenv("GEMINI_MODEL"),
            "host": os.getenv("RELAY_HOST"),
            "port": os.getenv("RELAY_PORT"),
            "upload_dir": os.getenv("UPLOAD_DIR"),
            "poll_interval_seconds": os.getenv("POLL_INTERVAL_SECONDS"),
            "poll_max_attempts": os.getenv("POLL_MAX_ATTEMPTS"),
            "session_idle_minutes": os.getenv("SESSION_IDLE_MINUTES"),
            "session_max_entries": os.getenv("SESSION_MAX_ENTRIES"),
            "session_cleanup_seconds": os.getenv("SESSION_CLEANUP_SECONDS"),
            "log_level": os.getenv("LOG_LEVEL"),
        }
        # Unset variables fall back to the model defaults
        return cls(**{k: v for k, v in env.items() if v not in (None, "")})


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
