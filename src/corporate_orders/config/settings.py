"""
Configuration settings for the corporate daily ordering core.
Handles backend API location, HTTP behaviour, cutoff defaults and logging setup.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv(override=False)

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "http://localhost:3000"
DEFAULT_CUTOFF_TIME = "11:00:00"

_TRUTHY = {"1", "true", "TRUE", "True", "yes", "YES"}


@dataclass(slots=True)
class Settings:
    """Runtime settings, read once from the environment."""

    api_base_url: str = DEFAULT_API_BASE_URL
    timeout_seconds: float = 30.0
    tokens_path: str | None = None
    default_cutoff_time: str = DEFAULT_CUTOFF_TIME
    log_level: str = "INFO"
    debug_requests: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv(override=False)

        raw_timeout = os.environ.get("CORPORATE_API_TIMEOUT_SECONDS", "30")
        try:
            timeout_seconds = float(raw_timeout)
        except ValueError:
            raise ValueError(
                f"CORPORATE_API_TIMEOUT_SECONDS must be a number, got {raw_timeout!r}"
            )
        if timeout_seconds <= 0:
            raise ValueError("CORPORATE_API_TIMEOUT_SECONDS must be > 0")

        return cls(
            api_base_url=(
                os.environ.get("CORPORATE_API_BASE_URL") or DEFAULT_API_BASE_URL
            ).rstrip("/"),
            timeout_seconds=timeout_seconds,
            tokens_path=os.environ.get("CORPORATE_TOKENS_PATH") or None,
            default_cutoff_time=(
                os.environ.get("CORPORATE_DEFAULT_CUTOFF_TIME") or DEFAULT_CUTOFF_TIME
            ),
            log_level=os.environ.get("CORPORATE_LOG_LEVEL", "INFO"),
            debug_requests=os.environ.get("CORPORATE_API_DEBUG") in _TRUTHY,
        )


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for scripts and the HTTP facade."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # requests' connection pool is noisy at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
