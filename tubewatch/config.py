"""Environment driven settings and logging setup."""
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


DB_PATH = Path(os.getenv("DB_PATH", "./data"))
YOUTUBE_API_KEY: Optional[str] = os.getenv("YOUTUBE_API_KEY") or None
PAGE_FETCH_TIMEOUT = _env_float("PAGE_FETCH_TIMEOUT", 10.0)
RECHECK_MAX_WORKERS = max(1, _env_int("RECHECK_MAX_WORKERS", 2))
RECHECK_INTERVAL_HOURS = max(0, _env_int("RECHECK_INTERVAL_HOURS", 24))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    root = logging.getLogger()
    root.setLevel(level or LOG_LEVEL)

    if root.handlers:
        return root

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return root
