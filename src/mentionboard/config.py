"""Centralised configuration loaded from environment variables and dotenv."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Paths ──────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# ── X API ──────────────────────────────────────────────────────────────────
X_BEARER_TOKEN: str = os.getenv("X_BEARER_TOKEN", "") or os.getenv("TWITTER_BEARER_TOKEN", "")
MAX_RESULTS: int = int(os.getenv("MENTIONBOARD_MAX_RESULTS", "100"))
REQUEST_TIMEOUT: float = float(os.getenv("MENTIONBOARD_REQUEST_TIMEOUT", "15"))

# ── Ingestion ──────────────────────────────────────────────────────────────
COOLDOWN_SECONDS: float = float(os.getenv("MENTIONBOARD_COOLDOWN_SECONDS", "1.0"))
MAX_PAGES: int = int(os.getenv("MENTIONBOARD_MAX_PAGES", "5"))
REFRESH_AUTHORS: bool = os.getenv("MENTIONBOARD_REFRESH_AUTHORS", "true").lower() in (
    "1", "true", "yes", "on",
)

# ── Scheduling ─────────────────────────────────────────────────────────────
REFRESH_INTERVAL_MINUTES: int = int(os.getenv("MENTIONBOARD_REFRESH_INTERVAL_MINUTES", "30"))
STARTUP_DELAY_SECONDS: int = int(os.getenv("MENTIONBOARD_STARTUP_DELAY_SECONDS", "5"))
PRICE_INTERVAL_SECONDS: int = int(os.getenv("MENTIONBOARD_PRICE_INTERVAL_SECONDS", "30"))

# ── Read path ──────────────────────────────────────────────────────────────
PRICE_COIN_ID: str = os.getenv("MENTIONBOARD_PRICE_COIN_ID", "redstone-oracles")
LOOKUP_MIN_INTERVAL_SECONDS: float = float(
    os.getenv("MENTIONBOARD_LOOKUP_MIN_INTERVAL_SECONDS", "10")
)

# ── Topic defaults (overridden at runtime by CLI) ─────────────────────────
DEFAULT_TOPIC: str = os.getenv("MENTIONBOARD_TOPIC", "redstone")
TOPICS_DIR: Path = Path(os.getenv("MENTIONBOARD_TOPICS_DIR", str(PROJECT_ROOT / "config" / "topics")))
DB_BASE: Path = Path(os.getenv("MENTIONBOARD_DB_DIR", str(PROJECT_ROOT / "var")))


def topic_paths(topic: str) -> dict[str, Path]:
    """Return resolved paths for a given topic name.

    Keys: ``topic_file``, ``db``.
    """
    return {
        "topic_file": TOPICS_DIR / f"{topic}.yml",
        "db": DB_BASE / f"{topic}.sqlite3",
    }


def upstream_enabled() -> bool:
    """True when a bearer token is configured for the X API."""
    return bool(X_BEARER_TOKEN)
