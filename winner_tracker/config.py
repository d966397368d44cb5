"""Configuration management for the Winner tracker.

This module centralizes configuration values including paths, store
readiness limits and display defaults, with environment variable
overrides.
"""

from __future__ import annotations

import os
from pathlib import Path

# Base project root - assumes this file is in winner_tracker/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("WINNER_DATA_DIR", _PROJECT_ROOT / "data"))

# Document store
DB_PATH = Path(
    os.getenv("WINNER_DB_PATH", DATA_DIR / "winner.db")
).resolve()

# Local mirror of the expense working set (offline fallback)
MIRROR_PATH = Path(
    os.getenv("WINNER_MIRROR_PATH", DATA_DIR / "expenses_mirror.json")
).resolve()

# Store readiness: each attempt is capped, and so is the number of attempts
READINESS_TIMEOUT = float(os.getenv("WINNER_READINESS_TIMEOUT", "6"))
READINESS_ATTEMPTS = int(os.getenv("WINNER_READINESS_ATTEMPTS", "3"))

# Single pseudo-user; there is no auth model
USER_ID = os.getenv("WINNER_USER_ID", "default-user")

SETTINGS_RECORD_ID = "hourly"
CURRENCY_SYMBOL = "£"


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    for directory in [DATA_DIR, DB_PATH.parent, MIRROR_PATH.parent]:
        directory.mkdir(parents=True, exist_ok=True)
