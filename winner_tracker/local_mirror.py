"""Local JSON mirror of the expense working set.

Written after every successful ledger mutation and read back when the
store is unreachable at startup. Entries use the store's field names so
a later reconnect can push them unchanged.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import MIRROR_PATH

logger = logging.getLogger(__name__)


def load_mirror(path: Optional[Path] = None) -> List[Dict[str, Any]]:
    target = path or MIRROR_PATH
    if not target.exists():
        return []
    try:
        with target.open('r', encoding='utf-8') as handle:
            data = json.load(handle)
    except (ValueError, OSError) as exc:
        logger.warning("Discarding unreadable expense mirror %s: %s", target, exc)
        clear_mirror(target)
        return []
    if not isinstance(data, list):
        clear_mirror(target)
        return []
    return [entry for entry in data if isinstance(entry, dict)]


def save_mirror(records: List[Dict[str, Any]], path: Optional[Path] = None) -> None:
    target = path or MIRROR_PATH
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open('w', encoding='utf-8') as handle:
        json.dump(records, handle, indent=2, sort_keys=True)


def clear_mirror(path: Optional[Path] = None) -> None:
    target = path or MIRROR_PATH
    try:
        target.unlink()
    except FileNotFoundError:
        pass
