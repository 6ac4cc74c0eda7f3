"""
Helpers shared by the Wake Memory models and SQLite store
Copyright 2025 Jurden Bruce

Snapshot timestamps are stored as ISO-8601 text in TIMESTAMP columns and
id or reason lists as JSON arrays in TEXT columns.
"""

import json
import logging
import sqlite3
from datetime import datetime
from typing import List, Optional, Union

logger = logging.getLogger("wake-memory.utils")

_adapters_registered = False


def timestamp_to_db(moment: datetime) -> str:
    return moment.isoformat()


def timestamp_from_db(raw: Union[str, bytes]) -> Optional[datetime]:
    """Parse a stored TIMESTAMP; a corrupt value reads back as None"""
    try:
        text = raw.decode() if isinstance(raw, bytes) else raw
        return datetime.fromisoformat(text)
    except (TypeError, ValueError) as e:
        logger.warning(f"Unreadable timestamp {raw!r}: {e}")
        return None


def register_sqlite_adapters():
    """Install the TIMESTAMP adapter and converter once per process"""
    global _adapters_registered
    if _adapters_registered:
        return
    sqlite3.register_adapter(datetime, timestamp_to_db)
    sqlite3.register_converter("TIMESTAMP", timestamp_from_db)
    _adapters_registered = True


def decode_string_list(raw: Optional[str], column: str, snapshot_id: str) -> List[str]:
    """Decode a JSON array column, logging and dropping anything unreadable"""
    if not raw:
        return []
    try:
        values = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Bad {column} JSON for {snapshot_id}: {e}")
        return []
    if not isinstance(values, list):
        logger.warning(f"Expected a list in {column} for {snapshot_id}, got {type(values).__name__}")
        return []
    return [str(value) for value in values]


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))
