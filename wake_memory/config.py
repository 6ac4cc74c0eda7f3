"""
Configuration for Wake Memory
Copyright 2025 Jurden Bruce

All settings come from environment variables so the MCP host can set them
in its server entry.
"""

import logging
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("wake-memory.config")

DEFAULT_DB_PATH = Path.home() / ".wake_memory" / "wake_memory.db"


def _env_number(name: str, default, cast=int):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed {name}={raw!r}, using {default}")
        return default


@dataclass
class WakeConfig:
    db_path: Path = DEFAULT_DB_PATH
    log_level: str = "INFO"
    lookback_hours: float = 1.0
    max_dependencies: int = 5
    stats_sample_size: int = 10
    tier_batch_limit: int = 1000
    prune_limit: int = 100
    stale_threshold_hours: float = 24.0
    prediction_batch_limit: int = 100
    cache_maxsize: int = 1000
    http_host: str = "127.0.0.1"
    http_port: int = 8766

    def __getitem__(self, key: str) -> Any:
        return getattr(self, key)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["db_path"] = str(self.db_path)
        return data


def load_config(db_path: Optional[Path] = None) -> WakeConfig:
    """Read WakeConfig from WAKE_* environment variables"""
    config = WakeConfig(
        db_path=Path(os.getenv("WAKE_DB_PATH", str(DEFAULT_DB_PATH))).expanduser(),
        log_level=os.getenv("WAKE_LOG_LEVEL", "INFO").upper(),
        lookback_hours=_env_number("WAKE_LOOKBACK_HOURS", 1.0, float),
        max_dependencies=_env_number("WAKE_MAX_DEPENDENCIES", 5),
        stats_sample_size=_env_number("WAKE_STATS_SAMPLE_SIZE", 10),
        tier_batch_limit=_env_number("WAKE_TIER_BATCH_LIMIT", 1000),
        prune_limit=_env_number("WAKE_PRUNE_LIMIT", 100),
        stale_threshold_hours=_env_number("WAKE_STALE_THRESHOLD_HOURS", 24.0, float),
        prediction_batch_limit=_env_number("WAKE_PREDICTION_BATCH_LIMIT", 100),
        cache_maxsize=_env_number("WAKE_CACHE_MAXSIZE", 1000),
        http_host=os.getenv("WAKE_HTTP_HOST", "127.0.0.1"),
        http_port=_env_number("WAKE_HTTP_PORT", 8766),
    )
    if db_path is not None:
        config.db_path = Path(db_path)
    return config
