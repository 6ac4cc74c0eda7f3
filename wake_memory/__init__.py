"""
Wake Memory - Causal Context Memory for Agents
Copyright 2025 Jurden Bruce
"""

__version__ = "1.0.0"

from .models import ActionType, CausalityMetadata, MemoryTier, PropagationMetadata, Snapshot
from .errors import SnapshotNotFoundError, SnapshotValidationError, StoreError, WakeMemoryError
from .cache import LRUCache
from .config import WakeConfig, load_config
from .storage import SnapshotStore, SQLiteStore
from .context_service import ContextService

__all__ = [
    'ActionType',
    'CausalityMetadata',
    'MemoryTier',
    'PropagationMetadata',
    'Snapshot',
    'SnapshotNotFoundError',
    'SnapshotValidationError',
    'StoreError',
    'WakeMemoryError',
    'LRUCache',
    'WakeConfig',
    'load_config',
    'SnapshotStore',
    'SQLiteStore',
    'ContextService',
]
