"""
Storage backends for Wake Memory
Copyright 2025 Jurden Bruce
"""

from .base import SnapshotStore
from .sqlite_store import SQLiteStore

__all__ = ['SnapshotStore', 'SQLiteStore']
