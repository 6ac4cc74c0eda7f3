"""
Exception types for Wake Memory
Copyright 2025 Jurden Bruce
"""


class WakeMemoryError(Exception):
    """Base class for all Wake Memory errors"""


class SnapshotValidationError(WakeMemoryError, ValueError):
    """Snapshot failed its construction invariants"""


class SnapshotNotFoundError(WakeMemoryError, LookupError):
    """Snapshot id did not resolve in the store"""

    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot not found: {snapshot_id}")


class StoreError(WakeMemoryError):
    """Persistence backend failed"""

    def __init__(self, operation: str, error: Exception):
        self.operation = operation
        self.original = error
        super().__init__(f"{operation} failed: {error}")
