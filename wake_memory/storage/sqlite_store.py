"""
SQLite persistence store for Wake Memory
Copyright 2025 Jurden Bruce
"""

import sqlite3
import json
import logging
import threading
import traceback
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from datetime import datetime, timedelta
from pathlib import Path

from ..errors import StoreError
from ..models import MemoryTier, Snapshot
from ..utils import register_sqlite_adapters
from .base import SnapshotStore

logger = logging.getLogger("wake-memory.sqlite")

SNAPSHOT_COLUMNS = (
    "id", "project", "summary", "source", "metadata", "tags", "created_at",
    "action_type", "rationale", "dependencies", "caused_by",
    "memory_tier", "last_accessed_at", "access_count",
    "prediction_score", "prediction_computed_at", "predicted_next_access", "propagation_reasons",
)


class SQLiteStore(SnapshotStore):
    """Handles all SQLite database operations"""

    def __init__(
        self,
        db_path: Union[str, Path] = ":memory:",
        db_conn: Optional[sqlite3.Connection] = None,
        db_lock=None,
        error_log: Optional[List[Dict[str, Any]]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db_path = db_path
        self.conn = db_conn
        self._lock = db_lock or threading.RLock()
        self.error_log = error_log if error_log is not None else []
        self.clock = clock
        register_sqlite_adapters()
        self.initialize()

    def _log_error(self, operation: str, error: Exception):
        """Log detailed error information"""
        error_entry = {
            "timestamp": datetime.now().isoformat(),
            "operation": operation,
            "error_type": type(error).__name__,
            "error_msg": str(error),
            "traceback": traceback.format_exc(),
        }
        self.error_log.append(error_entry)
        if len(self.error_log) > 100:
            del self.error_log[:-100]

    def _connect(self) -> sqlite3.Connection:
        if str(self.db_path) != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
            timeout=30.0,
            isolation_level="IMMEDIATE",
            detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
        )
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self):
        """Initialize SQLite schema and migrations"""
        try:
            if self.conn is None:
                self.conn = self._connect()

            with self._lock:
                self.conn.executescript("""
                    CREATE TABLE IF NOT EXISTS context_snapshots (
                        id TEXT PRIMARY KEY,
                        project TEXT NOT NULL,
                        summary TEXT NOT NULL,
                        source TEXT DEFAULT 'unknown',
                        metadata TEXT,
                        tags TEXT DEFAULT '',
                        created_at TIMESTAMP NOT NULL,
                        action_type TEXT,
                        rationale TEXT,
                        dependencies TEXT,
                        caused_by TEXT,
                        memory_tier TEXT DEFAULT 'active',
                        last_accessed_at TIMESTAMP,
                        access_count INTEGER DEFAULT 0,
                        prediction_score REAL,
                        prediction_computed_at TIMESTAMP,
                        predicted_next_access TIMESTAMP,
                        propagation_reasons TEXT
                    );
                """)
                self.conn.commit()

                # Older databases predate the causality, tier and propagation layers
                cursor = self.conn.cursor()
                try:
                    cursor.execute("PRAGMA table_info(context_snapshots)")
                    columns = {row[1] for row in cursor.fetchall()}

                    migrations = [
                        ("action_type", "ALTER TABLE context_snapshots ADD COLUMN action_type TEXT"),
                        ("rationale", "ALTER TABLE context_snapshots ADD COLUMN rationale TEXT"),
                        ("dependencies", "ALTER TABLE context_snapshots ADD COLUMN dependencies TEXT"),
                        ("caused_by", "ALTER TABLE context_snapshots ADD COLUMN caused_by TEXT"),
                        ("memory_tier", "ALTER TABLE context_snapshots ADD COLUMN memory_tier TEXT DEFAULT 'active'"),
                        ("last_accessed_at", "ALTER TABLE context_snapshots ADD COLUMN last_accessed_at TIMESTAMP"),
                        ("access_count", "ALTER TABLE context_snapshots ADD COLUMN access_count INTEGER DEFAULT 0"),
                        ("prediction_score", "ALTER TABLE context_snapshots ADD COLUMN prediction_score REAL"),
                        ("prediction_computed_at", "ALTER TABLE context_snapshots ADD COLUMN prediction_computed_at TIMESTAMP"),
                        ("predicted_next_access", "ALTER TABLE context_snapshots ADD COLUMN predicted_next_access TIMESTAMP"),
                        ("propagation_reasons", "ALTER TABLE context_snapshots ADD COLUMN propagation_reasons TEXT"),
                    ]

                    for col_name, sql in migrations:
                        if col_name not in columns:
                            logger.info(f"Migrating: adding {col_name} column")
                            cursor.execute(sql)

                    self.conn.commit()
                except sqlite3.Error as migration_error:
                    logger.warning(f"Migration error (non-fatal): {migration_error}")
                    self.conn.rollback()

                self.conn.executescript("""
                    CREATE INDEX IF NOT EXISTS idx_project ON context_snapshots(project);
                    CREATE INDEX IF NOT EXISTS idx_created ON context_snapshots(created_at DESC);
                    CREATE INDEX IF NOT EXISTS idx_project_created
                        ON context_snapshots(project, created_at DESC);
                    CREATE INDEX IF NOT EXISTS idx_caused_by ON context_snapshots(caused_by);
                    CREATE INDEX IF NOT EXISTS idx_action_type ON context_snapshots(action_type);
                    CREATE INDEX IF NOT EXISTS idx_memory_tier
                        ON context_snapshots(memory_tier, created_at);
                    CREATE INDEX IF NOT EXISTS idx_last_accessed ON context_snapshots(last_accessed_at);
                    CREATE INDEX IF NOT EXISTS idx_prediction_score
                        ON context_snapshots(prediction_score DESC);
                    CREATE INDEX IF NOT EXISTS idx_project_prediction
                        ON context_snapshots(project, prediction_score DESC);
                    CREATE INDEX IF NOT EXISTS idx_prediction_computed
                        ON context_snapshots(prediction_computed_at);
                """)
                self.conn.commit()

            logger.info(f"SQLite initialized at {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"SQLite initialization failed: {e}")
            self._log_error("sqlite_init", e)
            raise StoreError("sqlite_init", e) from e

    def _execute(self, operation: str, sql: str, params: Sequence[Any] = ()) -> int:
        """Run one write statement in its own transaction, returning rowcount"""
        try:
            with self._lock:
                cursor = self.conn.execute(sql, params)
                self.conn.commit()
                return cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"{operation} failed: {e}")
            self._log_error(operation, e)
            try:
                self.conn.rollback()
            except sqlite3.Error:
                logger.warning(f"Rollback after {operation} failed")
            raise StoreError(operation, e) from e

    def _query(self, operation: str, sql: str, params: Sequence[Any] = ()) -> List[Snapshot]:
        try:
            with self._lock:
                rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"{operation} failed: {e}")
            self._log_error(operation, e)
            raise StoreError(operation, e) from e
        return [Snapshot.from_row(row) for row in rows]

    @staticmethod
    def _escape_like(query: str) -> str:
        return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

    def save(self, snapshot: Snapshot) -> str:
        causality = snapshot.causality
        propagation = snapshot.propagation

        self._execute("save", f"""
            INSERT OR REPLACE INTO context_snapshots ({', '.join(SNAPSHOT_COLUMNS)})
            VALUES ({', '.join('?' * len(SNAPSHOT_COLUMNS))})
        """, (
            snapshot.id, snapshot.project, snapshot.summary, snapshot.source,
            snapshot.metadata, snapshot.tags, snapshot.created_at,
            causality.action_type.value if causality else None,
            causality.rationale if causality else None,
            json.dumps(list(causality.dependencies)) if causality else None,
            causality.caused_by if causality else None,
            snapshot.memory_tier.value, snapshot.last_accessed_at, snapshot.access_count,
            propagation.score if propagation else None,
            propagation.computed_at if propagation else None,
            propagation.predicted_next_access if propagation else None,
            json.dumps(list(propagation.reasons)) if propagation else None,
        ))
        return snapshot.id

    def get(self, snapshot_id: str) -> Optional[Snapshot]:
        results = self._query(
            "get",
            "SELECT * FROM context_snapshots WHERE id = ? LIMIT 1",
            (snapshot_id,),
        )
        return results[0] if results else None

    def find_by_project(self, project: str, limit: int = 10) -> List[Snapshot]:
        return self._query("find_by_project", """
            SELECT * FROM context_snapshots
            WHERE project = ?
            ORDER BY created_at DESC
            LIMIT ?
        """, (project, limit))

    def find_all(self, limit: int = 1000) -> List[Snapshot]:
        return self._query("find_all", """
            SELECT * FROM context_snapshots
            ORDER BY created_at DESC
            LIMIT ?
        """, (limit,))

    def find_recent(
        self,
        project: str,
        before: datetime,
        hours_back: float,
        limit: Optional[int] = None,
    ) -> List[Snapshot]:
        cutoff = before - timedelta(hours=hours_back)
        return self._query("find_recent", """
            SELECT * FROM context_snapshots
            WHERE project = ?
              AND created_at >= ?
              AND created_at < ?
            ORDER BY created_at DESC
            LIMIT ?
        """, (project, cutoff, before, -1 if limit is None else limit))

    def search(self, query: str, project: Optional[str] = None, limit: int = 10) -> List[Snapshot]:
        pattern = f"%{self._escape_like(query)}%"
        sql = """
            SELECT * FROM context_snapshots
            WHERE (summary LIKE ? ESCAPE '\\' OR tags LIKE ? ESCAPE '\\')
        """
        params: List[Any] = [pattern, pattern]
        if project:
            sql += " AND project = ?"
            params.append(project)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        return self._query("search", sql, params)

    def update_memory_tier(self, snapshot_id: str, tier: MemoryTier) -> None:
        self._execute(
            "update_memory_tier",
            "UPDATE context_snapshots SET memory_tier = ? WHERE id = ?",
            (MemoryTier(tier).value, snapshot_id),
        )

    def update_access_tracking(self, snapshot_id: str, accessed_at: Optional[datetime] = None) -> bool:
        accessed_at = accessed_at or self.clock()
        rowcount = self._execute("update_access_tracking", """
            UPDATE context_snapshots
            SET last_accessed_at = CASE
                    WHEN last_accessed_at IS NULL OR last_accessed_at < ? THEN ?
                    ELSE last_accessed_at
                END,
                access_count = COALESCE(access_count, 0) + 1
            WHERE id = ?
        """, (accessed_at, accessed_at, snapshot_id))
        return rowcount > 0

    def find_by_memory_tier(self, tier: MemoryTier, limit: int = 100) -> List[Snapshot]:
        return self._query("find_by_memory_tier", """
            SELECT * FROM context_snapshots
            WHERE memory_tier = ?
            ORDER BY created_at ASC
            LIMIT ?
        """, (MemoryTier(tier).value, limit))

    def update_propagation(
        self,
        snapshot_id: str,
        score: float,
        computed_at: datetime,
        predicted_next_access: Optional[datetime],
        reasons: Sequence[str],
    ) -> None:
        self._execute("update_propagation", """
            UPDATE context_snapshots
            SET prediction_score = ?,
                prediction_computed_at = ?,
                predicted_next_access = ?,
                propagation_reasons = ?
            WHERE id = ?
        """, (
            max(0.0, min(1.0, score)), computed_at, predicted_next_access,
            json.dumps(list(reasons)), snapshot_id,
        ))

    def find_by_prediction_score(
        self,
        min_score: float,
        project: Optional[str] = None,
        limit: int = 10,
    ) -> List[Snapshot]:
        sql = "SELECT * FROM context_snapshots WHERE prediction_score >= ?"
        params: List[Any] = [min_score]
        if project:
            sql += " AND project = ?"
            params.append(project)
        sql += " ORDER BY prediction_score DESC, created_at DESC LIMIT ?"
        params.append(limit)
        return self._query("find_by_prediction_score", sql, params)

    def find_stale_predictions(
        self,
        hours_stale_threshold: float,
        limit: int = 100,
        project: Optional[str] = None,
    ) -> List[Snapshot]:
        cutoff = self.clock() - timedelta(hours=hours_stale_threshold)
        sql = """
            SELECT * FROM context_snapshots
            WHERE (prediction_computed_at IS NULL OR prediction_computed_at < ?)
        """
        params: List[Any] = [cutoff]
        if project:
            sql += " AND project = ?"
            params.append(project)
        # NULLs sort first under ASC in SQLite
        sql += " ORDER BY prediction_computed_at ASC LIMIT ?"
        params.append(limit)
        return self._query("find_stale_predictions", sql, params)

    def delete(self, snapshot_id: str) -> bool:
        rowcount = self._execute(
            "delete",
            "DELETE FROM context_snapshots WHERE id = ?",
            (snapshot_id,),
        )
        return rowcount > 0

    def count(self, project: Optional[str] = None) -> int:
        sql = "SELECT COUNT(*) FROM context_snapshots"
        params: List[Any] = []
        if project:
            sql += " WHERE project = ?"
            params.append(project)
        try:
            with self._lock:
                return self.conn.execute(sql, params).fetchone()[0]
        except sqlite3.Error as e:
            logger.error(f"count failed: {e}")
            self._log_error("count", e)
            raise StoreError("count", e) from e

    def close(self):
        """Close database connection"""
        if self.conn:
            with self._lock:
                self.conn.close()
                self.conn = None
            logger.info("SQLite connection closed")
