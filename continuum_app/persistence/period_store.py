"""Period persistence layer backed by SQLite."""

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, TypeVar, Union

from ..errors import StoreError
from ..logging.config import get_storage_logger
from ..models.period import OPEN, Closed, Period, PeriodFilter, PeriodMetadata

T = TypeVar("T")

MEMORY_PATH = ":memory:"
SCHEMA_VERSION = 2

PERIOD_COLUMNS = (
    "id", "start_time", "end_time", "theme", "category", "name", "notes",
    "tags", "is_pause", "resume_from_id", "created_at", "updated_at",
)

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS periods (
        id TEXT PRIMARY KEY,
        start_time INTEGER NOT NULL,
        end_time INTEGER,
        theme TEXT,
        category TEXT,
        name TEXT NOT NULL DEFAULT '',
        notes TEXT NOT NULL DEFAULT '',
        tags TEXT NOT NULL DEFAULT '[]',
        is_pause INTEGER NOT NULL DEFAULT 0,
        resume_from_id TEXT,
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL,
        CHECK (end_time IS NULL OR end_time >= start_time),
        CHECK (is_pause = 1 OR resume_from_id IS NULL)
    );

    CREATE INDEX IF NOT EXISTS idx_periods_start_time ON periods(start_time);
    CREATE INDEX IF NOT EXISTS idx_periods_theme ON periods(theme);
    CREATE INDEX IF NOT EXISTS idx_periods_category ON periods(category);
    CREATE INDEX IF NOT EXISTS idx_periods_is_pause ON periods(is_pause);

    -- At most one open period; also serves the active-period lookup.
    CREATE UNIQUE INDEX IF NOT EXISTS idx_periods_open
    ON periods((end_time IS NULL)) WHERE end_time IS NULL;

    -- A pause must point at an existing period when written. Deleting that
    -- period later leaves the pointer in place; resume then restores defaults.
    CREATE TRIGGER IF NOT EXISTS trg_periods_resume_source
    BEFORE INSERT ON periods
    WHEN NEW.resume_from_id IS NOT NULL
        AND NOT EXISTS (SELECT 1 FROM periods WHERE id = NEW.id)
        AND NOT EXISTS (SELECT 1 FROM periods WHERE id = NEW.resume_from_id)
    BEGIN
        SELECT RAISE(ABORT, 'resume_from_id references a missing period');
    END;

    CREATE TABLE IF NOT EXISTS config (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
"""


class PeriodStore:
    """SQLite-based period persistence layer.

    One connection is opened by :meth:`init` and shared by every caller in the
    process; a re-entrant lock serialises access so store calls may run on
    worker threads. Outside :meth:`run_atomic` every write commits on its own.
    """

    def __init__(self, db_path: Union[str, Path] = MEMORY_PATH, timeout_seconds: float = 30.0):
        self.db_path = db_path if str(db_path) == MEMORY_PATH else Path(db_path)
        self.timeout_seconds = timeout_seconds
        self.logger = get_storage_logger(__name__)
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        self._tx_depth = 0

    @property
    def in_memory(self) -> bool:
        return str(self.db_path) == MEMORY_PATH

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    def init(self) -> "PeriodStore":
        """Open the database and create or verify the schema."""
        with self._lock:
            if self._conn is not None:
                return self

            if not self.in_memory:
                try:
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    self.logger.error("Cannot create store directory", path=str(self.db_path), error=str(e))
                    raise StoreError(
                        f"Cannot create store directory: {e}",
                        reason=StoreError.IO,
                        operation="init",
                        target=str(self.db_path)
                    ) from e

            conn = None
            try:
                conn = sqlite3.connect(
                    str(self.db_path),
                    timeout=self.timeout_seconds,
                    isolation_level=None,
                    check_same_thread=False,
                )
                conn.row_factory = sqlite3.Row
                if not self.in_memory:
                    conn.execute("PRAGMA journal_mode=WAL")
                    conn.execute("PRAGMA synchronous=FULL")
                self._init_schema(conn)
            except sqlite3.Error as e:
                if conn is not None:
                    conn.close()
                raise self._translate_error(e, "init", str(self.db_path)) from e
            except StoreError:
                if conn is not None:
                    conn.close()
                raise

            self._conn = conn
            self.logger.info("Period store opened", path=str(self.db_path), in_memory=self.in_memory)
            return self

    def close(self) -> None:
        """Close the underlying connection; safe to call twice."""
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            self._tx_depth = 0
            self.logger.info("Period store closed", path=str(self.db_path))

    def __enter__(self) -> "PeriodStore":
        return self.init()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        """Create tables on first use and refuse foreign or newer schemas."""
        tables = {
            row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }

        if "periods" in tables:
            columns = {row[1] for row in conn.execute("PRAGMA table_info(periods)")}
            missing = sorted(set(PERIOD_COLUMNS) - columns)
            if missing:
                raise StoreError(
                    f"Incompatible periods schema, missing columns: {missing}",
                    reason=StoreError.SCHEMA,
                    operation="init",
                    target=str(self.db_path)
                )

        conn.executescript(SCHEMA_SQL)

        row = conn.execute("SELECT value FROM metadata WHERE key = 'schema_version'").fetchone()
        if row is None:
            conn.execute(
                "INSERT INTO metadata (key, value) VALUES ('schema_version', ?)",
                (str(SCHEMA_VERSION),)
            )
        else:
            try:
                stored_version = int(row["value"])
            except ValueError:
                stored_version = -1
            if stored_version != SCHEMA_VERSION:
                raise StoreError(
                    f"Unsupported schema version: {row['value']}",
                    reason=StoreError.SCHEMA,
                    operation="init",
                    target=str(self.db_path)
                )

    @contextmanager
    def _guard(self, operation: str, target: Optional[str] = None) -> Iterator[sqlite3.Connection]:
        """Serialise access and translate sqlite3 failures into StoreError."""
        with self._lock:
            if self._conn is None:
                raise StoreError(
                    "Period store is not initialized",
                    reason=StoreError.IO,
                    operation=operation,
                    target=target
                )
            try:
                yield self._conn
            except sqlite3.Error as e:
                raise self._translate_error(e, operation, target) from e

    def _translate_error(self, error: sqlite3.Error, operation: str,
                         target: Optional[str] = None) -> StoreError:
        """Map a sqlite3 error onto the StoreError taxonomy."""
        message = str(error).lower()
        error_name = getattr(error, "sqlite_errorname", "") or ""

        if isinstance(error, sqlite3.IntegrityError):
            reason = StoreError.CONSTRAINT
        elif error_name == "SQLITE_FULL" or "full" in message:
            reason = StoreError.CAPACITY
        elif (error_name in ("SQLITE_CORRUPT", "SQLITE_NOTADB", "SQLITE_SCHEMA")
              or "not a database" in message
              or "malformed" in message
              or "no such table" in message
              or "no such column" in message
              or "has no column" in message):
            reason = StoreError.SCHEMA
        else:
            reason = StoreError.IO

        self.logger.error(
            "Store operation failed",
            operation=operation,
            target=target,
            reason=reason,
            error=str(error)
        )
        return StoreError(
            f"{operation} failed: {error}",
            reason=reason,
            operation=operation,
            target=target
        )

    def run_atomic(self, fn: Callable[[], T]) -> T:
        """
        Run ``fn`` inside a single transaction.

        Every store write issued by ``fn`` commits together or not at all.
        Any exception raised inside ``fn`` rolls the transaction back and
        propagates unchanged. Nested calls join the outer transaction.

        Args:
            fn: Callable issuing one or more store operations

        Returns:
            Whatever ``fn`` returns
        """
        with self._guard("run_atomic") as conn:
            if self._tx_depth > 0:
                return fn()

            conn.execute("BEGIN IMMEDIATE")
            self._tx_depth += 1
            try:
                result = fn()
            except BaseException:
                self._tx_depth -= 1
                self._rollback(conn)
                raise

            self._tx_depth -= 1
            try:
                conn.execute("COMMIT")
            except sqlite3.Error:
                self._rollback(conn)
                raise
            return result

    def _rollback(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    def get_active(self) -> Optional[Period]:
        """Get the single open period, or None when nothing is open."""
        with self._guard("get_active") as conn:
            row = conn.execute(
                "SELECT * FROM periods WHERE end_time IS NULL LIMIT 1"
            ).fetchone()
        return self._row_to_period(row) if row else None

    def get_by_id(self, period_id: str) -> Optional[Period]:
        """Get a period by id."""
        with self._guard("get_by_id", period_id) as conn:
            row = conn.execute("SELECT * FROM periods WHERE id = ?", (period_id,)).fetchone()
        return self._row_to_period(row) if row else None

    def get_latest(self) -> Optional[Period]:
        """Get the most recently started period regardless of its state."""
        with self._guard("get_latest") as conn:
            row = conn.execute("""
                SELECT * FROM periods
                ORDER BY start_time DESC, created_at DESC
                LIMIT 1
            """).fetchone()
        return self._row_to_period(row) if row else None

    def upsert(self, period: Period) -> None:
        """
        Insert or replace a period keyed by id.

        ``start_time``, ``created_at``, ``is_pause`` and ``resume_from_id``
        are written on insert only, and an end boundary that is already set
        is never overwritten.

        Raises:
            StoreError: On constraint violations or storage failures
        """
        with self._guard("upsert", period.id) as conn:
            conn.execute("""
                INSERT INTO periods (
                    id, start_time, end_time, theme, category, name, notes, tags,
                    is_pause, resume_from_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    end_time = COALESCE(periods.end_time, excluded.end_time),
                    theme = excluded.theme,
                    category = excluded.category,
                    name = excluded.name,
                    notes = excluded.notes,
                    tags = excluded.tags,
                    updated_at = excluded.updated_at
            """, (
                period.id,
                period.start_time,
                period.end_time,
                period.metadata.theme,
                period.metadata.category,
                period.metadata.name,
                period.metadata.notes,
                json.dumps(list(period.metadata.tags)),
                1 if period.is_pause else 0,
                period.resume_from_id,
                period.created_at,
                period.updated_at,
            ))

        self.logger.debug(
            "Period stored",
            period_id=period.id,
            start_time=period.start_time,
            end_time=period.end_time,
            is_pause=period.is_pause
        )

    def query(self, period_filter: Optional[PeriodFilter] = None) -> list[Period]:
        """Get periods matching a filter, newest start first."""
        period_filter = period_filter or PeriodFilter()
        sql = "SELECT * FROM periods WHERE 1=1"
        params: list[Any] = []

        if period_filter.start_time is not None:
            sql += " AND start_time >= ?"
            params.append(period_filter.start_time)

        if period_filter.end_time is not None:
            sql += " AND end_time IS NOT NULL AND end_time <= ?"
            params.append(period_filter.end_time)

        if period_filter.theme is not None:
            sql += " AND theme = ?"
            params.append(period_filter.theme)

        if period_filter.category is not None:
            sql += " AND category = ?"
            params.append(period_filter.category)

        if period_filter.is_pause is not None:
            sql += " AND is_pause = ?"
            params.append(1 if period_filter.is_pause else 0)

        if period_filter.closed_only:
            sql += " AND end_time IS NOT NULL"

        for tag in period_filter.tags:
            sql += " AND EXISTS (SELECT 1 FROM json_each(periods.tags) WHERE json_each.value = ?)"
            params.append(tag)

        sql += " ORDER BY start_time DESC, created_at DESC"

        if period_filter.limit is not None:
            sql += " LIMIT ?"
            params.append(int(period_filter.limit))

        with self._guard("query") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_period(row) for row in rows]

    def count(self) -> int:
        """Total number of stored periods."""
        with self._guard("count") as conn:
            return int(conn.execute("SELECT COUNT(*) FROM periods").fetchone()[0])

    def delete(self, period_id: str) -> bool:
        """Administrative removal of a period; returns False if it did not exist."""
        with self._guard("delete", period_id) as conn:
            cursor = conn.execute("DELETE FROM periods WHERE id = ?", (period_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            self.logger.warning("Period deleted", period_id=period_id)
        return deleted

    def get_config(self, key: str, default: Any = None) -> Any:
        """Get a JSON configuration value."""
        with self._guard("get_config", key) as conn:
            row = conn.execute("SELECT value FROM config WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            raise StoreError(
                f"Corrupt config value for {key}",
                reason=StoreError.SCHEMA,
                operation="get_config",
                target=key
            ) from e

    def set_config(self, key: str, value: Any) -> None:
        """Save a JSON configuration value."""
        with self._guard("set_config", key) as conn:
            conn.execute("""
                INSERT INTO config (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """, (key, json.dumps(value)))

    @property
    def schema_version(self) -> int:
        with self._guard("schema_version") as conn:
            row = conn.execute("SELECT value FROM metadata WHERE key = 'schema_version'").fetchone()
        return int(row["value"]) if row else 0

    def get_stats(self) -> dict[str, Any]:
        """Get database statistics."""
        with self._guard("get_stats") as conn:
            row = conn.execute("""
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(CASE WHEN end_time IS NULL THEN 1 ELSE 0 END), 0) AS open,
                    COALESCE(SUM(is_pause), 0) AS pauses,
                    MIN(start_time) AS first_start
                FROM periods
            """).fetchone()

        return {
            "total_periods": int(row["total"]),
            "open_periods": int(row["open"]),
            "pause_periods": int(row["pauses"]),
            "first_start_time": row["first_start"],
            "in_memory": self.in_memory,
        }

    def _row_to_period(self, row: sqlite3.Row) -> Period:
        """Convert database row to Period object."""
        try:
            tags = tuple(json.loads(row["tags"] or "[]"))
        except json.JSONDecodeError as e:
            raise StoreError(
                f"Corrupt tags for period {row['id']}",
                reason=StoreError.SCHEMA,
                operation="read",
                target=row["id"]
            ) from e

        end_time = row["end_time"]
        return Period(
            id=row["id"],
            start_time=row["start_time"],
            end=OPEN if end_time is None else Closed(end_time),
            is_pause=bool(row["is_pause"]),
            resume_from_id=row["resume_from_id"],
            metadata=PeriodMetadata(
                theme=row["theme"],
                category=row["category"],
                name=row["name"],
                notes=row["notes"],
                tags=tags,
            ),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
