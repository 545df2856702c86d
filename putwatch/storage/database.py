"""SQLite connection handling and schema shared by the registry and snapshot store."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

from putwatch.errors import PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_PRAGMAS: Dict[str, Any] = {
    "journal_mode": "WAL",
    "busy_timeout": 5000,
}

SCHEMA = """
CREATE TABLE IF NOT EXISTS tracked_symbols (
    symbol TEXT PRIMARY KEY,
    is_preferred INTEGER NOT NULL DEFAULT 0,
    priority INTEGER NOT NULL DEFAULT 5,
    last_refreshed_at TEXT,
    last_error TEXT,
    error_count INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS refresh_cursor (
    id TEXT PRIMARY KEY CHECK (id = 'main'),
    position INTEGER NOT NULL DEFAULT 0,
    total_symbols INTEGER NOT NULL DEFAULT 0,
    last_symbol TEXT,
    cycle_count INTEGER NOT NULL DEFAULT 0,
    cycle_started_at TEXT,
    cycle_completed_at TEXT,
    advances_in_cycle INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT
);

INSERT OR IGNORE INTO refresh_cursor (id) VALUES ('main');

CREATE TABLE IF NOT EXISTS stock_snapshots (
    id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    price REAL NOT NULL,
    fetched_at TEXT NOT NULL,
    source TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_stock_snapshots_symbol_fetched
    ON stock_snapshots (symbol, fetched_at DESC);

CREATE TABLE IF NOT EXISTS contract_snapshots (
    id TEXT PRIMARY KEY,
    snapshot_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    contract_name TEXT,
    strike REAL NOT NULL,
    last_price REAL,
    bid REAL,
    ask REAL,
    volume INTEGER,
    open_interest INTEGER,
    expiration_date TEXT NOT NULL,
    implied_volatility REAL,
    delta REAL,
    gamma REAL,
    theta REAL,
    FOREIGN KEY(snapshot_id) REFERENCES stock_snapshots(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_contract_snapshots_snapshot
    ON contract_snapshots (snapshot_id);

CREATE TABLE IF NOT EXISTS score_snapshots (
    id TEXT PRIMARY KEY,
    contract_id TEXT NOT NULL UNIQUE,
    total REAL NOT NULL,
    premium_score REAL NOT NULL,
    theta_score REAL NOT NULL,
    strike_score REAL NOT NULL,
    dte_score REAL NOT NULL,
    iv_score REAL NOT NULL,
    liquidity_score REAL NOT NULL,
    spread_penalty REAL NOT NULL,
    FOREIGN KEY(contract_id) REFERENCES contract_snapshots(id) ON DELETE CASCADE
);
"""


def _ensure_parent_exists(path: Path) -> None:
    if path.name == ":memory:":
        return
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


class SQLiteDatabase:
    """Hand out SQLite connections and run all-or-nothing transactions.

    File databases open a fresh connection per operation so readers never wait
    on an in-flight writer (WAL). ``:memory:`` databases keep one shared
    connection behind a lock, since every new connection would be empty.
    """

    def __init__(
        self,
        database: str | Path,
        pragmas: Optional[Mapping[str, Any]] = None,
        *,
        uri: bool = False,
    ) -> None:
        self._database = str(database)
        self._uri = uri
        self._pragmas = {**DEFAULT_PRAGMAS, **dict(pragmas or {})}
        self._memory = self._database == ":memory:"
        self._lock = threading.RLock()
        self._shared: Optional[sqlite3.Connection] = None
        if not uri and not self._memory:
            _ensure_parent_exists(Path(self._database))
        if self._memory:
            self._shared = self._open()
        self._ensure_schema()

    @property
    def database(self) -> str:
        return self._database

    def _open(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                self._database,
                uri=self._uri,
                isolation_level=None,
                check_same_thread=not self._memory,
            )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Unable to open database '{self._database}': {exc}") from exc
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        for key, value in self._pragmas.items():
            conn.execute(f"PRAGMA {key}={value};")
        return conn

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection in autocommit mode for reads."""

        if self._shared is not None:
            with self._lock:
                yield self._shared
            return
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically.

        SQLite errors roll back and surface as ``PersistenceError``; any other
        exception rolls back and propagates unchanged.
        """

        with self.connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise PersistenceError(f"Unable to start transaction: {exc}") from exc
            try:
                yield conn
            except sqlite3.Error as exc:
                _rollback(conn)
                logger.exception(f"Transaction rolled back on {self._database}")
                raise PersistenceError(f"Database write failed: {exc}") from exc
            except BaseException:
                _rollback(conn)
                raise
            else:
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error as exc:
                    _rollback(conn)
                    raise PersistenceError(f"Database commit failed: {exc}") from exc

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection for queries, mapping SQLite errors to ``PersistenceError``."""

        with self.connect() as conn:
            try:
                yield conn
            except sqlite3.Error as exc:
                raise PersistenceError(f"Database read failed: {exc}") from exc

    def _ensure_schema(self) -> None:
        try:
            with self.connect() as conn:
                conn.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Unable to initialise schema: {exc}") from exc

    def close(self) -> None:
        if self._shared is not None:
            self._shared.close()
            self._shared = None


__all__ = ["DEFAULT_PRAGMAS", "SCHEMA", "SQLiteDatabase"]
