"""SQLite-backed registry of tracked symbols and the refresh cursor."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as SchemaError

from putwatch.clock import Clock, isoformat, utc_now
from putwatch.errors import PersistenceError, ValidationError
from putwatch.models.symbols import normalize_symbol
from putwatch.models.tracking import RefreshCursor, RefreshStatistics, TrackedSymbol, priority_for
from putwatch.storage.database import SQLiteDatabase

logger = logging.getLogger(__name__)

_CURSOR_ID = "main"


def _row_to_symbol(row: sqlite3.Row) -> TrackedSymbol:
    try:
        return TrackedSymbol.model_validate(dict(row))
    except SchemaError as exc:
        raise PersistenceError(f"Corrupt tracked_symbols row: {exc}") from exc


def _row_to_cursor(row: sqlite3.Row) -> RefreshCursor:
    payload = dict(row)
    payload.pop("id", None)
    try:
        return RefreshCursor.model_validate(payload)
    except SchemaError as exc:
        raise PersistenceError(f"Corrupt refresh_cursor row: {exc}") from exc


class SymbolRegistry:
    """Track which symbols are refreshed, their priority tier and error history."""

    def __init__(self, database: SQLiteDatabase | str | Path, *, clock: Clock = utc_now) -> None:
        self._db = database if isinstance(database, SQLiteDatabase) else SQLiteDatabase(database)
        self._clock = clock

    def add_or_update(self, symbol: str, is_preferred: bool = False) -> TrackedSymbol:
        """Register ``symbol`` or refresh its entry.

        The preferred tier is only ever promoted; ``created_at`` keeps its first
        value. Re-adding a deactivated symbol reactivates it.
        """

        symbol = normalize_symbol(symbol)
        now = isoformat(self._clock())
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO tracked_symbols(symbol, is_preferred, priority, is_active, created_at, updated_at)
                VALUES(?, ?, ?, 1, ?, ?)
                ON CONFLICT(symbol) DO UPDATE SET
                    is_preferred = MAX(tracked_symbols.is_preferred, excluded.is_preferred),
                    priority = MAX(tracked_symbols.priority, excluded.priority),
                    is_active = 1,
                    updated_at = excluded.updated_at
                """,
                (symbol, int(is_preferred), priority_for(is_preferred), now, now),
            )
            self._sync_total(conn)
            row = conn.execute("SELECT * FROM tracked_symbols WHERE symbol = ?", (symbol,)).fetchone()
        logger.info(f"Tracking {symbol} (preferred: {is_preferred})")
        return _row_to_symbol(row)

    def deactivate(self, symbol: str) -> bool:
        """Stop refreshing ``symbol`` while keeping its history."""

        symbol = normalize_symbol(symbol)
        with self._db.transaction() as conn:
            updated = conn.execute(
                "UPDATE tracked_symbols SET is_active = 0, updated_at = ? WHERE symbol = ? AND is_active = 1",
                (isoformat(self._clock()), symbol),
            ).rowcount
            self._sync_total(conn)
        if updated:
            logger.info(f"Deactivated {symbol}")
        return bool(updated)

    def get(self, symbol: str) -> Optional[TrackedSymbol]:
        symbol = normalize_symbol(symbol)
        with self._db.read() as conn:
            row = conn.execute("SELECT * FROM tracked_symbols WHERE symbol = ?", (symbol,)).fetchone()
        return _row_to_symbol(row) if row else None

    def list_active(self) -> List[TrackedSymbol]:
        """Active symbols in round-robin order: priority descending, then symbol."""

        with self._db.read() as conn:
            rows = conn.execute(
                "SELECT * FROM tracked_symbols WHERE is_active = 1 ORDER BY priority DESC, symbol ASC"
            ).fetchall()
        return [_row_to_symbol(row) for row in rows]

    def list_all(self) -> List[TrackedSymbol]:
        with self._db.read() as conn:
            rows = conn.execute(
                "SELECT * FROM tracked_symbols ORDER BY is_active DESC, priority DESC, symbol ASC"
            ).fetchall()
        return [_row_to_symbol(row) for row in rows]

    def record_success(self, symbol: str, at: Optional[datetime] = None) -> None:
        symbol = normalize_symbol(symbol)
        now = self._clock()
        with self._db.transaction() as conn:
            updated = conn.execute(
                """
                UPDATE tracked_symbols
                SET last_refreshed_at = ?, last_error = NULL, error_count = 0, updated_at = ?
                WHERE symbol = ?
                """,
                (isoformat(at or now), isoformat(now), symbol),
            ).rowcount
        if not updated:
            raise ValidationError(f"{symbol} is not tracked")

    def record_failure(self, symbol: str, message: str) -> TrackedSymbol:
        symbol = normalize_symbol(symbol)
        with self._db.transaction() as conn:
            updated = conn.execute(
                """
                UPDATE tracked_symbols
                SET error_count = error_count + 1, last_error = ?, updated_at = ?
                WHERE symbol = ?
                """,
                (message, isoformat(self._clock()), symbol),
            ).rowcount
            row = conn.execute("SELECT * FROM tracked_symbols WHERE symbol = ?", (symbol,)).fetchone()
        if not updated:
            raise ValidationError(f"{symbol} is not tracked")
        return _row_to_symbol(row)

    def statistics(self) -> RefreshStatistics:
        with self._db.read() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_symbols,
                    COUNT(CASE WHEN is_active = 1 THEN 1 END) AS active_symbols,
                    COUNT(CASE WHEN is_preferred = 1 THEN 1 END) AS preferred_symbols,
                    COUNT(CASE WHEN error_count > 0 THEN 1 END) AS symbols_with_errors,
                    COUNT(CASE WHEN last_refreshed_at IS NOT NULL THEN 1 END) AS symbols_refreshed,
                    MAX(last_refreshed_at) AS most_recent_refresh,
                    MIN(last_refreshed_at) AS oldest_refresh
                FROM tracked_symbols
                """
            ).fetchone()
        return RefreshStatistics.model_validate(dict(row))

    # -- refresh cursor -----------------------------------------------------

    def load_cursor(self) -> RefreshCursor:
        with self._db.read() as conn:
            row = conn.execute("SELECT * FROM refresh_cursor WHERE id = ?", (_CURSOR_ID,)).fetchone()
        if row is None:
            raise PersistenceError("refresh_cursor row is missing")
        return _row_to_cursor(row)

    def save_cursor(self, cursor: RefreshCursor) -> RefreshCursor:
        stamped = cursor.model_copy(update={"updated_at": self._clock()})
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE refresh_cursor SET
                    position = ?, total_symbols = ?, last_symbol = ?, cycle_count = ?,
                    cycle_started_at = ?, cycle_completed_at = ?, advances_in_cycle = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    stamped.position,
                    stamped.total_symbols,
                    stamped.last_symbol,
                    stamped.cycle_count,
                    isoformat(stamped.cycle_started_at) if stamped.cycle_started_at else None,
                    isoformat(stamped.cycle_completed_at) if stamped.cycle_completed_at else None,
                    stamped.advances_in_cycle,
                    isoformat(stamped.updated_at),
                    _CURSOR_ID,
                ),
            )
        return stamped

    def _sync_total(self, conn: sqlite3.Connection) -> None:
        (count,) = conn.execute("SELECT COUNT(*) FROM tracked_symbols WHERE is_active = 1").fetchone()
        conn.execute(
            "UPDATE refresh_cursor SET total_symbols = ?, position = MIN(position, ?) WHERE id = ?",
            (count, count, _CURSOR_ID),
        )


__all__ = ["SymbolRegistry"]
