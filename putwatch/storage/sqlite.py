"""SQLite-backed snapshot store."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

import pandas as pd
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from putwatch.clock import Clock, ensure_utc, isoformat, utc_now
from putwatch.errors import PersistenceError, ValidationError
from putwatch.models.option import OptionContract, OptionScore
from putwatch.models.symbols import normalize_symbol
from putwatch.scoring.engine import days_to_expiry
from putwatch.scoring.returns import annualized_return

from .base import (
    ContractSnapshot,
    DailyPerformance,
    HistoricalContract,
    RankedContract,
    ScoreSnapshot,
    SnapshotBundle,
    SnapshotStore,
    StockSnapshot,
)
from .database import SQLiteDatabase

logger = logging.getLogger(__name__)

DEDUP_PRICE_TOLERANCE = 0.001

RecordT = TypeVar("RecordT", bound=BaseModel)

_CONTRACT_COLUMNS = (
    "cs.id AS c_id, cs.snapshot_id AS c_snapshot_id, cs.contract_name AS c_contract_name, "
    "cs.strike AS c_strike, cs.last_price AS c_last_price, cs.bid AS c_bid, cs.ask AS c_ask, "
    "cs.volume AS c_volume, cs.open_interest AS c_open_interest, "
    "cs.expiration_date AS c_expiration_date, cs.implied_volatility AS c_implied_volatility, "
    "cs.delta AS c_delta, cs.gamma AS c_gamma, cs.theta AS c_theta"
)
_SCORE_COLUMNS = (
    "sc.id AS s_id, sc.contract_id AS s_contract_id, sc.total AS s_total, "
    "sc.premium_score AS s_premium_score, sc.theta_score AS s_theta_score, "
    "sc.strike_score AS s_strike_score, sc.dte_score AS s_dte_score, sc.iv_score AS s_iv_score, "
    "sc.liquidity_score AS s_liquidity_score, sc.spread_penalty AS s_spread_penalty"
)
_STOCK_COLUMNS = "ss.id, ss.symbol, ss.price, ss.fetched_at, ss.source"


def _parse(model: Type[RecordT], payload: Dict[str, Any]) -> RecordT:
    try:
        return model.model_validate(payload)
    except SchemaError as exc:
        raise PersistenceError(f"Corrupt {model.__name__} row: {exc}") from exc


def _prefixed(row: sqlite3.Row, prefix: str) -> Dict[str, Any]:
    return {key[len(prefix):]: row[key] for key in row.keys() if key.startswith(prefix)}


def _hour_bucket(moment: datetime) -> datetime:
    return moment.replace(minute=0, second=0, microsecond=0)


class SQLiteSnapshotStore(SnapshotStore):
    """Persist immutable snapshots using a lightweight SQLite database."""

    def __init__(self, database: SQLiteDatabase | str | Path, *, clock: Clock = utc_now) -> None:
        self._db = database if isinstance(database, SQLiteDatabase) else SQLiteDatabase(database)
        self._clock = clock

    @property
    def database(self) -> SQLiteDatabase:
        return self._db

    # -- writes -------------------------------------------------------------

    def save(
        self,
        symbol: str,
        price: float,
        contracts: Sequence[OptionContract],
        scores: Sequence[OptionScore],
        *,
        source: str,
        fetched_at: Optional[datetime] = None,
    ) -> StockSnapshot:
        symbol = normalize_symbol(symbol)
        if len(contracts) != len(scores):
            raise ValidationError(
                f"Mismatch between contracts ({len(contracts)}) and scores ({len(scores)}) for {symbol}"
            )
        if price <= 0:
            raise ValidationError(f"Price must be positive for {symbol}, got {price}")

        snapshot = StockSnapshot(
            id=str(uuid.uuid4()),
            symbol=symbol,
            price=float(price),
            fetched_at=ensure_utc(fetched_at or self._clock()),
            source=source,
        )
        contract_ids = [str(uuid.uuid4()) for _ in contracts]

        with self._db.transaction() as conn:
            self._insert_stock(conn, snapshot)
            self._insert_contracts(conn, snapshot.id, contract_ids, contracts)
            self._insert_scores(conn, contract_ids, scores)

        logger.debug(f"Saved snapshot {snapshot.id} for {symbol} with {len(contracts)} contracts")
        return snapshot

    def _insert_stock(self, conn: sqlite3.Connection, snapshot: StockSnapshot) -> None:
        conn.execute(
            """
            INSERT INTO stock_snapshots(id, symbol, price, fetched_at, source, created_at)
            VALUES(?, ?, ?, ?, ?, ?)
            """,
            (
                snapshot.id,
                snapshot.symbol,
                snapshot.price,
                isoformat(snapshot.fetched_at),
                snapshot.source,
                isoformat(self._clock()),
            ),
        )

    def _insert_contracts(
        self,
        conn: sqlite3.Connection,
        snapshot_id: str,
        contract_ids: Sequence[str],
        contracts: Sequence[OptionContract],
    ) -> None:
        rows = [
            (
                contract_id,
                snapshot_id,
                position,
                contract.contract_name,
                contract.strike,
                contract.last_price,
                contract.bid,
                contract.ask,
                contract.volume,
                contract.open_interest,
                contract.expiration.isoformat(),
                contract.implied_volatility,
                contract.delta,
                contract.gamma,
                contract.theta,
            )
            for position, (contract_id, contract) in enumerate(zip(contract_ids, contracts))
        ]
        if rows:
            conn.executemany(
                """
                INSERT INTO contract_snapshots(
                    id, snapshot_id, position, contract_name, strike, last_price, bid, ask,
                    volume, open_interest, expiration_date, implied_volatility, delta, gamma, theta
                ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )

    def _insert_scores(
        self,
        conn: sqlite3.Connection,
        contract_ids: Sequence[str],
        scores: Sequence[OptionScore],
    ) -> None:
        rows = [
            (
                str(uuid.uuid4()),
                contract_id,
                score.total,
                score.premium_score,
                score.theta_score,
                score.strike_score,
                score.dte_score,
                score.iv_score,
                score.liquidity_score,
                score.spread_penalty,
            )
            for contract_id, score in zip(contract_ids, scores)
        ]
        if rows:
            conn.executemany(
                """
                INSERT INTO score_snapshots(
                    id, contract_id, total, premium_score, theta_score, strike_score,
                    dte_score, iv_score, liquidity_score, spread_penalty
                ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )

    # -- reads --------------------------------------------------------------

    def get_latest(self, symbol: str) -> Optional[SnapshotBundle]:
        symbol = normalize_symbol(symbol)
        with self._db.read() as conn:
            row = conn.execute(
                f"""
                SELECT {_STOCK_COLUMNS} FROM stock_snapshots ss
                WHERE ss.symbol = ?
                ORDER BY ss.fetched_at DESC, ss.rowid DESC
                LIMIT 1
                """,
                (symbol,),
            ).fetchone()
            if row is None:
                return None
            snapshot = _parse(StockSnapshot, dict(row))
            return self._bundle(conn, snapshot)

    def get_bundle(self, snapshot_id: str) -> Optional[SnapshotBundle]:
        with self._db.read() as conn:
            row = conn.execute(
                f"SELECT {_STOCK_COLUMNS} FROM stock_snapshots ss WHERE ss.id = ?",
                (snapshot_id,),
            ).fetchone()
            if row is None:
                return None
            return self._bundle(conn, _parse(StockSnapshot, dict(row)))

    def _bundle(self, conn: sqlite3.Connection, snapshot: StockSnapshot) -> SnapshotBundle:
        rows = conn.execute(
            f"""
            SELECT {_CONTRACT_COLUMNS}, {_SCORE_COLUMNS}
            FROM contract_snapshots cs
            LEFT JOIN score_snapshots sc ON sc.contract_id = cs.id
            WHERE cs.snapshot_id = ?
            ORDER BY sc.total IS NULL, sc.total DESC, cs.position ASC
            """,
            (snapshot.id,),
        ).fetchall()
        return SnapshotBundle(snapshot=snapshot, contracts=[self._ranked(row, snapshot) for row in rows])

    def _ranked(self, row: sqlite3.Row, snapshot: StockSnapshot) -> RankedContract:
        contract = _parse(ContractSnapshot, _prefixed(row, "c_"))
        score = _parse(ScoreSnapshot, _prefixed(row, "s_")) if row["s_id"] is not None else None
        dte = days_to_expiry(contract.expiration_date, snapshot.fetched_at)
        return RankedContract(
            contract=contract,
            score=score,
            days_to_expiry=dte,
            annualized_return=annualized_return(contract.bid, contract.strike, dte),
        )

    def get_recent(self, symbol: str, limit: int = 10) -> List[StockSnapshot]:
        """Return recent snapshots with same-hour near-duplicates collapsed.

        Walking newest to oldest, a snapshot is dropped when it shares the UTC
        hour of the last kept one and its price is within 0.1% of it.
        """

        symbol = normalize_symbol(symbol)
        if limit < 1:
            raise ValidationError(f"limit must be positive, got {limit}")

        kept: List[StockSnapshot] = []
        with self._db.read() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_STOCK_COLUMNS} FROM stock_snapshots ss
                WHERE ss.symbol = ?
                ORDER BY ss.fetched_at DESC, ss.rowid DESC
                """,
                (symbol,),
            )
            for row in cursor:
                snapshot = _parse(StockSnapshot, dict(row))
                if kept and self._is_duplicate(kept[-1], snapshot):
                    continue
                kept.append(snapshot)
                if len(kept) >= limit:
                    break
        return kept

    @staticmethod
    def _is_duplicate(newer: StockSnapshot, older: StockSnapshot) -> bool:
        if _hour_bucket(newer.fetched_at) != _hour_bucket(older.fetched_at):
            return False
        return abs(older.price - newer.price) / newer.price < DEDUP_PRICE_TOLERANCE

    def get_performance(self, symbol: str, window_days: int = 30) -> List[DailyPerformance]:
        symbol = normalize_symbol(symbol)
        if window_days < 1:
            raise ValidationError(f"window_days must be positive, got {window_days}")
        cutoff = isoformat(self._clock() - timedelta(days=window_days))

        with self._db.read() as conn:
            rows = conn.execute(
                """
                SELECT
                    ss.id AS snapshot_id,
                    substr(ss.fetched_at, 1, 10) AS day,
                    ss.price AS price,
                    COALESCE(cs.contract_name, cs.strike || '|' || cs.expiration_date) AS contract_key,
                    sc.total AS total
                FROM stock_snapshots ss
                LEFT JOIN contract_snapshots cs ON cs.snapshot_id = ss.id
                LEFT JOIN score_snapshots sc ON sc.contract_id = cs.id
                WHERE ss.symbol = ? AND ss.fetched_at >= ?
                """,
                (symbol, cutoff),
            ).fetchall()

        if not rows:
            return []

        frame = pd.DataFrame([dict(row) for row in rows])
        frame["total"] = pd.to_numeric(frame["total"], errors="coerce")
        per_snapshot = frame.groupby("snapshot_id").agg(
            day=("day", "first"),
            price=("price", "first"),
            top_score=("total", "max"),
        )
        per_snapshot["top_score"] = per_snapshot["top_score"].fillna(0.0)
        daily = per_snapshot.groupby("day").agg(
            low_price=("price", "min"),
            high_price=("price", "max"),
            avg_price=("price", "mean"),
            top_score=("top_score", "max"),
            avg_top_score=("top_score", "mean"),
            snapshot_count=("price", "size"),
        )
        unique = frame.dropna(subset=["contract_key"]).groupby("day")["contract_key"].nunique()
        daily["unique_contracts"] = unique.reindex(daily.index, fill_value=0)
        daily = daily.sort_index(ascending=False)

        return [
            _parse(
                DailyPerformance,
                {
                    "day": day,
                    "low_price": round(float(values.low_price), 2),
                    "high_price": round(float(values.high_price), 2),
                    "avg_price": round(float(values.avg_price), 2),
                    "top_score": round(float(values.top_score), 2),
                    "avg_top_score": round(float(values.avg_top_score), 2),
                    "unique_contracts": int(values.unique_contracts),
                    "snapshot_count": int(values.snapshot_count),
                },
            )
            for day, values in daily.iterrows()
        ]

    def get_top_contracts(self, symbol: str, days: int = 30, limit: int = 10) -> List[HistoricalContract]:
        """Best-scoring contracts seen for ``symbol`` over the trailing window."""

        symbol = normalize_symbol(symbol)
        cutoff = isoformat(self._clock() - timedelta(days=days))
        with self._db.read() as conn:
            rows = conn.execute(
                f"""
                SELECT {_STOCK_COLUMNS}, {_CONTRACT_COLUMNS}, {_SCORE_COLUMNS}
                FROM contract_snapshots cs
                JOIN stock_snapshots ss ON ss.id = cs.snapshot_id
                JOIN score_snapshots sc ON sc.contract_id = cs.id
                WHERE ss.symbol = ? AND ss.fetched_at >= ?
                ORDER BY sc.total DESC, ss.fetched_at DESC
                LIMIT ?
                """,
                (symbol, cutoff, limit),
            ).fetchall()
        return [
            HistoricalContract(
                snapshot=_parse(
                    StockSnapshot,
                    {key: row[key] for key in ("id", "symbol", "price", "fetched_at", "source")},
                ),
                contract=_parse(ContractSnapshot, _prefixed(row, "c_")),
                score=_parse(ScoreSnapshot, _prefixed(row, "s_")),
            )
            for row in rows
        ]

    def count_snapshots(self, symbol: Optional[str] = None) -> int:
        query = "SELECT COUNT(*) FROM stock_snapshots"
        params: tuple = ()
        if symbol is not None:
            query += " WHERE symbol = ?"
            params = (normalize_symbol(symbol),)
        with self._db.read() as conn:
            return int(conn.execute(query, params).fetchone()[0])


__all__ = ["DEDUP_PRICE_TOLERANCE", "SQLiteSnapshotStore"]
