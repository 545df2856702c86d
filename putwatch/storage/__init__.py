"""Storage backends for persisting snapshots of ranked option chains."""

from .base import (
    ContractSnapshot,
    DailyPerformance,
    HistoricalContract,
    PersistenceError,
    RankedContract,
    ScoreSnapshot,
    SnapshotBundle,
    SnapshotStore,
    StockSnapshot,
)
from .database import SQLiteDatabase
from .sqlite import SQLiteSnapshotStore

__all__ = [
    "ContractSnapshot",
    "DailyPerformance",
    "HistoricalContract",
    "PersistenceError",
    "RankedContract",
    "SQLiteDatabase",
    "SQLiteSnapshotStore",
    "ScoreSnapshot",
    "SnapshotBundle",
    "SnapshotStore",
    "StockSnapshot",
]
