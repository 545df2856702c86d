"""Records owned by the symbol registry."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from putwatch.clock import parse_timestamp

PREFERRED_PRIORITY = 10
STANDARD_PRIORITY = 5


def priority_for(is_preferred: bool) -> int:
    return PREFERRED_PRIORITY if is_preferred else STANDARD_PRIORITY


def _parse_optional_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return parse_timestamp(value)


class TrackedSymbol(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    is_preferred: bool = False
    priority: int = STANDARD_PRIORITY
    last_refreshed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    error_count: int = 0
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    @field_validator("last_refreshed_at", mode="before")
    @classmethod
    def _optional_timestamp(cls, value: Any) -> Optional[datetime]:
        return _parse_optional_timestamp(value)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime:
        return parse_timestamp(value)


class RefreshCursor(BaseModel):
    """Singleton round-robin position over the active symbol list (1-indexed)."""

    position: int = Field(default=0, ge=0)
    total_symbols: int = Field(default=0, ge=0)
    last_symbol: Optional[str] = None
    cycle_count: int = Field(default=0, ge=0)
    cycle_started_at: Optional[datetime] = None
    cycle_completed_at: Optional[datetime] = None
    advances_in_cycle: int = Field(default=0, ge=0)
    updated_at: Optional[datetime] = None

    @field_validator("cycle_started_at", "cycle_completed_at", "updated_at", mode="before")
    @classmethod
    def _optional_timestamp(cls, value: Any) -> Optional[datetime]:
        return _parse_optional_timestamp(value)


class RefreshStatistics(BaseModel):
    total_symbols: int = 0
    active_symbols: int = 0
    preferred_symbols: int = 0
    symbols_with_errors: int = 0
    symbols_refreshed: int = 0
    most_recent_refresh: Optional[datetime] = None
    oldest_refresh: Optional[datetime] = None

    @field_validator("most_recent_refresh", "oldest_refresh", mode="before")
    @classmethod
    def _optional_timestamp(cls, value: Any) -> Optional[datetime]:
        return _parse_optional_timestamp(value)
