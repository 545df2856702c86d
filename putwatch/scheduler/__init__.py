"""Market-hours gated round-robin refresh scheduler."""

from .service import RefreshOutcome, RefreshScheduler, SchedulerStatus

__all__ = ["RefreshOutcome", "RefreshScheduler", "SchedulerStatus"]
