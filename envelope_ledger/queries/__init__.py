"""Read-side query package."""

from envelope_ledger.queries.executor import (
    AvailableCash,
    CycleView,
    HoldingSummary,
    LedgerQueries,
)

__all__ = ["AvailableCash", "CycleView", "HoldingSummary", "LedgerQueries"]
