"""
ledger-core: fill normalization, FIFO netting and trade deduplication.

No I/O, no network, no side effects. Consumes raw venue records, produces
Trades and merges them into a TradeStore. Fully deterministic and
unit-testable.
"""

from ledger_core.contracts import (
    ActivityClass,
    Direction,
    Fill,
    InstrumentType,
    MergeStats,
    Trade,
    TradeStatus,
)
from ledger_core.merge import MergeResult, merge_trades, plan_cleanup
from ledger_core.netting import net_fills
from ledger_core.normalizer import normalize_fills
from ledger_core.trade_store import TradeStore

__all__ = [
    "ActivityClass",
    "Direction",
    "Fill",
    "InstrumentType",
    "merge_trades",
    "MergeResult",
    "MergeStats",
    "net_fills",
    "normalize_fills",
    "plan_cleanup",
    "Trade",
    "TradeStatus",
    "TradeStore",
]
