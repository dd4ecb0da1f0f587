"""
Data layer: fetch raw venue fills, persist trades, coordinate syncs.

Depends on ledger_core for contracts and merge; no dependency from ledger_core back to data.
"""

from data.fetcher import FetchError, FetchResult, FillFetcher, JsonFileFetcher, MockFillFetcher
from data.sync import SyncCoordinator, SyncReport, VenueSyncReport
from data.trade_repository import TradeRepository

__all__ = [
    "FetchError",
    "FetchResult",
    "FillFetcher",
    "JsonFileFetcher",
    "MockFillFetcher",
    "SyncCoordinator",
    "SyncReport",
    "TradeRepository",
    "VenueSyncReport",
]
