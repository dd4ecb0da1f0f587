"""
Sync coordinator: fetch every venue in parallel, merge into one store in sequence.

Fetch + normalize + net run in worker threads; they share no mutable state.
The merge is a fold over the store guarded by a lock, so each venue's index
updates are visible before the next merge starts. A venue whose fetch or
processing fails contributes zero trades and leaves the store untouched.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Sequence

from ledger_core.contracts import MergeStats, SkippedFill, Trade
from ledger_core.merge import merge_trades
from ledger_core.pipeline import process_venue_fills
from ledger_core.trade_store import TradeStore

from data.fetcher import FillFetcher

if TYPE_CHECKING:
    from cli.structured_log import StructuredEventLogger
    from config.ledger_config import LedgerConfig
    from journal.writer import JournalWriter

logger = logging.getLogger("ledger.sync")


@dataclass
class VenueSyncReport:
    """Outcome of one venue in one sync run."""

    venue: str
    records: int = 0
    fills: int = 0
    trades: int = 0
    skipped: list[SkippedFill] = field(default_factory=list)
    unfilled: int = 0
    ambiguous: int = 0
    orphans: int = 0
    stats: MergeStats = MergeStats()
    added_ids: list[str] = field(default_factory=list)
    updated_ids: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncReport:
    """Aggregate of a sync run: per-venue reports, the merged store and what changed."""

    venues: list[VenueSyncReport]
    store: TradeStore
    changed_ids: list[str] = field(default_factory=list)

    @property
    def stats(self) -> MergeStats:
        total = MergeStats()
        for v in self.venues:
            total = total + v.stats
        return total

    @property
    def failed(self) -> list[VenueSyncReport]:
        return [v for v in self.venues if not v.ok]

    def changed_trades(self) -> list[Trade]:
        return [t for t in (self.store.get(i) for i in self.changed_ids) if t is not None]


class SyncCoordinator:
    """Runs one sync across venues.

    Parameters
    ----------
    config:
        Ledger configuration (venue policies, netting, merge switches).
    max_workers:
        Upper bound on concurrent venue fetches.
    events:
        Optional structured event logger.
    journal:
        Optional journal; receives the sync summary and per-trade outcomes.
    """

    def __init__(
        self,
        config: LedgerConfig,
        *,
        max_workers: int = 4,
        events: StructuredEventLogger | None = None,
        journal: JournalWriter | None = None,
    ) -> None:
        self._config = config
        self._max_workers = max(1, max_workers)
        self._events = events
        self._journal = journal
        self._lock = threading.Lock()
        self._store = TradeStore()
        self._changed: dict[str, None] = {}

    def run(
        self,
        fetchers: Sequence[FillFetcher],
        store: TradeStore,
        *,
        since: datetime | None = None,
        now: datetime | None = None,
    ) -> SyncReport:
        """Sync every fetcher's venue into a copy of *store*. Reports keep fetcher order."""
        venues = [f.venue for f in fetchers]
        if self._events:
            self._events.sync_start(venues)
        logger.info("sync start: %s", ", ".join(venues) or "(no venues)")

        with self._lock:
            self._store = store
            self._changed = {}

        if fetchers:
            workers = min(self._max_workers, len(fetchers))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ledger-sync") as pool:
                futures = [pool.submit(self._sync_venue, f, since, now) for f in fetchers]
                reports = [fut.result() for fut in futures]
        else:
            reports = []

        with self._lock:
            report = SyncReport(venues=reports, store=self._store, changed_ids=list(self._changed))

        total = report.stats
        logger.info(
            "sync done: %d added, %d updated, %d duplicate, %d unchanged, %d venue(s) failed",
            total.added, total.updated, total.duplicate, total.unchanged, len(report.failed),
        )
        if self._journal:
            self._journal_report(report)
        return report

    # -- per venue (worker thread) --------------------------------------------

    def _sync_venue(self, fetcher: FillFetcher, since: datetime | None, now: datetime | None) -> VenueSyncReport:
        venue = fetcher.venue
        try:
            fetched = fetcher.fetch(since=since)
        except Exception as exc:
            logger.warning("%s: fetch failed: %s", venue, exc)
            if self._events:
                self._events.fetch_failed(venue, str(exc))
            return VenueSyncReport(venue=venue, error=str(exc))

        if self._events:
            self._events.venue_fetched(venue, len(fetched.records))

        try:
            batch = process_venue_fills(fetched.records, venue, self._config, now=now)
        except ValueError as exc:
            logger.error("%s: processing failed: %s", venue, exc)
            if self._events:
                self._events.error(f"{venue}: processing failed", str(exc))
            return VenueSyncReport(venue=venue, records=len(fetched.records), error=str(exc))

        if batch.skipped and self._events:
            self._events.fills_skipped(venue, len(batch.skipped), [s.reason for s in batch.skipped])

        with self._lock:
            result = merge_trades(self._store, batch.trades, fuzzy_match=self._config.merge.fuzzy_match)
            self._store = result.store
            for trade_id in result.changed_ids:
                self._changed.setdefault(trade_id, None)

        if self._events:
            s = result.stats
            self._events.merge_complete(venue, s.added, s.updated, s.duplicate, s.unchanged)

        return VenueSyncReport(
            venue=venue,
            records=len(fetched.records),
            fills=len(batch.fills),
            trades=len(batch.trades),
            skipped=batch.skipped,
            unfilled=batch.unfilled,
            ambiguous=batch.ambiguous,
            orphans=batch.orphans,
            stats=result.stats,
            added_ids=result.added_ids,
            updated_ids=result.updated_ids,
        )

    # -- journal ----------------------------------------------------------------

    def _journal_report(self, report: SyncReport) -> None:
        journal = self._journal
        for v in report.venues:
            for skipped in v.skipped:
                journal.fill_skipped(v.venue, skipped.index, skipped.reason)
            for trade_id in v.added_ids:
                trade = report.store.get(trade_id)
                if trade is not None:
                    journal.trade_added(trade)
            for trade_id in v.updated_ids:
                trade = report.store.get(trade_id)
                if trade is not None:
                    journal.trade_updated(trade)
        total = report.stats
        journal.sync(
            venues=[v.venue for v in report.venues],
            added=total.added,
            updated=total.updated,
            duplicate=total.duplicate,
            unchanged=total.unchanged,
            failed=[v.venue for v in report.failed],
        )
