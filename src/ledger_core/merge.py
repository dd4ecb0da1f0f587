"""
Merge / Dedup Engine: fold incoming trade candidates into a TradeStore.

For each incoming trade the first matching rule wins:

    1. id                         -> update (server-confirmed fields differ) or unchanged
    2. (venue, external order id) -> duplicate
    3. content fingerprint        -> duplicate
    4. normalized-ticker print    -> duplicate
    5. fuzzy fingerprint          -> duplicate
    none                          -> added

Duplicates only backfill a missing external id or empty notes on the stored
trade. User annotation fields are never overwritten.

``merge_trades`` does not mutate its input store.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Iterable, Literal, Optional, Sequence

from ledger_core.contracts import ANNOTATION_FIELDS, SERVER_CONFIRMED_FIELDS, CleanupPlan, MergeStats, Trade
from ledger_core.fingerprints import FINGERPRINT_LEVELS
from ledger_core.trade_store import TradeStore

logger = logging.getLogger("ledger.merge")

CleanupLevel = Literal["content", "normalized", "fuzzy"]


@dataclass(frozen=True)
class MergeResult:
    """New store plus what changed; persistence is driven from the id lists."""

    store: TradeStore
    stats: MergeStats = MergeStats()
    added_ids: list[str] = field(default_factory=list)
    updated_ids: list[str] = field(default_factory=list)
    backfilled_ids: list[str] = field(default_factory=list)

    @property
    def changed_ids(self) -> list[str]:
        """Ids whose stored row must be written, in first-change order."""
        seen: dict[str, None] = {}
        for trade_id in (*self.added_ids, *self.updated_ids, *self.backfilled_ids):
            seen.setdefault(trade_id, None)
        return list(seen)

    def changed_trades(self) -> list[Trade]:
        return [t for t in (self.store.get(i) for i in self.changed_ids) if t is not None]


# ---------------------------------------------------------------------------
# Field-level rules
# ---------------------------------------------------------------------------


def _same(a: object, b: object) -> bool:
    if isinstance(a, float) and isinstance(b, float):
        return math.isclose(a, b, rel_tol=1e-9, abs_tol=1e-9)
    return a == b


def server_fields_differ(existing: Trade, incoming: Trade) -> bool:
    return any(not _same(getattr(existing, f), getattr(incoming, f)) for f in SERVER_CONFIRMED_FIELDS)


def apply_update(existing: Trade, incoming: Trade) -> Trade:
    """Incoming venue data with the stored trade's user-owned fields kept."""
    kept = {name: getattr(existing, name) for name in ANNOTATION_FIELDS}
    return replace(
        incoming,
        notes=existing.notes or incoming.notes,
        external_order_id=incoming.external_order_id or existing.external_order_id,
        **kept,
    )


def backfill(existing: Trade, incoming: Trade) -> Optional[Trade]:
    """Fill a missing external id or empty notes from *incoming*; None if nothing to fill."""
    changes = {}
    if not existing.external_order_id and incoming.external_order_id:
        changes["external_order_id"] = incoming.external_order_id
    if not existing.notes and incoming.notes:
        changes["notes"] = incoming.notes
    if not changes:
        return None
    return replace(existing, **changes)


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def find_duplicate(store: TradeStore, trade: Trade, *, fuzzy_match: bool = True) -> Optional[Trade]:
    """Stored trade matching *trade* by fingerprint precedence 2-5, or None."""
    match = store.by_external_id(trade) or store.by_content(trade) or store.by_normalized(trade)
    if match is None and fuzzy_match:
        match = store.by_fuzzy(trade)
    return match


def merge_trades(
    store: TradeStore,
    incoming: Iterable[Trade],
    *,
    fuzzy_match: bool = True,
) -> MergeResult:
    """Merge *incoming* into a copy of *store*.

    Later items in the same batch can match earlier ones: every insert is
    indexed before the next item is examined.
    """
    merged = store.copy()
    added: list[str] = []
    updated: list[str] = []
    backfilled: list[str] = []
    n_dup = n_unchanged = 0

    for trade in incoming:
        existing = merged.get(trade.id)
        if existing is not None:
            if server_fields_differ(existing, trade):
                merged.put(apply_update(existing, trade))
                updated.append(trade.id)
                continue
            n_unchanged += 1
            filled = backfill(existing, trade)
            if filled is not None:
                merged.put(filled)
                backfilled.append(existing.id)
            continue

        match = find_duplicate(merged, trade, fuzzy_match=fuzzy_match)
        if match is not None:
            n_dup += 1
            logger.debug("trade %s duplicates stored %s", trade.id, match.id)
            filled = backfill(match, trade)
            if filled is not None:
                merged.put(filled)
                backfilled.append(match.id)
            continue

        merged.put(trade)
        added.append(trade.id)

    stats = MergeStats(added=len(added), updated=len(updated), duplicate=n_dup, unchanged=n_unchanged)
    logger.info(
        "merge: %d added, %d updated, %d duplicate, %d unchanged",
        stats.added, stats.updated, stats.duplicate, stats.unchanged,
    )
    return MergeResult(
        store=merged,
        stats=stats,
        added_ids=added,
        updated_ids=updated,
        backfilled_ids=backfilled,
    )


# ---------------------------------------------------------------------------
# Cleanup of already-stored duplicates
# ---------------------------------------------------------------------------


def plan_cleanup(trades: Sequence[Trade], level: CleanupLevel = "content") -> CleanupPlan:
    """Keep the first trade per fingerprint at *level*; list the rest for removal."""
    try:
        key_fn = FINGERPRINT_LEVELS[level]
    except KeyError:
        raise ValueError(f"Unknown cleanup level {level!r}; expected one of {sorted(FINGERPRINT_LEVELS)}") from None
    seen: set = set()
    keep: list[str] = []
    remove: list[str] = []
    for trade in trades:
        key = key_fn(trade)
        if key in seen:
            remove.append(trade.id)
        else:
            seen.add(key)
            keep.append(trade.id)
    return CleanupPlan(keep=keep, remove=remove)
