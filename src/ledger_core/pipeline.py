"""
Pipeline orchestrator: chains Normalizer -> Classifier -> Netting for one venue batch.

Merging is a separate step (``ledger_core.merge.merge_trades``) so that a
caller can fold several venue batches into one store in sequence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from ledger_core.classifier import tag_fills
from ledger_core.contracts import Fill, SkippedFill, Trade
from ledger_core.netting import NettingEngine
from ledger_core.normalizer import normalize_fills

if TYPE_CHECKING:
    from config.ledger_config import LedgerConfig


@dataclass(frozen=True)
class VenueBatchResult:
    """Output of one venue batch. Every stage's output is kept for journaling."""

    venue: str
    fills: list[Fill] = field(default_factory=list)
    trades: list[Trade] = field(default_factory=list)
    skipped: list[SkippedFill] = field(default_factory=list)
    unfilled: int = 0
    ambiguous: int = 0
    orphans: int = 0


def process_venue_fills(
    records: Sequence[Mapping[str, Any]],
    venue: str,
    config: LedgerConfig,
    *,
    now: datetime | None = None,
) -> VenueBatchResult:
    """Turn one venue's raw records into trade candidates.

    Stages:
        1. Normalizer:  raw mappings -> Fill[] (bad records skipped)
        2. Classifier:  Fill[] -> Fill[] with is_bot set per venue policy
        3. Netting:     Fill[] -> Trade[] (FIFO)

    Parameters
    ----------
    records:
        Raw venue records, any order.
    venue:
        Venue display name; selects the venue policy.
    config:
        Ledger configuration.
    now:
        Fallback timestamp for records with unparseable times.
    """
    policy = config.venue(venue)
    normalized = normalize_fills(
        records,
        venue,
        instrument_type=policy.instrument_type,
        default_leverage=config.normalizer.default_leverage,
        now=now,
    )
    if not normalized.fills:
        return VenueBatchResult(venue=venue, skipped=normalized.skipped, unfilled=normalized.unfilled)

    fills = tag_fills(normalized.fills, policy, config.classifier.bot_markers)

    engine = NettingEngine(
        venue,
        epsilon=config.netting.epsilon,
        partial_lots=config.partial_lots_for(venue),
        stable_close_ids=policy.stable_close_ids,
    )
    netted = engine.run(fills)

    return VenueBatchResult(
        venue=venue,
        fills=fills,
        trades=netted.trades,
        skipped=normalized.skipped,
        unfilled=normalized.unfilled,
        ambiguous=normalized.ambiguous,
        orphans=netted.orphans,
    )
