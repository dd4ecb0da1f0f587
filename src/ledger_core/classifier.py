"""
Activity Classifier: tags each fill as automated (BOT) or MANUAL.

A bot session on an instrument starts at the first fill whose tag carries a
bot marker. Every fill on that instrument from then on is treated as bot
activity, including untagged closes placed by the same engine.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Mapping, Sequence

from ledger_core.contracts import ActivityClass, Fill

if TYPE_CHECKING:
    from config.ledger_config import VenuePolicy

DEFAULT_MARKERS: tuple[str, ...] = ("[BBOS1]", "stoporder_")


def has_marker(tag: str, markers: Iterable[str] = DEFAULT_MARKERS) -> bool:
    return bool(tag) and any(marker in tag for marker in markers)


def find_session_starts(fills: Iterable[Fill], markers: Iterable[str] = DEFAULT_MARKERS) -> dict[str, datetime]:
    """Earliest marker-tagged fill time per instrument."""
    markers = tuple(markers)
    starts: dict[str, datetime] = {}
    for fill in fills:
        if not has_marker(fill.tag, markers):
            continue
        current = starts.get(fill.instrument)
        if current is None or fill.timestamp < current:
            starts[fill.instrument] = fill.timestamp
    return starts


def classify(
    tag: str,
    timestamp: datetime,
    instrument: str,
    session_starts: Mapping[str, datetime],
    markers: Iterable[str] = DEFAULT_MARKERS,
) -> ActivityClass:
    if has_marker(tag, markers):
        return ActivityClass.BOT
    start = session_starts.get(instrument)
    if start is not None and timestamp >= start:
        return ActivityClass.BOT
    return ActivityClass.MANUAL


def tag_fills(
    fills: Sequence[Fill],
    policy: "VenuePolicy",
    markers: Iterable[str] = DEFAULT_MARKERS,
) -> list[Fill]:
    """Return *fills* with ``is_bot`` set according to the venue policy.

    ``always_bot`` wins over ``detect_bots``. With neither set the fills are
    returned unchanged.
    """
    if policy.always_bot:
        return [replace(f, is_bot=True) for f in fills]
    if not policy.detect_bots:
        return list(fills)
    markers = tuple(markers)
    starts = find_session_starts(fills, markers)
    return [
        replace(f, is_bot=classify(f.tag, f.timestamp, f.instrument, starts, markers) == ActivityClass.BOT)
        for f in fills
    ]
