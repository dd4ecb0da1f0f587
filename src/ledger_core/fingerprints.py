"""
Trade fingerprints used by the merge engine to recognise the same trade
arriving under a different id.

Precedence (strongest first): external order id, content, normalized ticker,
fuzzy. Every key includes the venue.
"""

from __future__ import annotations

import math
import re
from datetime import timezone
from typing import Optional

from ledger_core.contracts import Trade

ContentKey = tuple[str, str, str, int, float]
FuzzyKey = tuple[str, str, str, float]
ExternalKey = tuple[str, str]

_DATE_RE = re.compile(r"\d{1,2}/\d{1,2}/\d{4}\s*")
_ZERO_CENTS_RE = re.compile(r"\.00(?!\d)")
_WS_RE = re.compile(r"\s+")
_OPTION_SIDE_RE = re.compile(r"\s+([PC])\s*$")


def normalize_ticker(ticker: str) -> str:
    """Canonical option/stock ticker.

    >>> normalize_ticker("AMD 01/23/2026 265.00 C")
    'AMD 265C'
    """
    text = (ticker or "").upper()
    text = _DATE_RE.sub("", text)
    text = _ZERO_CENTS_RE.sub("", text)
    text = _WS_RE.sub(" ", text).strip()
    text = _OPTION_SIDE_RE.sub(r"\1", text)
    return text.strip()


def pnl_cents(pnl: float) -> int:
    """pnl rounded half-up to whole cents."""
    return math.floor(pnl * 100 + 0.5)


def exit_day(trade: Trade) -> str:
    ts = trade.exit_time
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.date().isoformat()


def _qty_key(qty: float) -> float:
    # absorbs float noise from pro-rata splits
    return round(qty, 8)


def content_fingerprint(trade: Trade) -> ContentKey:
    return (trade.venue, trade.instrument, exit_day(trade), pnl_cents(trade.pnl), _qty_key(trade.qty))


def normalized_fingerprint(trade: Trade) -> ContentKey:
    return (
        trade.venue,
        normalize_ticker(trade.instrument),
        exit_day(trade),
        pnl_cents(trade.pnl),
        _qty_key(trade.qty),
    )


def fuzzy_fingerprint(trade: Trade) -> FuzzyKey:
    """Ignores pnl; catches the same fill re-priced by a later venue report."""
    return (trade.venue, normalize_ticker(trade.instrument), exit_day(trade), _qty_key(trade.qty))


def external_key(trade: Trade) -> Optional[ExternalKey]:
    if not trade.external_order_id:
        return None
    return (trade.venue, trade.external_order_id)


FINGERPRINT_LEVELS = {
    "content": content_fingerprint,
    "normalized": normalized_fingerprint,
    "fuzzy": fuzzy_fingerprint,
}
