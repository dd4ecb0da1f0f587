"""
Fill Normalizer: heterogeneous raw venue records -> canonical Fill.

Each canonical attribute is read through an ordered FieldRule (alias list,
first present field wins). A record that cannot be parsed is skipped and
recorded; it never aborts the batch. Unfilled records (qty <= 0) are dropped.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from ledger_core.contracts import Direction, Fill, InstrumentType, SkippedFill

logger = logging.getLogger("ledger.normalizer")

UNKNOWN_INSTRUMENT = "UNKNOWN"

# Epoch values above this are milliseconds (1973-03-03 in seconds).
_EPOCH_MS_THRESHOLD = 1e11


# ---------------------------------------------------------------------------
# Accessor rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldRule:
    """Ordered alias list for one canonical field.

    ``zero_is_missing``: a numeric zero does not count as present, so the
    next alias is tried (venues report 0 order price for market orders).
    """

    name: str
    aliases: tuple[str, ...]
    zero_is_missing: bool = False

    def lookup(self, raw: Mapping[str, Any]) -> Any:
        """Return the first present value, or None."""
        for alias in self.aliases:
            value = raw.get(alias)
            if value is None or value == "":
                continue
            if self.zero_is_missing and _is_zero(value):
                continue
            return value
        return None


def _is_zero(value: Any) -> bool:
    try:
        return float(str(value).replace(",", "").replace("$", "")) == 0
    except ValueError:
        return False


PRICE = FieldRule("price", ("price", "dealAvgPrice", "avgPrice", "execPrice", "entryPrice", "exitPrice"), zero_is_missing=True)
QTY = FieldRule("qty", ("dealVol", "execQty", "executedQty", "quantity", "qty", "vol"))
TIME = FieldRule("time", ("createTime", "time", "timestamp", "tradeTime", "execTime", "entryDate"))
SIDE = FieldRule("side", ("side", "direction", "Side", "Direction", "isBuyer"))
FEE = FieldRule("fee", ("fee", "commission", "execFee", "fees"))
PNL = FieldRule("pnl", ("pnl", "profit", "closedPnl", "realised_pnl", "realisedPnl", "realizedPnl"))
LEVERAGE = FieldRule("leverage", ("leverage", "lever"), zero_is_missing=True)
NOTIONAL = FieldRule("notional", ("notional", "positionValue", "execValue", "quoteQty"), zero_is_missing=True)
TAG = FieldRule("tag", ("externalOid", "external_oid", "clientOrderId", "orderLinkId", "tag"))
ORDER_ID = FieldRule("order_id", ("orderId", "id", "execId", "tradeId"))
INSTRUMENT = FieldRule("instrument", ("symbol", "ticker", "instrument"))
INSTRUMENT_TYPE = FieldRule("instrument_type", ("type", "instrumentType", "assetType"))

FIELD_RULES: tuple[FieldRule, ...] = (
    PRICE, QTY, TIME, SIDE, FEE, PNL, LEVERAGE, NOTIONAL, TAG, ORDER_ID, INSTRUMENT, INSTRUMENT_TYPE,
)


# ---------------------------------------------------------------------------
# Side codes
# ---------------------------------------------------------------------------

# MEXC futures: 1=open long, 2=close short, 3=open short, 4=close long.
# TRUE/FALSE come from spot isBuyer flags.
SIDE_CODES: dict[str, Direction] = {
    "1": Direction.LONG,
    "2": Direction.LONG,
    "3": Direction.SHORT,
    "4": Direction.SHORT,
    "BUY": Direction.LONG,
    "SELL": Direction.SHORT,
    "TRUE": Direction.LONG,
    "FALSE": Direction.SHORT,
}

# Checked in order; "SELL LONG" closes a long, so LONG/SHORT win over BUY/SELL.
_SIDE_SUBSTRINGS: tuple[tuple[str, Direction], ...] = (
    ("SHORT", Direction.SHORT),
    ("LONG", Direction.LONG),
    ("BUY", Direction.LONG),
    ("SELL", Direction.SHORT),
)


def parse_direction(code: Any) -> tuple[Direction, bool]:
    """Map a venue side code to a Direction.

    Returns ``(direction, ambiguous)``. Unrecognized codes default to LONG
    with ``ambiguous=True``.
    """
    if code is None:
        return Direction.LONG, True
    text = str(code).strip().upper()
    if text in SIDE_CODES:
        return SIDE_CODES[text], False
    for needle, direction in _SIDE_SUBSTRINGS:
        if needle in text:
            return direction, False
    return Direction.LONG, True


# ---------------------------------------------------------------------------
# Scalar parsing
# ---------------------------------------------------------------------------


def parse_number(value: Any, default: float = 0.0) -> float:
    """Parse ints, floats and strings like ``"$1,234.50"``.

    Raises ValueError on garbage and on NaN or infinity.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got bool {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        number = float(str(value).strip().replace(",", "").replace("$", ""))
    if not math.isfinite(number):
        raise ValueError(f"expected a finite number, got {value!r}")
    return number


def parse_timestamp(value: Any, *, now: datetime | None = None) -> tuple[datetime, bool]:
    """Parse epoch seconds/ms, numeric strings, ISO-8601 strings or datetimes.

    Returns ``(timestamp_utc, ok)``. Unparseable input falls back to *now*.
    """
    fallback = now or datetime.now(timezone.utc)
    if value is None or value == "":
        return fallback, False
    if isinstance(value, datetime):
        ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return ts.astimezone(timezone.utc), True
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = None
    try:
        if number is not None:
            if number > _EPOCH_MS_THRESHOLD:
                number /= 1000.0
            return datetime.fromtimestamp(number, tz=timezone.utc), True
        ts = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        return fallback, False
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc), True


def _parse_instrument_type(value: Any, default: InstrumentType) -> InstrumentType:
    if value is None:
        return default
    try:
        return InstrumentType(str(value).strip().upper())
    except ValueError:
        return default


def stable_fill_id(raw: Mapping[str, Any], instrument: str, time_value: Any, price: Any, qty: Any, side: Any) -> str:
    """Order id when the venue supplies one, else a content hash."""
    order_id = ORDER_ID.lookup(raw)
    if order_id is not None:
        return str(order_id)
    key = f"{instrument}|{time_value}|{price}|{qty}|{side}"
    return "gen-" + hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


# ---------------------------------------------------------------------------
# Single record / batch
# ---------------------------------------------------------------------------


def normalize_fill(
    raw: Mapping[str, Any],
    venue: str,
    *,
    instrument_type: InstrumentType = InstrumentType.CRYPTO,
    default_leverage: float = 1.0,
    now: datetime | None = None,
) -> Fill | None:
    """Map one raw record into a Fill.

    Returns None for unfilled records (qty <= 0). Raises ValueError when a
    numeric field is present but unparseable.
    """
    qty = parse_number(QTY.lookup(raw))
    if qty <= 0:
        return None

    instrument = str(INSTRUMENT.lookup(raw) or UNKNOWN_INSTRUMENT).strip() or UNKNOWN_INSTRUMENT
    raw_price = PRICE.lookup(raw)
    raw_time = TIME.lookup(raw)
    raw_side = SIDE.lookup(raw)

    timestamp, ts_ok = parse_timestamp(raw_time, now=now)
    if not ts_ok:
        logger.warning("%s %s: unparseable time %r, using now", venue, instrument, raw_time)

    direction, ambiguous = parse_direction(raw_side)
    if ambiguous:
        logger.warning("%s %s: unrecognized side %r, defaulting to LONG", venue, instrument, raw_side)

    raw_pnl = PNL.lookup(raw)
    raw_notional = NOTIONAL.lookup(raw)
    order_id = ORDER_ID.lookup(raw)

    return Fill(
        id=stable_fill_id(raw, instrument, raw_time, raw_price, qty, raw_side),
        venue=venue,
        instrument=instrument,
        direction=direction,
        price=parse_number(raw_price),
        qty=qty,
        timestamp=timestamp,
        fee=abs(parse_number(FEE.lookup(raw))),
        realized_pnl=parse_number(raw_pnl) if raw_pnl is not None else None,
        leverage=parse_number(LEVERAGE.lookup(raw), default=default_leverage),
        notional=parse_number(raw_notional) if raw_notional is not None else None,
        order_id=str(order_id) if order_id is not None else None,
        tag=str(TAG.lookup(raw) or ""),
        instrument_type=_parse_instrument_type(INSTRUMENT_TYPE.lookup(raw), instrument_type),
        ambiguous_side=ambiguous,
    )


@dataclass(frozen=True)
class NormalizationResult:
    """Output of normalizing one venue batch."""

    fills: list[Fill] = field(default_factory=list)
    skipped: list[SkippedFill] = field(default_factory=list)
    unfilled: int = 0

    @property
    def ambiguous(self) -> int:
        return sum(1 for f in self.fills if f.ambiguous_side)


def normalize_fills(
    records: Sequence[Mapping[str, Any]],
    venue: str,
    *,
    instrument_type: InstrumentType = InstrumentType.CRYPTO,
    default_leverage: float = 1.0,
    now: datetime | None = None,
) -> NormalizationResult:
    """Normalize a batch. Bad records are skipped and recorded, never fatal."""
    fills: list[Fill] = []
    skipped: list[SkippedFill] = []
    unfilled = 0
    for index, raw in enumerate(records):
        if not isinstance(raw, Mapping):
            skipped.append(SkippedFill(index=index, reason=f"not a mapping: {type(raw).__name__}"))
            continue
        try:
            fill = normalize_fill(
                raw,
                venue,
                instrument_type=instrument_type,
                default_leverage=default_leverage,
                now=now,
            )
        except (ValueError, TypeError) as exc:
            logger.warning("%s: skipping record %d: %s", venue, index, exc)
            skipped.append(SkippedFill(index=index, reason=str(exc)))
            continue
        if fill is None:
            unfilled += 1
            continue
        fills.append(fill)
    return NormalizationResult(fills=fills, skipped=skipped, unfilled=unfilled)
