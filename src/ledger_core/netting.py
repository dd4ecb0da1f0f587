"""
Position Netting Engine: chronological fills -> FIFO lots -> Trades.

Walks one venue's fills in time order, keeps an arena of open lots per
instrument, and emits a CLOSED trade per match and an OPEN trade per lot
still open at end of stream.

Two matching modes:
    whole-lot (default):  a close consumes one whole lot regardless of quantity
                          mismatch; trade quantity is the closing fill's.
    partial-lot:          a close consumes lots oldest-first by quantity,
                          shrinking the last one; one trade per lot touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Sequence

from ledger_core.contracts import Direction, Fill, Lot, Trade, TradeStatus

logger = logging.getLogger("ledger.netting")

EPSILON = 1e-4


def safe_div(numerator: float, denominator: float) -> float:
    """Division where a zero denominator yields 0."""
    if not denominator:
        return 0.0
    return numerator / denominator


def directional_pnl(direction: Direction, entry_price: float, exit_price: float, qty: float) -> float:
    if direction == Direction.LONG:
        return (exit_price - entry_price) * qty
    return (entry_price - exit_price) * qty


@dataclass(frozen=True)
class PositionSize:
    """Notional, margin and pnl percentage of one trade leg."""

    notional: float
    margin: float
    pnl_pct: float


def size_position(qty: float, unit_notional: float | None, fallback_price: float, leverage: float, pnl: float) -> PositionSize:
    """notional = qty * per-unit notional (or price); margin = notional / leverage."""
    notional = qty * (unit_notional if unit_notional is not None else fallback_price)
    margin = safe_div(notional, leverage)
    return PositionSize(notional=notional, margin=margin, pnl_pct=safe_div(pnl, margin) * 100)


# ---------------------------------------------------------------------------
# Lot arena
# ---------------------------------------------------------------------------


class LotBook:
    """Open lots per instrument, oldest first. Lots are addressed by index
    and removed explicitly; nothing iterates a queue while mutating it."""

    def __init__(self, epsilon: float = EPSILON) -> None:
        self._epsilon = epsilon
        self._lots: dict[str, list[Lot]] = {}

    def push(self, lot: Lot) -> None:
        self._lots.setdefault(lot.instrument, []).append(lot)

    def head(self, instrument: str) -> Lot | None:
        lots = self._lots.get(instrument)
        return lots[0] if lots else None

    def has_open(self, instrument: str) -> bool:
        return bool(self._lots.get(instrument))

    def index_matching(self, instrument: str, qty: float) -> int:
        """Index of the first lot whose quantity equals *qty* within epsilon, else 0 (head)."""
        for i, lot in enumerate(self._lots.get(instrument, [])):
            if abs(lot.qty - qty) < self._epsilon:
                return i
        return 0

    def take(self, instrument: str, index: int = 0) -> Lot:
        """Remove and return the lot at *index*."""
        return self._lots[instrument].pop(index)

    def reduce_head(self, instrument: str, qty: float) -> Lot:
        """Consume *qty* from the head lot; removes it when nothing remains.

        Returns a snapshot of the consumed portion (fee pro-rated).
        """
        head = self._lots[instrument][0]
        taken = min(qty, head.qty)
        share = safe_div(taken, head.qty)
        portion = Lot(
            id=head.id,
            instrument=head.instrument,
            direction=head.direction,
            entry_time=head.entry_time,
            entry_price=head.entry_price,
            qty=taken,
            leverage=head.leverage,
            fee=head.fee * share,
            notes=head.notes,
            notional_per_unit=head.notional_per_unit,
            is_bot=head.is_bot,
            instrument_type=head.instrument_type,
        )
        head.fee -= portion.fee
        head.qty = max(head.qty - taken, 0.0)
        if head.qty < self._epsilon:
            self._lots[instrument].pop(0)
        return portion

    def open_quantity(self, instrument: str) -> float:
        return sum(lot.qty for lot in self._lots.get(instrument, []))

    def remaining(self) -> Iterator[Lot]:
        """All open lots, instruments in first-seen order, oldest first."""
        for lots in self._lots.values():
            yield from lots


# ---------------------------------------------------------------------------
# Trade builders
# ---------------------------------------------------------------------------


def _lot_from_fill(fill: Fill) -> Lot:
    return Lot(
        id=fill.id,
        instrument=fill.instrument,
        direction=fill.direction,
        entry_time=fill.timestamp,
        entry_price=fill.price,
        qty=fill.qty,
        leverage=fill.leverage,
        fee=fill.fee,
        notional_per_unit=fill.notional_per_unit,
        is_bot=fill.is_bot,
        instrument_type=fill.instrument_type,
    )


def _closed_trade(
    lot: Lot,
    fill: Fill,
    *,
    trade_id: str,
    qty: float,
    pnl: float,
    exit_fee: float,
    note: str,
    external_order_id: str | None,
) -> Trade:
    size = size_position(qty, lot.notional_per_unit, lot.entry_price, lot.leverage, pnl)
    return Trade(
        id=trade_id,
        venue=fill.venue,
        instrument=lot.instrument,
        instrument_type=lot.instrument_type,
        direction=lot.direction,
        entry_price=lot.entry_price,
        exit_price=fill.price,
        entry_time=lot.entry_time,
        exit_time=fill.timestamp,
        qty=qty,
        fees=lot.fee + exit_fee,
        pnl=pnl,
        pnl_pct=size.pnl_pct,
        leverage=lot.leverage,
        notional=size.notional,
        margin=size.margin,
        status=TradeStatus.CLOSED,
        is_bot=lot.is_bot or fill.is_bot,
        notes=lot.notes or note,
        external_order_id=external_order_id,
    )


def _orphan_trade(fill: Fill, *, trade_id: str, qty: float, pnl: float, fee: float, note: str, external_order_id: str | None) -> Trade:
    size = size_position(qty, fill.notional_per_unit, fill.price, fill.leverage, pnl)
    return Trade(
        id=trade_id,
        venue=fill.venue,
        instrument=fill.instrument,
        instrument_type=fill.instrument_type,
        direction=fill.direction,
        entry_price=fill.price,
        exit_price=fill.price,
        entry_time=fill.timestamp,
        exit_time=fill.timestamp,
        qty=qty,
        fees=fee,
        pnl=pnl,
        pnl_pct=size.pnl_pct,
        leverage=fill.leverage,
        notional=size.notional,
        margin=size.margin,
        status=TradeStatus.CLOSED,
        is_bot=fill.is_bot,
        notes=note,
        external_order_id=external_order_id,
        is_orphan=True,
    )


def _open_trade(lot: Lot, venue: str, note: str) -> Trade:
    size = size_position(lot.qty, lot.notional_per_unit, lot.entry_price, lot.leverage, 0.0)
    return Trade(
        id=lot.id,
        venue=venue,
        instrument=lot.instrument,
        instrument_type=lot.instrument_type,
        direction=lot.direction,
        entry_price=lot.entry_price,
        exit_price=lot.entry_price,
        entry_time=lot.entry_time,
        exit_time=lot.entry_time,
        qty=lot.qty,
        fees=lot.fee,
        pnl=0.0,
        pnl_pct=0.0,
        leverage=lot.leverage,
        notional=size.notional,
        margin=size.margin,
        status=TradeStatus.OPEN,
        is_bot=lot.is_bot,
        notes=lot.notes or note,
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@dataclass
class NettingResult:
    """Trades in production order plus the book of lots left open."""

    trades: list[Trade] = field(default_factory=list)
    book: LotBook = field(default_factory=LotBook)
    orphans: int = 0

    @property
    def closed(self) -> list[Trade]:
        return [t for t in self.trades if t.status == TradeStatus.CLOSED]

    @property
    def open(self) -> list[Trade]:
        return [t for t in self.trades if t.status == TradeStatus.OPEN]


class NettingEngine:
    """FIFO netting over one venue's fills.

    Parameters
    ----------
    venue:
        Venue display name stamped on every trade.
    epsilon:
        Quantity tolerance when preferring an exactly-sized lot.
    partial_lots:
        Split lots by quantity instead of consuming them whole.
    stable_close_ids:
        Carry the closing fill's order id as the trade's external order id.
    """

    def __init__(
        self,
        venue: str,
        *,
        epsilon: float = EPSILON,
        partial_lots: bool = False,
        stable_close_ids: bool = False,
    ) -> None:
        self._venue = venue
        self._epsilon = epsilon
        self._partial = partial_lots
        self._stable_close_ids = stable_close_ids
        self._note = f"Imported via {venue} API"

    def run(self, fills: Sequence[Fill]) -> NettingResult:
        # sorted() is stable: equal timestamps keep arrival order.
        ordered = sorted(fills, key=lambda f: f.timestamp)
        result = NettingResult(book=LotBook(self._epsilon))
        for fill in ordered:
            if fill.reports_close:
                self._close_reported(fill, result)
            else:
                self._open_or_net(fill, result)
        for lot in result.book.remaining():
            result.trades.append(_open_trade(lot, self._venue, self._note))
        logger.debug(
            "%s: %d fills -> %d closed, %d open, %d orphans",
            self._venue, len(ordered), len(result.closed), len(result.open), result.orphans,
        )
        return result

    def _external_id(self, fill: Fill) -> str | None:
        return fill.order_id if self._stable_close_ids else None

    def _consume_head(self, book: LotBook, fill: Fill, qty: float) -> tuple[Lot, str]:
        """Reduce the head lot by up to *qty* and pick the closed portion's trade id.

        The portion that empties a lot keeps the lot's id, so a trade stored
        OPEN under that id is closed in place on the next sync. Earlier split
        portions get ``{lot id}-{fill id}``.
        """
        head = book.head(fill.instrument)
        empties_lot = head is not None and qty > head.qty - self._epsilon
        portion = book.reduce_head(fill.instrument, qty)
        return portion, portion.id if empties_lot else f"{portion.id}-{fill.id}"

    # -- venue-reported close ------------------------------------------------

    def _close_reported(self, fill: Fill, result: NettingResult) -> None:
        book = result.book
        pnl = float(fill.realized_pnl or 0.0)
        if self._partial:
            self._close_reported_partial(fill, pnl, result)
            return
        if not book.has_open(fill.instrument):
            result.orphans += 1
            result.trades.append(
                _orphan_trade(
                    fill, trade_id=fill.id, qty=fill.qty, pnl=pnl, fee=fill.fee,
                    note=f"{self._note} (Orphan)", external_order_id=self._external_id(fill),
                )
            )
            return
        index = book.index_matching(fill.instrument, fill.qty)
        lot = book.take(fill.instrument, index)
        result.trades.append(
            _closed_trade(
                lot, fill, trade_id=lot.id, qty=fill.qty, pnl=pnl, exit_fee=fill.fee,
                note=self._note, external_order_id=self._external_id(fill),
            )
        )

    def _close_reported_partial(self, fill: Fill, pnl: float, result: NettingResult) -> None:
        book = result.book
        remaining = fill.qty
        if book.has_open(fill.instrument):
            index = book.index_matching(fill.instrument, fill.qty)
            if index:
                # exact-size lot found behind the head: consume it whole
                lot = book.take(fill.instrument, index)
                result.trades.append(
                    _closed_trade(
                        lot, fill, trade_id=lot.id, qty=fill.qty, pnl=pnl,
                        exit_fee=fill.fee, note=self._note, external_order_id=self._external_id(fill),
                    )
                )
                return
        while remaining > self._epsilon and book.has_open(fill.instrument):
            portion, trade_id = self._consume_head(book, fill, remaining)
            share = safe_div(portion.qty, fill.qty)
            result.trades.append(
                _closed_trade(
                    portion, fill, trade_id=trade_id, qty=portion.qty,
                    pnl=pnl * share, exit_fee=fill.fee * share, note=self._note,
                    external_order_id=self._external_id(fill),
                )
            )
            remaining -= portion.qty
        if remaining > self._epsilon:
            share = safe_div(remaining, fill.qty)
            result.orphans += 1
            result.trades.append(
                _orphan_trade(
                    fill, trade_id=fill.id, qty=remaining, pnl=pnl * share, fee=fill.fee * share,
                    note=f"{self._note} (Orphan)", external_order_id=self._external_id(fill),
                )
            )

    # -- open / auto-net -----------------------------------------------------

    def _open_or_net(self, fill: Fill, result: NettingResult) -> None:
        book = result.book
        head = book.head(fill.instrument)
        if head is None or head.direction == fill.direction:
            book.push(_lot_from_fill(fill))
            return
        note = f"{self._note} (Auto-Netted)"
        if not self._partial:
            lot = book.take(fill.instrument, 0)
            pnl = directional_pnl(lot.direction, lot.entry_price, fill.price, fill.qty)
            result.trades.append(
                _closed_trade(
                    lot, fill, trade_id=lot.id, qty=fill.qty, pnl=pnl, exit_fee=fill.fee,
                    note=note, external_order_id=self._external_id(fill),
                )
            )
            return
        remaining = fill.qty
        while remaining > self._epsilon:
            head = book.head(fill.instrument)
            if head is None or head.direction == fill.direction:
                break
            portion, trade_id = self._consume_head(book, fill, remaining)
            share = safe_div(portion.qty, fill.qty)
            pnl = directional_pnl(portion.direction, portion.entry_price, fill.price, portion.qty)
            result.trades.append(
                _closed_trade(
                    portion, fill, trade_id=trade_id, qty=portion.qty, pnl=pnl,
                    exit_fee=fill.fee * share, note=note, external_order_id=self._external_id(fill),
                )
            )
            remaining -= portion.qty
        if remaining > self._epsilon:
            # position flips: the unmatched remainder opens a new lot
            lot = _lot_from_fill(fill)
            share = safe_div(remaining, fill.qty)
            lot.qty = remaining
            lot.fee = fill.fee * share
            book.push(lot)


def net_fills(
    fills: Sequence[Fill],
    venue: str,
    *,
    epsilon: float = EPSILON,
    partial_lots: bool = False,
    stable_close_ids: bool = False,
) -> list[Trade]:
    """Net *fills* FIFO and return trades in production order."""
    engine = NettingEngine(venue, epsilon=epsilon, partial_lots=partial_lots, stable_close_ids=stable_close_ids)
    return engine.run(fills).trades
