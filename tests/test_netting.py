"""Tests for FIFO position netting: reported closes, orphans, auto-netting, partial lots."""

import pytest

from ledger_core.contracts import Direction, Lot, TradeStatus
from ledger_core.netting import LotBook, NettingEngine, net_fills, size_position

from conftest import _ts, make_fill

LONG, SHORT = Direction.LONG, Direction.SHORT


# ---------------------------------------------------------------------------
# Whole-lot mode
# ---------------------------------------------------------------------------


def test_open_then_reported_close_yields_one_closed_trade() -> None:
    fills = [
        make_fill("a1", LONG, 100.0, 10, _ts(2024, 1, 2, 10)),
        make_fill("a2", SHORT, 110.0, 10, _ts(2024, 1, 2, 11), pnl=100.0),
    ]
    trades = net_fills(fills, "MEXC")
    assert len(trades) == 1
    t = trades[0]
    assert t.id == "a1"
    assert t.status == TradeStatus.CLOSED
    assert (t.entry_price, t.exit_price, t.qty, t.pnl) == (100.0, 110.0, 10, 100.0)
    assert t.direction == LONG
    assert t.entry_time < t.exit_time


def test_fifo_consumes_oldest_lot_first() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 10, _ts(2024, 1, 2, 10)),
        make_fill("o2", LONG, 101.0, 5, _ts(2024, 1, 2, 11)),
        make_fill("c1", SHORT, 105.0, 10, _ts(2024, 1, 2, 12), pnl=50.0),
    ]
    result = NettingEngine("MEXC").run(fills)
    closed, open_ = result.closed, result.open
    assert [t.id for t in closed] == ["o1"]
    assert [t.id for t in open_] == ["o2"]
    assert open_[0].qty == 5
    assert result.book.open_quantity("BTC_USDT") == 5


def test_reported_close_prefers_exact_quantity_lot() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 3, _ts(2024, 1, 2, 10)),
        make_fill("o2", LONG, 102.0, 7, _ts(2024, 1, 2, 11)),
        make_fill("c1", SHORT, 105.0, 7, _ts(2024, 1, 2, 12), pnl=21.0),
    ]
    trades = net_fills(fills, "MEXC")
    closed = [t for t in trades if t.is_closed]
    assert [t.id for t in closed] == ["o2"]
    assert [t.id for t in trades if not t.is_closed] == ["o1"]


def test_mismatched_close_still_consumes_whole_head_lot() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 10, _ts(2024, 1, 2, 10)),
        make_fill("c1", SHORT, 105.0, 4, _ts(2024, 1, 2, 12), pnl=20.0),
    ]
    trades = net_fills(fills, "MEXC")
    assert len(trades) == 1
    assert trades[0].qty == 4
    assert trades[0].is_closed


def test_orphan_close_has_equal_prices_and_marker() -> None:
    fills = [make_fill("c1", SHORT, 105.0, 2, _ts(2024, 1, 2, 12), pnl=-8.0)]
    trades = net_fills(fills, "MEXC")
    assert len(trades) == 1
    t = trades[0]
    assert t.is_orphan
    assert t.status == TradeStatus.CLOSED
    assert t.entry_price == t.exit_price == 105.0
    assert t.pnl == -8.0
    assert "Orphan" in t.notes


def test_auto_net_long_computes_directional_pnl() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 2, _ts(2024, 1, 2, 10)),
        make_fill("c1", SHORT, 104.0, 2, _ts(2024, 1, 2, 11)),
    ]
    t = net_fills(fills, "ByBit")[0]
    assert t.pnl == pytest.approx(8.0)
    assert t.direction == LONG
    assert "Auto-Netted" in t.notes


def test_auto_net_short_computes_directional_pnl() -> None:
    fills = [
        make_fill("o1", SHORT, 100.0, 2, _ts(2024, 1, 2, 10)),
        make_fill("c1", LONG, 104.0, 2, _ts(2024, 1, 2, 11)),
    ]
    t = net_fills(fills, "ByBit")[0]
    assert t.pnl == pytest.approx(-8.0)
    assert t.direction == SHORT


def test_same_direction_fills_stack_as_lots() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 1, _ts(2024, 1, 2, 10)),
        make_fill("o2", LONG, 101.0, 1, _ts(2024, 1, 2, 11)),
    ]
    trades = net_fills(fills, "ByBit")
    assert [t.status for t in trades] == [TradeStatus.OPEN, TradeStatus.OPEN]
    assert all(t.entry_time == t.exit_time and t.pnl == 0 for t in trades)


def test_unordered_input_is_sorted_and_instruments_are_independent() -> None:
    fills = [
        make_fill("c1", SHORT, 110.0, 1, _ts(2024, 1, 2, 12), pnl=10.0),
        make_fill("e1", LONG, 50.0, 1, _ts(2024, 1, 2, 9), instrument="ETH_USDT"),
        make_fill("o1", LONG, 100.0, 1, _ts(2024, 1, 2, 10)),
    ]
    trades = net_fills(fills, "MEXC")
    assert [(t.id, t.status) for t in trades] == [("o1", TradeStatus.CLOSED), ("e1", TradeStatus.OPEN)]


def test_equal_timestamps_keep_arrival_order() -> None:
    t0 = _ts(2024, 1, 2, 10)
    fills = [
        make_fill("a1", LONG, 100.0, 10, t0),
        make_fill("a2", SHORT, 110.0, 10, t0, pnl=100.0),
    ]
    trades = net_fills(fills, "MEXC")
    assert len(trades) == 1 and trades[0].id == "a1"


def test_fees_and_percentages() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 10, _ts(2024, 1, 2, 10), fee=1.0, leverage=10, notional=1000.0),
        make_fill("c1", SHORT, 110.0, 10, _ts(2024, 1, 2, 11), fee=1.5, pnl=100.0),
    ]
    t = net_fills(fills, "MEXC")[0]
    assert t.fees == pytest.approx(2.5)
    assert t.notional == pytest.approx(1000.0)
    assert t.margin == pytest.approx(100.0)
    assert t.pnl_pct == pytest.approx(100.0)


def test_zero_leverage_and_zero_price_yield_zero_pct() -> None:
    assert size_position(1, None, 0.0, 10, 5.0).pnl_pct == 0.0
    assert size_position(1, None, 100.0, 0, 5.0).pnl_pct == 0.0


def test_bot_flag_comes_from_either_leg() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 1, _ts(2024, 1, 2, 10)),
        make_fill("c1", SHORT, 101.0, 1, _ts(2024, 1, 2, 11), pnl=1.0, is_bot=True),
        make_fill("o2", LONG, 100.0, 1, _ts(2024, 1, 2, 12), is_bot=True),
    ]
    trades = net_fills(fills, "MEXC")
    assert [t.is_bot for t in trades] == [True, True]


def test_stable_close_ids_carry_closing_order_id() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 1, _ts(2024, 1, 2, 10)),
        make_fill("c1", SHORT, 101.0, 1, _ts(2024, 1, 2, 11), pnl=1.0, order_id="ord-9"),
    ]
    assert net_fills(fills, "Schwab", stable_close_ids=True)[0].external_order_id == "ord-9"
    assert net_fills(fills, "Schwab")[0].external_order_id is None


# ---------------------------------------------------------------------------
# Partial-lot mode
# ---------------------------------------------------------------------------


def test_partial_close_spans_lots_with_pro_rata_pnl() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 4, _ts(2024, 1, 2, 10)),
        make_fill("o2", LONG, 102.0, 6, _ts(2024, 1, 2, 11)),
        make_fill("c1", SHORT, 110.0, 8, _ts(2024, 1, 2, 12), pnl=80.0),
    ]
    result = NettingEngine("Schwab", partial_lots=True).run(fills)
    closed = result.closed
    assert [t.id for t in closed] == ["o1", "o2-c1"]
    assert [t.qty for t in closed] == [4, 4]
    assert [t.pnl for t in closed] == [pytest.approx(40.0), pytest.approx(40.0)]
    assert [t.id for t in result.open] == ["o2"]
    assert result.open[0].qty == pytest.approx(2)


def test_partial_close_that_empties_a_lot_keeps_the_lot_id() -> None:
    opens = [
        make_fill("o1", LONG, 100.0, 10, _ts(2024, 1, 2, 10)),
        make_fill("o2", LONG, 101.0, 3, _ts(2024, 1, 2, 11)),
    ]
    engine = NettingEngine("Schwab", partial_lots=True)
    assert [t.id for t in engine.run(opens).open] == ["o1", "o2"]

    closes = [
        make_fill("c1", SHORT, 105.0, 4, _ts(2024, 1, 3, 10), pnl=20.0),
        make_fill("c2", SHORT, 106.0, 6, _ts(2024, 1, 4, 10), pnl=36.0),
        make_fill("c3", SHORT, 107.0, 3, _ts(2024, 1, 4, 11), pnl=18.0),
    ]
    result = engine.run(opens + closes)
    assert [(t.id, t.qty) for t in result.closed] == [("o1-c1", 4), ("o1", 6), ("o2", 3)]
    assert result.open == []


def test_partial_close_exact_lot_behind_head_keeps_the_lot_id() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 10, _ts(2024, 1, 2, 10)),
        make_fill("o2", LONG, 101.0, 3, _ts(2024, 1, 2, 11)),
        make_fill("c1", SHORT, 105.0, 3, _ts(2024, 1, 2, 12), pnl=12.0),
    ]
    result = NettingEngine("Schwab", partial_lots=True).run(fills)
    assert [t.id for t in result.closed] == ["o2"]
    assert [t.id for t in result.open] == ["o1"]


def test_partial_close_remainder_becomes_orphan() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 2, _ts(2024, 1, 2, 10)),
        make_fill("c1", SHORT, 110.0, 5, _ts(2024, 1, 2, 12), pnl=50.0),
    ]
    result = NettingEngine("Schwab", partial_lots=True).run(fills)
    assert [t.id for t in result.trades] == ["o1", "c1"]
    orphan = result.trades[1]
    assert orphan.is_orphan
    assert orphan.qty == pytest.approx(3)
    assert orphan.pnl == pytest.approx(30.0)
    assert result.orphans == 1


def test_partial_auto_net_flips_position() -> None:
    fills = [
        make_fill("o1", LONG, 100.0, 2, _ts(2024, 1, 2, 10)),
        make_fill("s1", SHORT, 90.0, 5, _ts(2024, 1, 2, 11)),
    ]
    result = NettingEngine("Schwab", partial_lots=True).run(fills)
    assert [(t.id, t.status) for t in result.trades] == [("o1", TradeStatus.CLOSED), ("s1", TradeStatus.OPEN)]
    assert result.closed[0].pnl == pytest.approx(-20.0)
    assert result.open[0].direction == SHORT
    assert result.open[0].qty == pytest.approx(3)


# ---------------------------------------------------------------------------
# LotBook
# ---------------------------------------------------------------------------


def _lot(id: str, qty: float) -> Lot:
    return Lot(id=id, instrument="X", direction=LONG, entry_time=_ts(2024, 1, 1), entry_price=1.0, qty=qty, fee=1.0)


def test_lotbook_reduce_head_never_goes_negative() -> None:
    book = LotBook()
    book.push(_lot("a", 2))
    portion = book.reduce_head("X", 5)
    assert portion.qty == 2
    assert portion.fee == pytest.approx(1.0)
    assert not book.has_open("X")


def test_lotbook_index_matching_falls_back_to_head() -> None:
    book = LotBook()
    book.push(_lot("a", 2))
    book.push(_lot("b", 3))
    assert book.index_matching("X", 3.00001) == 1
    assert book.index_matching("X", 7) == 0
    assert book.take("X", 1).id == "b"
    assert [l.id for l in book.remaining()] == ["a"]
