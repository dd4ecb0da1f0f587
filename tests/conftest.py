"""Pytest fixtures: fills, trades and configs for deterministic tests."""

from datetime import datetime, timezone

import pytest

from config.ledger_config import LedgerConfig, VenuePolicy, load_ledger_config
from ledger_core.contracts import Direction, Fill, InstrumentType, Trade, TradeStatus


def _ts(year: int, month: int, day: int, hour: int = 9, minute: int = 30, second: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)


def make_fill(
    id: str,
    direction: Direction,
    price: float,
    qty: float,
    ts: datetime,
    *,
    instrument: str = "BTC_USDT",
    venue: str = "MEXC",
    pnl: float | None = None,
    fee: float = 0.0,
    leverage: float = 1.0,
    notional: float | None = None,
    order_id: str | None = None,
    tag: str = "",
    is_bot: bool = False,
) -> Fill:
    return Fill(
        id=id,
        venue=venue,
        instrument=instrument,
        direction=direction,
        price=price,
        qty=qty,
        timestamp=ts,
        fee=fee,
        realized_pnl=pnl,
        leverage=leverage,
        notional=notional,
        order_id=order_id,
        tag=tag,
        is_bot=is_bot,
    )


def make_trade(
    id: str,
    *,
    venue: str = "MEXC",
    instrument: str = "BTC_USDT",
    pnl: float = 10.0,
    qty: float = 1.0,
    exit_time: datetime | None = None,
    status: TradeStatus = TradeStatus.CLOSED,
    **extra,
) -> Trade:
    exit_time = exit_time or _ts(2024, 3, 1, 15)
    fields = dict(
        id=id,
        venue=venue,
        instrument=instrument,
        direction=Direction.LONG,
        entry_price=100.0,
        exit_price=110.0,
        entry_time=_ts(2024, 3, 1, 10),
        exit_time=exit_time,
        qty=qty,
        status=status,
        pnl=pnl,
        margin=100.0,
    )
    fields.update(extra)
    return Trade(**fields)


@pytest.fixture
def ts():
    return _ts


@pytest.fixture
def fill_factory():
    return make_fill


@pytest.fixture
def trade_factory():
    return make_trade


@pytest.fixture
def ledger_config() -> LedgerConfig:
    """The shipped default ledger config (MEXC, MEXC Spot, ByBit, Schwab)."""
    return load_ledger_config()


@pytest.fixture
def plain_config() -> LedgerConfig:
    """Minimal config with one policy-free venue."""
    return LedgerConfig(version="test", venues={"Test": VenuePolicy(instrument_type=InstrumentType.CRYPTO)})
