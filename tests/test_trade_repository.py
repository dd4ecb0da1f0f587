"""Tests for SQLite trade persistence: round trip, merge apply, annotations, deletion."""

from pathlib import Path

import pytest

from ledger_core.contracts import InstrumentType, TradeStatus
from ledger_core.merge import merge_trades
from data.trade_repository import TradeRepository

from conftest import _ts, make_trade


@pytest.fixture
def repo(tmp_path: Path) -> TradeRepository:
    return TradeRepository(tmp_path / "sub" / "trades.db")


def test_save_and_load_preserves_every_field(repo: TradeRepository) -> None:
    t = make_trade(
        "t1",
        instrument_type=InstrumentType.OPTION,
        is_bot=True,
        notes="n",
        external_order_id="ext",
        is_orphan=True,
        strategy_id="s1",
        mistakes=("late", "size"),
        initial_risk=50.0,
        attachment_ids=("a1",),
    )
    repo.save([t])
    assert repo.get("t1") == t
    assert repo.count() == 1


def test_save_upserts_and_keeps_row_order(repo: TradeRepository) -> None:
    repo.save([make_trade("a"), make_trade("b", pnl=1.0)])
    repo.save([make_trade("a", pnl=99.0)])
    trades = repo.list_trades()
    assert [t.id for t in trades] == ["a", "b"]
    assert trades[0].pnl == 99.0


def test_list_filters(repo: TradeRepository) -> None:
    repo.save([
        make_trade("a", venue="MEXC"),
        make_trade("b", venue="ByBit", pnl=1.0),
        make_trade("c", venue="ByBit", pnl=0.0, status=TradeStatus.OPEN),
    ])
    assert [t.id for t in repo.list_trades(venue="ByBit")] == ["b", "c"]
    assert [t.id for t in repo.list_trades(status=TradeStatus.OPEN)] == ["c"]
    assert len(repo.list_trades(limit=2)) == 2
    assert repo.count("ByBit") == 2


def test_apply_writes_only_changed_trades(repo: TradeRepository) -> None:
    repo.save([make_trade("a", notes="")])
    result = merge_trades(repo.load_store(), [make_trade("b", pnl=5.0), make_trade("dup", notes="venue note")])
    assert repo.apply(result) == 2
    assert repo.count() == 2
    assert repo.get("a").notes == "venue note"
    assert repo.get("dup") is None


def test_annotate_then_resync_keeps_annotations(repo: TradeRepository) -> None:
    repo.save([make_trade("a", pnl=1.0)])
    repo.annotate("a", notes="thesis", strategy_id="orb", mistakes=["chased"], attachment_ids=["img-1"])
    result = merge_trades(repo.load_store(), [make_trade("a", pnl=2.0, notes="Imported via MEXC API")])
    repo.apply(result)
    stored = repo.get("a")
    assert stored.pnl == 2.0
    assert stored.notes == "thesis"
    assert stored.strategy_id == "orb"
    assert stored.mistakes == ("chased",)
    assert stored.attachment_ids == ("img-1",)


def test_annotate_unknown_id(repo: TradeRepository) -> None:
    with pytest.raises(KeyError):
        repo.annotate("missing", notes="x")


def test_delete(repo: TradeRepository) -> None:
    repo.save([make_trade("a"), make_trade("b", pnl=1.0)])
    assert repo.delete(["a", "zzz"]) == 1
    assert repo.delete([]) == 0
    assert [t.id for t in repo.list_trades()] == ["b"]


def test_timestamps_round_trip_as_utc(repo: TradeRepository) -> None:
    repo.save([make_trade("a", exit_time=_ts(2024, 5, 5, 23, 59))])
    loaded = repo.load_store().get("a")
    assert loaded.exit_time == _ts(2024, 5, 5, 23, 59)
    assert loaded.exit_time.tzinfo is not None


def test_apply_sync_report_writes_changed_trades(repo: TradeRepository, ledger_config) -> None:
    from data.fetcher import MockFillFetcher
    from data.sync import SyncCoordinator

    records = [
        {"orderId": "m1", "symbol": "BTC_USDT", "side": 1, "dealVol": 1, "dealAvgPrice": 100, "createTime": 1_704_067_200_000},
        {"orderId": "m2", "symbol": "BTC_USDT", "side": 4, "dealVol": 1, "dealAvgPrice": 110,
         "createTime": 1_704_070_800_000, "profit": 10},
    ]
    report = SyncCoordinator(ledger_config).run([MockFillFetcher("MEXC", records)], repo.load_store())
    assert repo.apply(report) == 1
    assert repo.get("m1").pnl == 10.0

    again = SyncCoordinator(ledger_config).run([MockFillFetcher("MEXC", records)], repo.load_store())
    assert repo.apply(again) == 0
