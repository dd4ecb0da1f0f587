"""
Persist and load journal trades (SQLite). Timestamps in UTC.

The repository is the durable side of ledger_core.TradeStore: ``load_store``
rebuilds the in-memory store, ``apply`` writes back only what a merge or a
sync run changed.
"""

import json
import sqlite3
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Sequence, Union

from ledger_core.contracts import Direction, InstrumentType, Trade, TradeStatus
from ledger_core.merge import MergeResult
from ledger_core.trade_store import TradeStore

if TYPE_CHECKING:
    from data.sync import SyncReport

_COLUMNS = (
    "id", "venue", "instrument", "instrument_type", "direction",
    "entry_price", "exit_price", "entry_ts_utc", "exit_ts_utc", "qty",
    "fees", "pnl", "pnl_pct", "leverage", "notional", "margin", "status",
    "is_bot", "notes", "external_order_id", "is_orphan",
    "strategy_id", "mistakes", "initial_risk", "attachment_ids",
)

_UNSET = object()


def _utc_ts(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return _utc_ts(ts)


def _to_row(t: Trade) -> tuple:
    return (
        t.id, t.venue, t.instrument, t.instrument_type.value, t.direction.value,
        t.entry_price, t.exit_price, _utc_ts(t.entry_time).isoformat(), _utc_ts(t.exit_time).isoformat(), t.qty,
        t.fees, t.pnl, t.pnl_pct, t.leverage, t.notional, t.margin, t.status.value,
        int(t.is_bot), t.notes, t.external_order_id, int(t.is_orphan),
        t.strategy_id, json.dumps(list(t.mistakes)), t.initial_risk, json.dumps(list(t.attachment_ids)),
    )


def _from_row(row: Sequence) -> Trade:
    (
        id_, venue, instrument, itype, direction,
        entry_price, exit_price, entry_ts, exit_ts, qty,
        fees, pnl, pnl_pct, leverage, notional, margin, status,
        is_bot, notes, ext_id, is_orphan,
        strategy_id, mistakes, initial_risk, attachment_ids,
    ) = row
    return Trade(
        id=id_,
        venue=venue,
        instrument=instrument,
        instrument_type=InstrumentType(itype),
        direction=Direction(direction),
        entry_price=entry_price,
        exit_price=exit_price,
        entry_time=_parse_ts(entry_ts),
        exit_time=_parse_ts(exit_ts),
        qty=qty,
        fees=fees,
        pnl=pnl,
        pnl_pct=pnl_pct,
        leverage=leverage,
        notional=notional,
        margin=margin,
        status=TradeStatus(status),
        is_bot=bool(is_bot),
        notes=notes or "",
        external_order_id=ext_id,
        is_orphan=bool(is_orphan),
        strategy_id=strategy_id,
        mistakes=tuple(json.loads(mistakes or "[]")),
        initial_risk=initial_risk,
        attachment_ids=tuple(json.loads(attachment_ids or "[]")),
    )


class TradeRepository:
    """SQLite-backed trade storage. One file per path; rows keep insertion order."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=10.0)

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS trades (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    venue TEXT NOT NULL,
                    instrument TEXT NOT NULL,
                    instrument_type TEXT NOT NULL,
                    direction TEXT NOT NULL,
                    entry_price REAL NOT NULL,
                    exit_price REAL NOT NULL,
                    entry_ts_utc TEXT NOT NULL,
                    exit_ts_utc TEXT NOT NULL,
                    qty REAL NOT NULL,
                    fees REAL NOT NULL,
                    pnl REAL NOT NULL,
                    pnl_pct REAL NOT NULL,
                    leverage REAL NOT NULL,
                    notional REAL NOT NULL,
                    margin REAL NOT NULL,
                    status TEXT NOT NULL,
                    is_bot INTEGER NOT NULL,
                    notes TEXT NOT NULL DEFAULT '',
                    external_order_id TEXT,
                    is_orphan INTEGER NOT NULL DEFAULT 0,
                    strategy_id TEXT,
                    mistakes TEXT NOT NULL DEFAULT '[]',
                    initial_risk REAL,
                    attachment_ids TEXT NOT NULL DEFAULT '[]'
                )
                """
            )
            c.execute("CREATE INDEX IF NOT EXISTS idx_trades_venue ON trades (venue, exit_ts_utc)")

    # -- writes ---------------------------------------------------------------

    def save(self, trades: Iterable[Trade]) -> int:
        """Upsert trades by id. New ids are appended; existing rows keep their position."""
        cols = ", ".join(_COLUMNS)
        marks = ", ".join("?" for _ in _COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _COLUMNS if c != "id")
        n = 0
        with self._conn() as c:
            for t in trades:
                c.execute(
                    f"INSERT INTO trades ({cols}) VALUES ({marks}) "
                    f"ON CONFLICT(id) DO UPDATE SET {updates}",
                    _to_row(t),
                )
                n += 1
        return n

    def apply(self, result: Union[MergeResult, "SyncReport"]) -> int:
        """Persist the trades a merge (or a whole sync run) added, updated or backfilled.

        Returns rows written.
        """
        return self.save(result.changed_trades())

    def annotate(
        self,
        trade_id: str,
        *,
        notes=_UNSET,
        strategy_id=_UNSET,
        mistakes=_UNSET,
        initial_risk=_UNSET,
        attachment_ids=_UNSET,
    ) -> Trade:
        """Set user-owned fields on one trade. Raises KeyError for an unknown id."""
        trade = self.get(trade_id)
        if trade is None:
            raise KeyError(trade_id)
        changes = {}
        if notes is not _UNSET:
            changes["notes"] = notes
        if strategy_id is not _UNSET:
            changes["strategy_id"] = strategy_id
        if mistakes is not _UNSET:
            changes["mistakes"] = tuple(mistakes)
        if initial_risk is not _UNSET:
            changes["initial_risk"] = initial_risk
        if attachment_ids is not _UNSET:
            changes["attachment_ids"] = tuple(attachment_ids)
        updated = replace(trade, **changes)
        self.save([updated])
        return updated

    def delete(self, trade_ids: Iterable[str]) -> int:
        ids = list(trade_ids)
        if not ids:
            return 0
        with self._conn() as c:
            cur = c.executemany("DELETE FROM trades WHERE id = ?", [(i,) for i in ids])
            return cur.rowcount

    # -- reads ----------------------------------------------------------------

    def get(self, trade_id: str) -> Trade | None:
        with self._conn() as c:
            row = c.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM trades WHERE id = ?", (trade_id,)
            ).fetchone()
        return _from_row(row) if row else None

    def list_trades(
        self,
        *,
        venue: str | None = None,
        status: TradeStatus | None = None,
        limit: int | None = None,
    ) -> list[Trade]:
        """Trades in insertion order, optionally filtered."""
        q = f"SELECT {', '.join(_COLUMNS)} FROM trades WHERE 1 = 1"
        params: list = []
        if venue is not None:
            q += " AND venue = ?"
            params.append(venue)
        if status is not None:
            q += " AND status = ?"
            params.append(status.value)
        q += " ORDER BY seq ASC"
        if limit is not None:
            q += " LIMIT ?"
            params.append(limit)
        with self._conn() as c:
            rows = c.execute(q, params).fetchall()
        return [_from_row(r) for r in rows]

    def load_store(self) -> TradeStore:
        return TradeStore(self.list_trades())

    def count(self, venue: str | None = None) -> int:
        with self._conn() as c:
            if venue is None:
                row = c.execute("SELECT COUNT(*) FROM trades").fetchone()
            else:
                row = c.execute("SELECT COUNT(*) FROM trades WHERE venue = ?", (venue,)).fetchone()
        return row[0] if row else 0
