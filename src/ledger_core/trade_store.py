"""
TradeStore: the trade collection, indexed by id and by every fingerprint.

Each fingerprint index maps a key to the ids registered under it in
insertion order; lookups return the first. The store is an explicit value:
``copy()`` gives an independent store so merges can stay pure.
"""

from __future__ import annotations

from typing import Callable, Hashable, Iterable, Iterator, Optional

from ledger_core.contracts import Trade
from ledger_core.fingerprints import (
    content_fingerprint,
    external_key,
    fuzzy_fingerprint,
    normalized_fingerprint,
)


class _Index:
    """key -> ids, oldest registration first."""

    def __init__(self, key_fn: Callable[[Trade], Optional[Hashable]]) -> None:
        self._key_fn = key_fn
        self._ids: dict[Hashable, list[str]] = {}

    def add(self, trade: Trade) -> None:
        key = self._key_fn(trade)
        if key is None:
            return
        ids = self._ids.setdefault(key, [])
        if trade.id not in ids:
            ids.append(trade.id)

    def discard(self, trade: Trade) -> None:
        key = self._key_fn(trade)
        ids = self._ids.get(key) if key is not None else None
        if not ids:
            return
        if trade.id in ids:
            ids.remove(trade.id)
        if not ids:
            del self._ids[key]

    def first(self, trade: Trade) -> Optional[str]:
        key = self._key_fn(trade)
        if key is None:
            return None
        ids = self._ids.get(key)
        return ids[0] if ids else None

    def copy(self) -> "_Index":
        clone = _Index(self._key_fn)
        clone._ids = {k: list(v) for k, v in self._ids.items()}
        return clone


class TradeStore:
    """Ordered trade collection with id and fingerprint lookups."""

    def __init__(self, trades: Iterable[Trade] = ()) -> None:
        self._trades: dict[str, Trade] = {}
        self._external = _Index(external_key)
        self._content = _Index(content_fingerprint)
        self._normalized = _Index(normalized_fingerprint)
        self._fuzzy = _Index(fuzzy_fingerprint)
        for trade in trades:
            self.put(trade)

    # -- container protocol ---------------------------------------------------

    def __len__(self) -> int:
        return len(self._trades)

    def __iter__(self) -> Iterator[Trade]:
        return iter(list(self._trades.values()))

    def __contains__(self, trade_id: object) -> bool:
        return trade_id in self._trades

    def get(self, trade_id: str) -> Optional[Trade]:
        return self._trades.get(trade_id)

    def ids(self) -> list[str]:
        return list(self._trades)

    def copy(self) -> "TradeStore":
        clone = TradeStore()
        clone._trades = dict(self._trades)
        clone._external = self._external.copy()
        clone._content = self._content.copy()
        clone._normalized = self._normalized.copy()
        clone._fuzzy = self._fuzzy.copy()
        return clone

    # -- mutation -------------------------------------------------------------

    def _indexes(self) -> tuple[_Index, ...]:
        return (self._external, self._content, self._normalized, self._fuzzy)

    def put(self, trade: Trade) -> None:
        """Insert or replace by id; fingerprint indexes follow the new value."""
        previous = self._trades.get(trade.id)
        if previous is not None:
            for index in self._indexes():
                index.discard(previous)
        self._trades[trade.id] = trade
        for index in self._indexes():
            index.add(trade)

    def remove(self, trade_id: str) -> Optional[Trade]:
        trade = self._trades.pop(trade_id, None)
        if trade is not None:
            for index in self._indexes():
                index.discard(trade)
        return trade

    # -- fingerprint lookups --------------------------------------------------

    def by_external_id(self, trade: Trade) -> Optional[Trade]:
        return self._resolve(self._external.first(trade))

    def by_content(self, trade: Trade) -> Optional[Trade]:
        return self._resolve(self._content.first(trade))

    def by_normalized(self, trade: Trade) -> Optional[Trade]:
        return self._resolve(self._normalized.first(trade))

    def by_fuzzy(self, trade: Trade) -> Optional[Trade]:
        return self._resolve(self._fuzzy.first(trade))

    def _resolve(self, trade_id: Optional[str]) -> Optional[Trade]:
        return self._trades.get(trade_id) if trade_id is not None else None
