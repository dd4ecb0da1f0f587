"""
Structured journal: append-only JSON lines. One line per sync outcome.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from ledger_core.contracts import Trade


def _serialize(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "__dict__") and not isinstance(obj, type):
        return {k: _serialize(v) for k, v in vars(obj).items() if not k.startswith("_")}
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


class JournalWriter:
    """Append-only journal. Each line is a JSON object with event type and payload."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record)) + "\n"
        with open(self._path, "a") as f:
            f.write(line)
        if self._echo:
            print(line.rstrip())

    def sync(self, venues: list[str], added: int, updated: int, duplicate: int, unchanged: int, failed: list[str], **extra: Any) -> None:
        self._write(
            "sync",
            {"venues": venues, "added": added, "updated": updated, "duplicate": duplicate, "unchanged": unchanged, "failed": failed, **extra},
        )

    def trade_added(self, trade: Trade, **extra: Any) -> None:
        self._write("trade_added", {"trade": trade, **extra})

    def trade_updated(self, trade: Trade, **extra: Any) -> None:
        self._write("trade_updated", {"trade_id": trade.id, "venue": trade.venue, "status": trade.status, "pnl": trade.pnl, "is_bot": trade.is_bot, **extra})

    def fill_skipped(self, venue: str, index: int, reason: str, **extra: Any) -> None:
        self._write("fill_skipped", {"venue": venue, "index": index, "reason": reason, **extra})

    def cleanup(self, level: str, removed: list[str], **extra: Any) -> None:
        self._write("cleanup", {"level": level, "removed": removed, **extra})
