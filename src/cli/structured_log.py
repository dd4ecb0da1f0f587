"""
Structured JSON event logger for sync observability.

Emits one JSON object per line to stderr. Events are designed to be
parsed by log aggregators (Grafana Loki, CloudWatch, ELK).

Optional webhook: when configured, alert events (fetch_failed, error)
are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
import urllib.request
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("ledger.events")


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook.

    Safe to call from sync worker threads; each event is written as one line.
    """

    def __init__(
        self,
        source: str = "ledger",
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._source = source
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr
        self._lock = threading.Lock()
        self._ALERT_EVENTS = {
            "fetch_failed",
            "error",
        }

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "source": self._source,
            **fields,
        }
        if self._enabled:
            with self._lock:
                self._stream.write(json.dumps(record) + "\n")
                self._stream.flush()

        if self._webhook_url and event_type in self._ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        try:
            data = json.dumps(record).encode("utf-8")
            req = urllib.request.Request(
                self._webhook_url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            urllib.request.urlopen(req, timeout=5)
        except Exception as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def sync_start(self, venues: list[str]) -> dict:
        return self._emit("sync_start", venues=venues)

    def venue_fetched(self, venue: str, records: int) -> dict:
        return self._emit("venue_fetched", venue=venue, records=records)

    def fetch_failed(self, venue: str, reason: str) -> dict:
        return self._emit("fetch_failed", venue=venue, reason=reason)

    def fills_skipped(self, venue: str, count: int, reasons: list[str]) -> dict:
        return self._emit(
            "fills_skipped",
            venue=venue,
            count=count,
            reasons=reasons[:10],
        )

    def merge_complete(
        self,
        venue: str,
        added: int,
        updated: int,
        duplicate: int,
        unchanged: int,
    ) -> dict:
        return self._emit(
            "merge_complete",
            venue=venue,
            added=added,
            updated=updated,
            duplicate=duplicate,
            unchanged=unchanged,
        )

    def cleanup(self, level: str, kept: int, removed: int) -> dict:
        return self._emit("cleanup", level=level, kept=kept, removed=removed)

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)
