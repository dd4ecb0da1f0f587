"""
Fetch raw fill records from a venue. Configurable adapter; sync for MVP.

Fetchers return raw mappings untouched; all field mapping happens in
ledger_core.normalizer.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol


class FetchError(Exception):
    """Raised when a venue's fills cannot be retrieved."""


@dataclass
class FetchResult:
    """Result of a fetch: raw records and optional next cursor for pagination."""

    venue: str
    records: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: str | None = None


class FillFetcher(Protocol):
    """Protocol for fill fetchers. Implement per venue (exchange API, export file, etc.)."""

    venue: str

    def fetch(
        self,
        *,
        since: datetime | None = None,
        cursor: str | None = None,
    ) -> FetchResult:
        """Fetch raw fill records. Raises FetchError on failure."""
        ...


def _unwrap(payload: Any) -> list:
    """Pull the record list out of the usual API envelopes.

    Accepts a bare list, ``{"data": [...]}``, ``{"data": {"list": [...]}}``
    and ``{"result": {"list": [...]}}``.
    """
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        raise FetchError(f"Unexpected payload type {type(payload).__name__}")
    for key in ("data", "result"):
        inner = payload.get(key)
        if isinstance(inner, list):
            return inner
        if isinstance(inner, dict) and isinstance(inner.get("list"), list):
            return inner["list"]
    raise FetchError("No record list found in payload (expected 'data' or 'result.list')")


class JsonFileFetcher:
    """Reads a venue export saved as JSON."""

    def __init__(self, venue: str, path: str | Path) -> None:
        self.venue = venue
        self._path = Path(path)

    def fetch(
        self,
        *,
        since: datetime | None = None,
        cursor: str | None = None,
    ) -> FetchResult:
        if not self._path.exists():
            raise FetchError(f"{self.venue}: export file not found: {self._path}")
        try:
            with open(self._path) as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise FetchError(f"{self.venue}: cannot read {self._path.name}: {exc}") from exc
        try:
            records = _unwrap(payload)
        except FetchError as exc:
            raise FetchError(f"{self.venue}: {exc}") from exc
        return FetchResult(venue=self.venue, records=list(records))


class MockFillFetcher:
    """Returns canned records (or raises a canned error); for tests and dry runs."""

    def __init__(
        self,
        venue: str,
        records: list[dict[str, Any]] | None = None,
        *,
        error: Exception | None = None,
    ) -> None:
        self.venue = venue
        self._records = list(records or [])
        self._error = error
        self.calls = 0

    def fetch(
        self,
        *,
        since: datetime | None = None,
        cursor: str | None = None,
    ) -> FetchResult:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return FetchResult(venue=self.venue, records=list(self._records))
