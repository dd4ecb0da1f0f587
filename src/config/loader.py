"""
Config loader: YAML file -> frozen dataclass tree.

The store path can be overridden from the environment (LEDGER_STORE_PATH),
typically via a .env file loaded by the CLI. Config file holds only
non-secret values.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass(frozen=True)
class StoreConfig:
    path: str = "data/trades.db"


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/journal.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class SyncConfig:
    max_workers: int = 4
    ledger_config_path: str = ""      # empty -> docs/config/ledger.default.json
    ledger_overrides_path: str = ""


@dataclass(frozen=True)
class VenueSource:
    """Where a venue's raw fills come from. Only exported JSON files for now."""

    name: str
    path: str
    enabled: bool = True


@dataclass(frozen=True)
class AppConfig:
    store: StoreConfig = StoreConfig()
    journal: JournalConfig = JournalConfig()
    alerting: AlertingConfig = AlertingConfig()
    sync: SyncConfig = SyncConfig()
    venues: tuple[VenueSource, ...] = field(default_factory=tuple)

    def enabled_venues(self) -> tuple[VenueSource, ...]:
        return tuple(v for v in self.venues if v.enabled)


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Load configuration from a YAML file.

    The store path is resolved from the environment when set:
      - LEDGER_STORE_PATH
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    s_raw = raw.get("store", {})
    store_cfg = StoreConfig(
        path=os.environ.get("LEDGER_STORE_PATH") or s_raw.get("path", "data/trades.db"),
    )

    j_raw = raw.get("journal", {})
    j_cfg = JournalConfig(
        path=j_raw.get("path", "data/journal.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = raw.get("alerting", {})
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=str(a_raw.get("webhook_url", "")),
    )

    sy_raw = raw.get("sync", {})
    sync_cfg = SyncConfig(
        max_workers=int(sy_raw.get("max_workers", 4)),
        ledger_config_path=str(sy_raw.get("ledger_config_path", "") or ""),
        ledger_overrides_path=str(sy_raw.get("ledger_overrides_path", "") or ""),
    )

    venues_raw = raw.get("venues", {}) or {}
    if not isinstance(venues_raw, dict):
        raise ValueError("'venues' must be a mapping of venue name -> source")
    venues = tuple(
        VenueSource(
            name=str(name),
            path=str((v_raw or {}).get("path", "")),
            enabled=bool((v_raw or {}).get("enabled", True)),
        )
        for name, v_raw in venues_raw.items()
    )

    return AppConfig(
        store=store_cfg,
        journal=j_cfg,
        alerting=a_cfg,
        sync=sync_cfg,
        venues=venues,
    )
