"""
Configuration loaders.

App config:     reads config.yaml, resolves the store path from the environment.
Ledger config:  reads ledger.default.json (or override), validates against JSON Schema.
"""

from config.ledger_config import (
    ClassifierConfig,
    LedgerConfig,
    LedgerConfigError,
    MergeConfig,
    NettingConfig,
    NormalizerConfig,
    VenuePolicy,
    load_ledger_config,
)
from config.loader import (
    AlertingConfig,
    AppConfig,
    JournalConfig,
    StoreConfig,
    SyncConfig,
    VenueSource,
    load_config,
)

__all__ = [
    # App config (YAML)
    "AlertingConfig",
    "AppConfig",
    "JournalConfig",
    "StoreConfig",
    "SyncConfig",
    "VenueSource",
    "load_config",
    # Ledger config (JSON + schema)
    "ClassifierConfig",
    "LedgerConfig",
    "LedgerConfigError",
    "MergeConfig",
    "NettingConfig",
    "NormalizerConfig",
    "VenuePolicy",
    "load_ledger_config",
]
