"""
Ledger config loader: JSON file -> frozen dataclass tree, validated against JSON Schema.

Default values:      docs/config/ledger.default.json
Schema:              docs/config/ledger_config.schema.json

Overrides: pass ``overrides_path`` pointing at a partial JSON file. Only the
keys you want to change need to be present; they are deep-merged on top of
the base config before schema validation. Venue policies not listed in the
file fall back to ``VenuePolicy()`` defaults.

Usage:
    from config.ledger_config import load_ledger_config
    cfg = load_ledger_config()
    cfg.venue("MEXC").detect_bots  # -> True
    cfg.netting.epsilon            # -> 0.0001
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema

from ledger_core.contracts import InstrumentType

logger = logging.getLogger("ledger.config")

# ---------------------------------------------------------------------------
# Project root detection (walk up from this file to find pyproject.toml)
# ---------------------------------------------------------------------------


def _find_project_root() -> Path:
    """Walk up from this file looking for pyproject.toml.

    When installed as a package the file won't exist; fall back to CWD.
    """
    candidate = Path(__file__).resolve().parent
    for _ in range(10):
        if (candidate / "pyproject.toml").exists():
            return candidate
        parent = candidate.parent
        if parent == candidate:
            break
        candidate = parent
    return Path.cwd()


_PROJECT_ROOT = _find_project_root()

DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "docs" / "config" / "ledger.default.json"
DEFAULT_SCHEMA_PATH = _PROJECT_ROOT / "docs" / "config" / "ledger_config.schema.json"


# ---------------------------------------------------------------------------
# Frozen dataclass tree, mirrors ledger.default.json
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NettingConfig:
    epsilon: float = 1e-4
    partial_lots: bool = False


@dataclass(frozen=True)
class ClassifierConfig:
    bot_markers: tuple[str, ...] = ("[BBOS1]", "stoporder_")


@dataclass(frozen=True)
class NormalizerConfig:
    default_leverage: float = 1.0


@dataclass(frozen=True)
class MergeConfig:
    fuzzy_match: bool = True


@dataclass(frozen=True)
class VenuePolicy:
    """Per-venue behaviour switches."""

    instrument_type: InstrumentType = InstrumentType.CRYPTO
    detect_bots: bool = False       # tag/session bot detection (futures-style venues)
    always_bot: bool = False        # every fill is automated (spot grid venues)
    stable_close_ids: bool = False  # closing order id identifies the trade
    partial_lots: bool | None = None  # None -> NettingConfig.partial_lots


@dataclass(frozen=True)
class LedgerConfig:
    """Top-level ledger configuration."""

    version: str
    netting: NettingConfig = NettingConfig()
    classifier: ClassifierConfig = ClassifierConfig()
    normalizer: NormalizerConfig = NormalizerConfig()
    merge: MergeConfig = MergeConfig()
    venues: dict[str, VenuePolicy] = field(default_factory=dict)

    def venue(self, name: str) -> VenuePolicy:
        """Policy for *name*; unknown venues get defaults."""
        return self.venues.get(name, VenuePolicy())

    def partial_lots_for(self, name: str) -> bool:
        policy = self.venue(name)
        if policy.partial_lots is None:
            return self.netting.partial_lots
        return policy.partial_lots


# ---------------------------------------------------------------------------
# Deep merge for overrides
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overrides* into a copy of *base*.

    - Dict values are merged recursively (override keys win).
    - Non-dict values in overrides replace the base value.
    - Keys in base that are absent from overrides are preserved.
    """
    merged = dict(base)
    for key, val in overrides.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(val, dict):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class LedgerConfigError(Exception):
    """Raised when ledger config loading or validation fails."""


def _validate_schema(data: dict[str, Any], schema_path: Path) -> None:
    """Validate *data* against the JSON Schema at *schema_path*."""
    if not schema_path.exists():
        raise LedgerConfigError(f"Schema file not found: {schema_path}")
    with open(schema_path) as f:
        schema = json.load(f)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        raise LedgerConfigError(f"Ledger config validation failed: {exc.message}") from exc


def _read_json(path: Path, label: str) -> dict[str, Any]:
    try:
        with open(path) as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise LedgerConfigError(f"{label} {path.name} is not valid JSON: {exc}") from exc


def _build_config(data: dict[str, Any]) -> LedgerConfig:
    """Convert a raw dict (already validated) into the frozen dataclass tree."""
    net_raw = data.get("netting", {})
    cls_raw = data.get("classifier", {})
    norm_raw = data.get("normalizer", {})
    merge_raw = data.get("merge", {})

    venues = {
        name: VenuePolicy(
            instrument_type=InstrumentType(raw.get("instrument_type", "CRYPTO")),
            detect_bots=raw.get("detect_bots", False),
            always_bot=raw.get("always_bot", False),
            stable_close_ids=raw.get("stable_close_ids", False),
            partial_lots=raw.get("partial_lots"),
        )
        for name, raw in data.get("venues", {}).items()
    }

    return LedgerConfig(
        version=data["version"],
        netting=NettingConfig(
            epsilon=net_raw.get("epsilon", 1e-4),
            partial_lots=net_raw.get("partial_lots", False),
        ),
        classifier=ClassifierConfig(
            bot_markers=tuple(cls_raw.get("bot_markers", ["[BBOS1]", "stoporder_"])),
        ),
        normalizer=NormalizerConfig(
            default_leverage=float(norm_raw.get("default_leverage", 1.0)),
        ),
        merge=MergeConfig(fuzzy_match=merge_raw.get("fuzzy_match", True)),
        venues=venues,
    )


def load_ledger_config(
    config_path: str | Path | None = None,
    schema_path: str | Path | None = None,
    overrides_path: str | Path | None = None,
) -> LedgerConfig:
    """Load and validate ledger configuration.

    Parameters
    ----------
    config_path:
        Path to a ledger JSON config file. Defaults to ``docs/config/ledger.default.json``.
    schema_path:
        Path to the JSON Schema file. Defaults to ``docs/config/ledger_config.schema.json``.
    overrides_path:
        Optional partial JSON file deep-merged on top of the base config
        before validation.

    Raises
    ------
    LedgerConfigError
        If a file is missing, unparseable, or fails schema validation.
    """
    cfg_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    sch_path = Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH

    if not cfg_path.exists():
        raise LedgerConfigError(f"Ledger config file not found: {cfg_path}")

    data = _read_json(cfg_path, "Ledger config")

    if overrides_path:
        ov_path = Path(overrides_path)
        if not ov_path.exists():
            raise LedgerConfigError(f"Override file not found: {ov_path}")
        data = _deep_merge(data, _read_json(ov_path, "Override config"))
        logger.info("Applied ledger config overrides: %s", ov_path.name)

    _validate_schema(data, sch_path)

    return _build_config(data)
