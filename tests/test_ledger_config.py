"""Tests for ledger config loader: JSON loading, schema validation, frozen dataclass tree."""

import dataclasses
import json
from pathlib import Path

import pytest

from config.ledger_config import (
    DEFAULT_CONFIG_PATH,
    LedgerConfig,
    LedgerConfigError,
    VenuePolicy,
    _deep_merge,
    load_ledger_config,
)
from ledger_core.contracts import InstrumentType


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _default_raw() -> dict:
    """Return the canonical default config as a dict for mutation in tests."""
    with open(DEFAULT_CONFIG_PATH) as f:
        return json.load(f)


def _write_json(data: dict, dir_path: Path, name: str = "test_ledger.json") -> Path:
    p = dir_path / name
    p.write_text(json.dumps(data))
    return p


# ---------------------------------------------------------------------------
# Loading the default config
# ---------------------------------------------------------------------------


class TestLoadDefault:
    """Load docs/config/ledger.default.json and verify the dataclass tree."""

    def test_loads_successfully(self) -> None:
        cfg = load_ledger_config()
        assert isinstance(cfg, LedgerConfig)
        assert cfg.version == "0.1"

    def test_netting_and_classifier(self) -> None:
        cfg = load_ledger_config()
        assert cfg.netting.epsilon == pytest.approx(1e-4)
        assert cfg.netting.partial_lots is False
        assert cfg.classifier.bot_markers == ("[BBOS1]", "stoporder_")
        assert cfg.normalizer.default_leverage == 1.0
        assert cfg.merge.fuzzy_match is True

    def test_venue_policies(self) -> None:
        cfg = load_ledger_config()
        assert cfg.venue("MEXC").detect_bots is True
        assert cfg.venue("MEXC").instrument_type == InstrumentType.FUTURES
        assert cfg.venue("MEXC Spot").always_bot is True
        assert cfg.venue("Schwab").stable_close_ids is True
        assert cfg.partial_lots_for("Schwab") is True
        assert cfg.partial_lots_for("MEXC") is False

    def test_unknown_venue_gets_defaults(self) -> None:
        cfg = load_ledger_config()
        assert cfg.venue("Kraken") == VenuePolicy()


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------


class TestLoadOverride:

    def test_override_merges_on_top_of_default(self, tmp_path: Path) -> None:
        ov = _write_json({"netting": {"partial_lots": True}, "venues": {"Kraken": {"instrument_type": "SPOT"}}}, tmp_path)
        cfg = load_ledger_config(overrides_path=ov)
        assert cfg.netting.partial_lots is True
        assert cfg.netting.epsilon == pytest.approx(1e-4)
        assert cfg.venue("Kraken").instrument_type == InstrumentType.SPOT
        assert cfg.venue("MEXC").detect_bots is True
        assert cfg.partial_lots_for("Kraken") is True

    def test_custom_markers(self, tmp_path: Path) -> None:
        data = _default_raw()
        data["classifier"]["bot_markers"] = ["algo:"]
        cfg = load_ledger_config(config_path=_write_json(data, tmp_path))
        assert cfg.classifier.bot_markers == ("algo:",)

    def test_missing_override_file(self, tmp_path: Path) -> None:
        with pytest.raises(LedgerConfigError, match="Override file not found"):
            load_ledger_config(overrides_path=tmp_path / "nope.json")


# ---------------------------------------------------------------------------
# Schema rejection
# ---------------------------------------------------------------------------


class TestSchemaRejection:

    def test_missing_required_section(self, tmp_path: Path) -> None:
        data = _default_raw()
        del data["netting"]
        with pytest.raises(LedgerConfigError, match="validation failed"):
            load_ledger_config(config_path=_write_json(data, tmp_path))

    def test_unknown_venue_key(self, tmp_path: Path) -> None:
        data = _default_raw()
        data["venues"]["MEXC"]["api_key"] = "secret"
        with pytest.raises(LedgerConfigError):
            load_ledger_config(config_path=_write_json(data, tmp_path))

    def test_invalid_instrument_type(self, tmp_path: Path) -> None:
        data = _default_raw()
        data["venues"]["ByBit"]["instrument_type"] = "BOND"
        with pytest.raises(LedgerConfigError):
            load_ledger_config(config_path=_write_json(data, tmp_path))

    def test_non_positive_epsilon(self, tmp_path: Path) -> None:
        data = _default_raw()
        data["netting"]["epsilon"] = 0
        with pytest.raises(LedgerConfigError):
            load_ledger_config(config_path=_write_json(data, tmp_path))


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


class TestErrorHandling:

    def test_missing_config_file(self) -> None:
        with pytest.raises(LedgerConfigError, match="not found"):
            load_ledger_config(config_path="/nonexistent/ledger.json")

    def test_missing_schema_file(self, tmp_path: Path) -> None:
        with pytest.raises(LedgerConfigError, match="Schema file not found"):
            load_ledger_config(schema_path=tmp_path / "missing.schema.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        p = tmp_path / "broken.json"
        p.write_text("{not json")
        with pytest.raises(LedgerConfigError, match="not valid JSON"):
            load_ledger_config(config_path=p)


class TestImmutability:

    def test_frozen(self) -> None:
        cfg = load_ledger_config()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.netting.epsilon = 1.0  # type: ignore[misc]


class TestDeepMerge:

    def test_nested_override(self) -> None:
        base = {"a": {"b": 1, "c": 2}}
        assert _deep_merge(base, {"a": {"c": 3}}) == {"a": {"b": 1, "c": 3}}

    def test_original_not_mutated(self) -> None:
        base = {"a": {"b": 1}}
        _deep_merge(base, {"a": {"b": 2}})
        assert base == {"a": {"b": 1}}
