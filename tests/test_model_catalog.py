"""
Tests for the model catalog: loading, lookup, selection and cost estimation.
"""

import pytest

from switchboard.config.model_catalog import (
    MAX_SELECTED_MODELS,
    PLACEHOLDER_MODEL,
    ModelCatalog,
    ModelCatalogEntry,
    catalog_from_dict,
    default_catalog,
    estimate_cost_usd,
    load_catalog,
)


def _entry(model_id, provider="mock", **overrides):
    data = {
        "provider": provider,
        "model_id": model_id,
        "quality_tier": 3,
        "cost_tier": 1,
        "speed_tier": 3,
    }
    data.update(overrides)
    return ModelCatalogEntry.from_dict(data)


class TestLoading:
    def test_packaged_catalog(self, catalog):
        assert len(catalog) == 9
        assert catalog.default_auto_id == "gpt-4o-mini"
        assert catalog.default_compare_ids == ("gpt-4o-mini", "claude-sonnet-4-20250514", "gemini-2.5-flash")
        sonnet = catalog.get("claude-sonnet-4-20250514")
        assert sonnet.provider == "anthropic"
        assert sonnet.quality_tier == 5

    def test_mock_entries_are_free(self, catalog):
        for entry in catalog:
            if entry.provider == "mock":
                assert entry.input_usd_per_1k == 0
                assert entry.output_usd_per_1k == 0

    def test_placeholder_in_packaged_catalog(self, catalog):
        assert catalog.get(PLACEHOLDER_MODEL.model_id) == PLACEHOLDER_MODEL

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            _entry("x", provider="acme")

    def test_empty_catalog_rejected(self):
        with pytest.raises(ValueError):
            catalog_from_dict({"models": []})

    def test_load_from_path(self, tmp_path):
        path = tmp_path / "models.yaml"
        path.write_text(
            "defaults:\n"
            "  auto_model: local\n"
            "models:\n"
            "  - {provider: mock, model_id: local, quality_tier: 2, cost_tier: 1, speed_tier: 5}\n",
            encoding="utf-8",
        )
        loaded = load_catalog(path)
        assert [e.model_id for e in loaded] == ["local"]
        assert loaded.default_auto().model_id == "local"
        assert loaded.get("local").supports_json is False


class TestSelection:
    def test_resolve_selected(self, catalog):
        assert [e.model_id for e in catalog.resolve_selected(["gpt-4.1", "ghost"])] == ["gpt-4.1"]
        assert catalog.resolve_selected(None) == catalog.default_compare()
        assert catalog.resolve_selected(["ghost"]) == catalog.default_compare()

    def test_selection_capped(self, catalog):
        ids = [e.model_id for e in catalog][:6]
        assert len(catalog.resolve_selected(ids)) == MAX_SELECTED_MODELS

    def test_default_auto_falls_back_to_first_entry(self):
        tiny = ModelCatalog(entries=(_entry("a"), _entry("b")), default_auto_id="missing")
        assert tiny.default_auto().model_id == "a"
        assert tiny.default_compare() == []


class TestEnvOverrides:
    def test_default_auto_override(self, monkeypatch):
        monkeypatch.setenv("SWITCHBOARD_DEFAULT_AUTO_MODEL", "gpt-4.1")
        assert load_catalog().default_auto().model_id == "gpt-4.1"

    def test_unknown_auto_override_ignored(self, monkeypatch, caplog):
        monkeypatch.setenv("SWITCHBOARD_DEFAULT_AUTO_MODEL", "ghost")
        with caplog.at_level("WARNING"):
            assert load_catalog().default_auto_id == "gpt-4o-mini"
        assert "ghost" in caplog.text

    def test_compare_override(self, monkeypatch):
        monkeypatch.setenv("SWITCHBOARD_COMPARE_MODEL_IDS", "mock-analyst, ghost ,gpt-4.1")
        assert load_catalog().default_compare_ids == ("mock-analyst", "gpt-4.1")

    def test_compare_override_needs_two_known(self, monkeypatch):
        monkeypatch.setenv("SWITCHBOARD_COMPARE_MODEL_IDS", "mock-analyst,ghost")
        assert load_catalog().default_compare_ids == ("gpt-4o-mini", "claude-sonnet-4-20250514", "gemini-2.5-flash")

    def test_default_catalog_cached(self, monkeypatch):
        first = default_catalog()
        monkeypatch.setenv("SWITCHBOARD_DEFAULT_AUTO_MODEL", "gpt-4.1")
        assert default_catalog() is first
        default_catalog.cache_clear()
        assert default_catalog().default_auto_id == "gpt-4.1"


class TestCost:
    def test_estimate(self, catalog):
        entry = catalog.get("gpt-4.1")
        assert estimate_cost_usd(entry, 1000, 500) == pytest.approx(0.002 + 0.004)

    def test_rounded_to_six_decimals(self, catalog):
        assert estimate_cost_usd(catalog.get("gpt-4o-mini"), 1, 1) == 0.000001

    def test_free_model(self):
        assert estimate_cost_usd(PLACEHOLDER_MODEL, 10_000, 10_000) == 0
