import logging

import pytest

from deltaui.config import DEFAULTS, load_config


class TestLoadConfig:
    def test_defaults(self):
        config = load_config()
        assert config["verify_state"] == "property-updates"
        assert config["minify_patches"] is True
        assert config["debug"] is False
        assert config["route_prefix"] == "/_delta"
        assert config["lenient_max_fields"] == 20
        assert config["signing_key"] == "test-signing-key"

    def test_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DELTAUI_VERIFY_STATE", "strict")
        monkeypatch.setenv("DELTAUI_DEBUG", "yes")
        monkeypatch.setenv("DELTAUI_MINIFY_PATCHES", "0")
        monkeypatch.setenv("DELTAUI_ROUTE_PREFIX", "/live")
        config = load_config()
        assert config["verify_state"] == "strict"
        assert config["debug"] is True
        assert config["minify_patches"] is False
        assert config["route_prefix"] == "/live"

    def test_overrides_win_over_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DELTAUI_VERIFY_STATE", "strict")
        config = load_config(verify_state="none", debug=True)
        assert config["verify_state"] == "none"
        assert config["debug"] is True

    def test_true_means_strict(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DELTAUI_VERIFY_STATE", "TRUE")
        assert load_config()["verify_state"] == "strict"

    def test_unknown_mode_falls_back(self, caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.WARNING, logger="deltaui.config"):
            config = load_config(verify_state="paranoid")  # type: ignore[typeddict-item]
        assert config["verify_state"] == DEFAULTS["verify_state"]
        assert "paranoid" in caplog.text

    def test_defaults_are_not_mutated(self):
        load_config(route_prefix="/elsewhere")
        assert DEFAULTS["route_prefix"] == "/_delta"
