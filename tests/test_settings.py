"""Tests for rulecell.settings module."""

import pytest
from pydantic import ValidationError

from rulecell.settings import RuleCellSettings, get_settings


class TestRuleCellSettings:
    """Defaults, environment overrides and validation."""

    def test_defaults(self, monkeypatch):
        for name in ("FETCH_TIMEOUT_SECONDS", "OWNER_KIND_LABEL", "UNIT_NAME_PREFIX", "LOG_LEVEL"):
            monkeypatch.delenv(f"RULECELL_{name}", raising=False)
        settings = RuleCellSettings()
        assert settings.fetch_timeout_seconds == 30.0
        assert settings.fetch_max_redirects == 5
        assert settings.fetch_base_url is None
        assert settings.owner_kind_label == "NCube"
        assert settings.unit_name_prefix == "RuleExp"
        assert settings.log_level == "INFO"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("RULECELL_FETCH_TIMEOUT_SECONDS", "5")
        monkeypatch.setenv("RULECELL_OWNER_KIND_LABEL", "Table")
        settings = RuleCellSettings()
        assert settings.fetch_timeout_seconds == 5.0
        assert settings.owner_kind_label == "Table"

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            RuleCellSettings(fetch_timeout_seconds=0)

    def test_redirects_cannot_be_negative(self):
        with pytest.raises(ValidationError):
            RuleCellSettings(fetch_max_redirects=-1)

    @pytest.mark.parametrize("prefix", ["1Rule", "Rule-Exp", ""])
    def test_prefix_must_be_identifier(self, prefix):
        with pytest.raises(ValidationError):
            RuleCellSettings(unit_name_prefix=prefix)

    def test_log_level_is_restricted(self):
        with pytest.raises(ValidationError):
            RuleCellSettings(log_level="TRACE")


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_cache_clear_rereads_environment(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("RULECELL_UNIT_NAME_PREFIX", "Cell")
        get_settings.cache_clear()
        second = get_settings()
        assert second is not first
        assert second.unit_name_prefix == "Cell"
