"""Tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from salonbook.config import AppConfig, LedgerConfig, SchedulingConfig, _validate_config


def config_with(scheduling=None, ledger=None):
    return AppConfig(
        scheduling=scheduling or SchedulingConfig(),
        ledger=ledger or LedgerConfig(),
    )


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        _validate_config(AppConfig())  # should not raise

    def test_unknown_timezone(self):
        config = config_with(scheduling=replace(SchedulingConfig(), default_timezone="Nowhere/City"))
        with pytest.raises(ValueError, match="DEFAULT_TIMEZONE"):
            _validate_config(config)

    def test_negative_slot_step(self):
        config = config_with(scheduling=replace(SchedulingConfig(), slot_step_minutes=-15))
        with pytest.raises(ValueError, match="SLOT_STEP_MINUTES"):
            _validate_config(config)

    def test_zero_week_window(self):
        config = config_with(scheduling=replace(SchedulingConfig(), week_window_days=0))
        with pytest.raises(ValueError, match="WEEK_WINDOW_DAYS"):
            _validate_config(config)

    def test_zero_popular_limit(self):
        config = config_with(scheduling=replace(SchedulingConfig(), popular_services_limit=0))
        with pytest.raises(ValueError, match="POPULAR_SERVICES_LIMIT"):
            _validate_config(config)

    def test_non_positive_lock_timeout(self):
        config = config_with(ledger=replace(LedgerConfig(), lock_timeout_seconds=0))
        with pytest.raises(ValueError, match="LOCK_TIMEOUT_SECONDS"):
            _validate_config(config)

    def test_max_page_size_below_default(self):
        config = config_with(ledger=replace(LedgerConfig(), default_page_size=20, max_page_size=10))
        with pytest.raises(ValueError, match="MAX_PAGE_SIZE"):
            _validate_config(config)

    def test_configs_are_frozen(self):
        with pytest.raises(AttributeError):
            SchedulingConfig().slot_step_minutes = 5


class TestEnvParsing:
    def test_safe_int_default(self):
        from salonbook.config import _safe_int

        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_int_bad_value(self, monkeypatch):
        from salonbook.config import _safe_int

        monkeypatch.setenv("SALONBOOK_TEST_INT", "ten")
        with pytest.raises(ValueError, match="SALONBOOK_TEST_INT"):
            _safe_int("SALONBOOK_TEST_INT", "1")

    def test_safe_float_default(self):
        from salonbook.config import _safe_float

        assert _safe_float("NONEXISTENT_VAR_12345", "2.5") == pytest.approx(2.5)

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("YES", True), ("1", True), ("off", False), ("0", False),
    ])
    def test_safe_bool(self, monkeypatch, raw, expected):
        from salonbook.config import _safe_bool

        monkeypatch.setenv("SALONBOOK_TEST_FLAG", raw)
        assert _safe_bool("SALONBOOK_TEST_FLAG", "false") is expected

    def test_safe_bool_rejects_garbage(self, monkeypatch):
        from salonbook.config import _safe_bool

        monkeypatch.setenv("SALONBOOK_TEST_FLAG", "maybe")
        with pytest.raises(ValueError, match="Invalid boolean"):
            _safe_bool("SALONBOOK_TEST_FLAG", "false")
