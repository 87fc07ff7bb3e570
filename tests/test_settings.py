"""Tests for settings and logging setup."""

from __future__ import annotations

import logging
import logging.handlers

import pytest

from log_setup import LOG_FORMAT, setup_logging
from settings import Settings, get_settings, reset_settings_cache


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("BENCHMARK", "BATCH_SIZE", "CACHE_TTL", "MIN_YEARS"):
            monkeypatch.delenv(f"SCREENER_{name}", raising=False)
        settings = get_settings()
        assert settings.benchmark_symbol == "SPY"
        assert settings.batch_size == 50
        assert settings.cache_ttl_seconds == 300
        assert settings.min_years_of_data == 15
        assert settings.active_horizon_days == 30

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SCREENER_BENCHMARK", "qqq")
        monkeypatch.setenv("SCREENER_BATCH_SIZE", "20")
        monkeypatch.setenv("SCREENER_MIN_YEARS", "10")
        reset_settings_cache()
        settings = get_settings()
        assert settings.benchmark_symbol == "QQQ"
        assert settings.batch_size == 20
        assert settings.min_years_of_data == 10.0

    def test_cached_until_reset(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("SCREENER_BATCH_SIZE", "7")
        assert get_settings() is first
        reset_settings_cache()
        assert get_settings().batch_size == 7

    def test_replace(self):
        settings = Settings()
        changed = settings.replace(window_size=20)
        assert changed.window_size == 20
        assert settings.window_size == 30


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers = handlers
        root.setLevel(level)

    def test_console_handler(self):
        root = setup_logging(logging.WARNING, dev_mode=False)
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert root.handlers[0].formatter._fmt == LOG_FORMAT

    def test_dev_mode_is_verbose(self):
        root = setup_logging(logging.INFO, dev_mode=True)
        assert root.level == logging.DEBUG

    def test_level_by_name(self):
        assert setup_logging("error", dev_mode=False).level == logging.ERROR

    def test_rotating_file(self, tmp_path):
        log_file = tmp_path / "logs" / "screener.log"
        root = setup_logging(logging.INFO, dev_mode=False, log_file=log_file)
        assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers)
        logging.getLogger("screener").info("hello")
        assert "hello" in log_file.read_text()

    def test_quiet_third_party(self):
        setup_logging(dev_mode=False)
        assert logging.getLogger("yfinance").level == logging.WARNING
        assert logging.getLogger("apscheduler").level == logging.WARNING
