"""Tests for settings loading and logging setup."""

import logging
from decimal import Decimal

import pytest
import structlog
from pydantic import ValidationError as SettingsError

from giftflow.domain.exceptions import CommitInProgress, FatalError, TransientError
from giftflow.infrastructure.config import Settings, get_settings
from giftflow.infrastructure.logging import configure_logging


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("GIFTFLOW_DATA_DIR", "GIFTFLOW_LOG_LEVEL", "GIFTFLOW_CURRENCY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


class TestSettings:

    def test_defaults(self, clean_env, tmp_path):
        settings = Settings()
        assert settings.data_dir.resolve() == (tmp_path / "data").resolve()
        assert settings.log_level == "INFO"
        assert settings.default_min_contribution == Decimal("5.00")
        assert [t.id for t in settings.fallback_tiers()] == ["standard", "expedited"]
        assert settings.commit_retry.attempt_timeout == 30.0

    def test_environment_overrides(self, clean_env, tmp_path):
        clean_env.setenv("GIFTFLOW_DATA_DIR", str(tmp_path / "elsewhere"))
        clean_env.setenv("GIFTFLOW_LOG_LEVEL", "debug")
        clean_env.setenv("GIFTFLOW_CURRENCY", "eur")
        clean_env.setenv("GIFTFLOW_COMMIT_RETRY__MAX_ATTEMPTS", "6")

        settings = get_settings()
        assert settings.data_dir == (tmp_path / "elsewhere").resolve()
        assert settings.log_level == "DEBUG"
        assert settings.currency == "EUR"
        assert settings.commit_policy().max_attempts == 6

    def test_unknown_log_level_rejected(self, clean_env):
        clean_env.setenv("GIFTFLOW_LOG_LEVEL", "chatty")
        with pytest.raises(SettingsError):
            Settings()

    def test_settings_are_cached(self, clean_env):
        assert get_settings() is get_settings()

    def test_fulfillment_policy_retries_whole_unit(self, clean_env):
        policy = Settings(fulfillment_attempts=5).fulfillment_policy()
        assert policy.max_attempts == 5
        assert set(policy.retry_on) == {FatalError, CommitInProgress, TransientError}

    def test_refund_policy_has_attempt_timeout(self, clean_env):
        assert Settings().refund_policy().attempt_timeout == 15.0


class TestConfigureLogging:

    @pytest.fixture(autouse=True)
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    def test_sets_root_level_and_single_handler(self):
        configure_logging("warning")
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_json_output_uses_json_renderer(self):
        configure_logging("INFO", json_output=True)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
