"""
Unit Tests for Configuration and Logging
Tests settings defaults, environment overrides and log routing
"""

import logging
from decimal import Decimal

import pytest
from loguru import logger
from pydantic import ValidationError

from src.core.config import CoverageSettings
from src.core.enums import UnknownKindPolicy
from src.utils.logging import InterceptHandler, setup_logging, setup_logging_from_settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Test default configuration values"""

    def test_defaults(self, settings):
        """Test documented defaults"""
        assert settings.UNKNOWN_CONDITION_POLICY == UnknownKindPolicy.PERMISSIVE
        assert settings.UNKNOWN_ACTION_POLICY == UnknownKindPolicy.PERMISSIVE
        assert settings.APPLY_BUSINESS_RULES is True
        assert settings.REQUIRE_SUPPLEMENTARY_TARIFF is True
        assert settings.FUTURE_DATE_TOLERANCE_DAYS == 1
        assert settings.MAX_SERVICE_AMOUNT == Decimal("100000000")
        assert settings.CACHE_TTL_SECONDS == 900
        assert settings.CACHE_MAX_ITEMS == 1000
        assert settings.MONITOR_MAX_CALCULATION_EVENTS == 1000
        assert settings.MONITOR_MAX_ERROR_EVENTS == 500
        assert settings.LOG_LEVEL == "INFO"

    def test_policy_properties(self):
        """Test reject helpers follow the policies"""
        settings = CoverageSettings(
            _env_file=None,
            UNKNOWN_CONDITION_POLICY="reject",
            UNKNOWN_ACTION_POLICY="permissive",
        )

        assert settings.rejects_unknown_conditions is True
        assert settings.rejects_unknown_actions is False


@pytest.mark.unit
class TestSettingsValidation:
    """Test configuration validation"""

    def test_environment_override(self, monkeypatch):
        """Test COVERAGE_ prefixed variables are read"""
        monkeypatch.setenv("COVERAGE_CACHE_TTL_SECONDS", "60")
        monkeypatch.setenv("COVERAGE_UNKNOWN_ACTION_POLICY", "reject")

        settings = CoverageSettings(_env_file=None)

        assert settings.CACHE_TTL_SECONDS == 60
        assert settings.rejects_unknown_actions is True

    def test_log_level_normalised(self):
        """Test log level is upper-cased"""
        assert CoverageSettings(_env_file=None, LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_unknown_log_level(self):
        """Test unknown log level is rejected"""
        with pytest.raises(ValidationError):
            CoverageSettings(_env_file=None, LOG_LEVEL="verbose")

    @pytest.mark.parametrize(
        "field,value",
        [("CACHE_TTL_SECONDS", 0), ("MAX_SERVICE_AMOUNT", "0"), ("UNKNOWN_CONDITION_POLICY", "maybe")],
    )
    def test_invalid_values(self, field, value):
        """Test out-of-range values are rejected"""
        with pytest.raises(ValidationError):
            CoverageSettings(_env_file=None, **{field: value})


@pytest.fixture
def restore_logging():
    """Restore stdlib and loguru handlers after a logging test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    logger.remove()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
class TestLoggingSetup:
    """Test loguru configuration"""

    def test_stdlib_records_reach_file(self, tmp_path, restore_logging):
        """Test engine loggers are routed into the loguru file sink"""
        log_file = tmp_path / "logs" / "engine.log"

        setup_logging(level="INFO", log_file=str(log_file))
        logging.getLogger("src.services.coverage.orchestrator").warning("tariff missing")
        logging.getLogger("src.services.coverage.rule_engine").debug("below threshold")
        logger.remove()

        content = log_file.read_text()
        assert "tariff missing" in content
        assert "below threshold" not in content
        assert any(isinstance(h, InterceptHandler) for h in logging.getLogger().handlers)

    def test_setup_from_settings(self, tmp_path, restore_logging):
        """Test settings drive level and file"""
        log_file = tmp_path / "engine.log"
        settings = CoverageSettings(_env_file=None, LOG_LEVEL="debug", LOG_FILE=str(log_file))

        setup_logging_from_settings(settings)
        logging.getLogger("src.services.coverage.rule_engine").debug("rule applied")
        logger.remove()

        assert "rule applied" in log_file.read_text()
