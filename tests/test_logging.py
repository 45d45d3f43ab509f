"""Tests for structlog configuration."""

import pytest
import structlog

from flagpole.logging import get_logger, setup_logging
from flagpole.settings import Settings


@pytest.fixture(autouse=True)
def restore_structlog():
    yield
    structlog.reset_defaults()


def make_settings(**observability) -> Settings:
    return Settings(_env_file=None, observability=observability)


class TestSetupLogging:
    """Test processor chains."""

    def test_json_renderer(self):
        setup_logging(make_settings(log_format="json"))

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_console_renderer(self):
        setup_logging(make_settings(log_format="text"))

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_callsite_info_first(self):
        setup_logging(make_settings(enable_callsite_info=True))

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[0], structlog.processors.CallsiteParameterAdder)

    def test_get_logger(self):
        setup_logging(make_settings(log_format="text"))

        logger = get_logger("flagpole.test")
        logger.info("test.event", key="value")
