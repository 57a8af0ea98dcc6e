"""Telemetry helpers: traced decorator, TelemetryConfig, and logging setup."""

import inspect
import logging

import pytest

from nsredis.core.config import Settings
from nsredis.shared.telemetry.logging import HANDLER_NAME, setup_logging
from nsredis.shared.telemetry.telemetry import TelemetryConfig
from nsredis.shared.telemetry.tracing import _call_attributes, annotate_span, traced


class _Service:
    @traced("test.operation", component="test")
    async def run(self, namespace: str, value: int, batch_size: int | None = None) -> int:
        annotate_span(result=value)
        if value < 0:
            raise ValueError("negative")
        return value + 1


@pytest.mark.asyncio
async def test_traced_returns_result_and_propagates_errors() -> None:
    service = _Service()
    assert await service.run("users", 1, batch_size=10) == 2
    with pytest.raises(ValueError, match="negative"):
        await service.run("users", -1)


def test_traced_preserves_metadata() -> None:
    assert _Service.run.__name__ == "run"


def test_call_attributes_only_records_allowlisted_arguments() -> None:
    signature = inspect.signature(_Service.run.__wrapped__)
    attributes = _call_attributes(signature, (object(), "users", 5), {"batch_size": 10})
    assert attributes == {"nsredis.namespace": "users", "nsredis.batch_size": "10"}


def test_disabled_telemetry_is_noop() -> None:
    config = TelemetryConfig.from_settings(Settings(_env_file=None))
    assert config.enabled is False
    assert config.start() is None
    config.shutdown()
    assert config.tracer_provider is None


def test_setup_logging_configures_package_logger_once() -> None:
    package_logger = setup_logging(debug=True)
    setup_logging(debug=False)
    assert package_logger.name == "nsredis"
    assert package_logger.level == logging.INFO
    assert [h.get_name() for h in package_logger.handlers].count(HANDLER_NAME) == 1
    assert logging.getLogger("redis").level == logging.WARNING
