"""Shared telemetry: logging setup, performance counters, OpenTelemetry config and tracing helpers."""

from nsredis.shared.telemetry.logging import setup_logging
from nsredis.shared.telemetry.performance import PerformanceStats
from nsredis.shared.telemetry.telemetry import TelemetryConfig
from nsredis.shared.telemetry.tracing import annotate_span, traced

__all__ = [
    "setup_logging",
    "PerformanceStats",
    "TelemetryConfig",
    "traced",
    "annotate_span",
]
