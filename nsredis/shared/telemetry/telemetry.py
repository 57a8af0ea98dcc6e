"""OpenTelemetry setup for the client.

Installs a tracer provider with a console or OTLP exporter (or none) and
instruments the redis driver and logging. Off unless
settings.telemetry_enabled is set; nsredis spans are no-ops until then.
"""

import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from nsredis.core.config import Settings

logger = logging.getLogger(__name__)

EXPORTERS = ("console", "otlp", "none")


class TelemetryConfig:
    """Tracer provider and instrumentation owned by one client.

    Exporters: console (default), otlp (needs an endpoint) or none.
    """

    def __init__(
        self,
        service_name: str,
        service_version: str,
        enabled: bool = True,
        environment: str = "development",
        exporter: str = "console",
        otlp_endpoint: str | None = None,
        sample_rate: float = 1.0,
    ) -> None:
        self.service_name = service_name
        self.service_version = service_version
        self.enabled = enabled
        self.environment = environment
        self.exporter = exporter
        self.otlp_endpoint = otlp_endpoint
        self.sample_rate = sample_rate
        self.tracer_provider: TracerProvider | None = None
        self._instrumentors: list[RedisInstrumentor | LoggingInstrumentor] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> "TelemetryConfig":
        return cls(
            service_name=settings.app_name,
            service_version=settings.app_version,
            enabled=settings.telemetry_enabled,
            environment=settings.telemetry_environment,
            exporter=settings.telemetry_exporter,
            otlp_endpoint=settings.telemetry_otlp_endpoint,
            sample_rate=settings.telemetry_sample_rate,
        )

    def _build_exporter(self) -> SpanExporter | None:
        if self.exporter == "none":
            return None
        if self.exporter == "otlp":
            if self.otlp_endpoint:
                return OTLPSpanExporter(
                    endpoint=self.otlp_endpoint,
                    insecure=self.otlp_endpoint.startswith("http://"),
                )
            logger.warning("OTLP exporter selected without an endpoint, using console")
        elif self.exporter not in EXPORTERS:
            logger.warning("Unknown exporter type '%s', using console", self.exporter)
        return ConsoleSpanExporter()

    def start(self) -> TracerProvider | None:
        """Install the global tracer provider and instrument redis and logging.

        Returns:
            The tracer provider, or None when telemetry is disabled.
        """
        if not self.enabled:
            logger.debug("Telemetry disabled")
            return None
        if self.tracer_provider is not None:
            return self.tracer_provider
        provider = TracerProvider(
            resource=Resource(
                attributes={
                    SERVICE_NAME: self.service_name,
                    SERVICE_VERSION: self.service_version,
                    "deployment.environment": self.environment,
                }
            ),
            sampler=TraceIdRatioBased(self.sample_rate),
        )
        exporter = self._build_exporter()
        if exporter is not None:
            provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)
        self.tracer_provider = provider

        for instrumentor in (RedisInstrumentor(), LoggingInstrumentor()):
            if not instrumentor.is_instrumented_by_opentelemetry:
                instrumentor.instrument(tracer_provider=provider)
                self._instrumentors.append(instrumentor)
        logger.info(
            "OpenTelemetry started: service=%s, exporter=%s, instrumented=%s",
            self.service_name,
            self.exporter,
            [type(i).__name__ for i in self._instrumentors],
        )
        return provider

    def shutdown(self) -> None:
        """Remove instrumentation added by start() and flush pending spans."""
        for instrumentor in self._instrumentors:
            instrumentor.uninstrument()
        self._instrumentors.clear()
        if self.tracer_provider is not None:
            self.tracer_provider.shutdown()
            self.tracer_provider = None
            logger.info("Telemetry shutdown complete")
