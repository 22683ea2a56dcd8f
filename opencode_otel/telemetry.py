"""
OpenTelemetry pipeline for opencode-otel.

Sets up a MeterProvider and LoggerProvider for the configured profile and
exporters, and exposes the eight metric instruments plus a log event emitter.

Key design:
- Exporters are chosen from OtelConfig (otlp over gRPC or HTTP, console, none)
- Metric readers and the log sink can be injected so tests run in-memory
- shutdown() is best-effort: flush then close, never raise
"""

import logging
import os
import platform
import sys
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from opentelemetry._logs import SeverityNumber
from opentelemetry.metrics import Counter, Meter
from opentelemetry.sdk._logs import LoggerProvider, LogRecord, LogRecordProcessor
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    ConsoleLogExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.metrics import (
    Counter as SdkCounter,
    Histogram as SdkHistogram,
    MeterProvider,
    ObservableCounter as SdkObservableCounter,
)
from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    ConsoleMetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
    OTLPMetricExporter as GrpcMetricExporter,
)
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import (
    OTLPLogExporter as GrpcLogExporter,
)
from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
    OTLPMetricExporter as HttpMetricExporter,
)
from opentelemetry.exporter.otlp.proto.http._log_exporter import (
    OTLPLogExporter as HttpLogExporter,
)

from opencode_otel.config import OtelConfig
from opencode_otel.profiles import ProfileConfig, profile_for

logger = logging.getLogger(__name__)

PLUGIN_NAME = "opencode-otel"
PLUGIN_VERSION = "0.1.0"

# Only monotonic instruments switch to delta; up/down counters stay cumulative.
DELTA_TEMPORALITY = {
    SdkCounter: AggregationTemporality.DELTA,
    SdkHistogram: AggregationTemporality.DELTA,
    SdkObservableCounter: AggregationTemporality.DELTA,
}


class LogSink(Protocol):
    """Narrow interface for emitting one structured log record."""

    def emit(self, body_name: str, event_name: str, attributes: Dict[str, Any]) -> None:
        ...


class OtelLogSink:
    """LogSink backed by an OpenTelemetry SDK logger."""

    def __init__(self, otel_logger: Any, resource: Optional[Resource] = None):
        self._logger = otel_logger
        self._resource = resource

    def emit(self, body_name: str, event_name: str, attributes: Dict[str, Any]) -> None:
        self._logger.emit(
            LogRecord(
                timestamp=time.time_ns(),
                severity_text="INFO",
                severity_number=SeverityNumber.INFO,
                body=body_name,
                resource=self._resource,
                attributes=attributes,
            )
        )


@dataclass
class TelemetryMetrics:
    """The eight counters, named with the profile prefix."""

    session_count: Counter
    lines_of_code: Counter
    pull_request_count: Counter
    commit_count: Counter
    cost_usage: Counter
    token_usage: Counter
    tool_decision: Counter
    active_time: Counter

    @classmethod
    def create(cls, meter: Meter, profile: ProfileConfig) -> "TelemetryMetrics":
        name = profile.metric_name
        return cls(
            session_count=meter.create_counter(
                name("session.count"), description="Count of CLI sessions started"
            ),
            lines_of_code=meter.create_counter(
                name("lines_of_code.count"), description="Count of lines of code modified"
            ),
            pull_request_count=meter.create_counter(
                name("pull_request.count"), description="Number of pull requests created"
            ),
            commit_count=meter.create_counter(
                name("commit.count"), description="Number of git commits created"
            ),
            cost_usage=meter.create_counter(
                name("cost.usage"), description="Cost of the session", unit="USD"
            ),
            token_usage=meter.create_counter(
                name("token.usage"), description="Number of tokens used", unit="tokens"
            ),
            tool_decision=meter.create_counter(
                name("tool.decision"), description="Count of tool permission decisions"
            ),
            active_time=meter.create_counter(
                name("active_time.total"), description="Total active time in seconds", unit="s"
            ),
        )


@dataclass
class TelemetryContext:
    """Everything the event translator needs to emit telemetry."""

    profile: ProfileConfig
    metrics: TelemetryMetrics
    log_sink: LogSink
    meter_provider: MeterProvider
    logger_provider: Optional[LoggerProvider] = None

    @property
    def prefix(self) -> str:
        return self.profile.prefix

    def emit_event(self, event_name: str, attributes: Dict[str, Any]) -> None:
        """Emit a log event.

        The record body carries the prefixed name; the unprefixed name goes
        into the well-known ``event.name`` attribute.
        """
        self.log_sink.emit(
            self.profile.event_name(event_name),
            event_name,
            {"event.name": event_name, **attributes},
        )

    def shutdown(self) -> None:
        """Flush then shut down both providers. Failures are logged, not raised."""
        providers: List[Any] = [self.meter_provider]
        if self.logger_provider is not None:
            providers.append(self.logger_provider)

        for provider in providers:
            try:
                provider.force_flush()
            except Exception as e:
                logger.warning(f"Telemetry flush failed: {e}")
        for provider in providers:
            try:
                provider.shutdown()
            except Exception as e:
                logger.warning(f"Telemetry shutdown failed: {e}")


def build_resource(config: OtelConfig) -> Resource:
    """Create the resource shared by metrics and logs."""
    profile = profile_for(config.telemetry_profile)
    machine = platform.machine().lower()
    attrs: Dict[str, Any] = {
        SERVICE_NAME: profile.service_name,
        SERVICE_VERSION: PLUGIN_VERSION,
        "os.type": sys.platform,
        "host.arch": profile.arch_map.get(machine, machine),
    }
    attrs.update(config.resource_attributes)
    return Resource.create(attrs)


def metrics_url(config: OtelConfig) -> str:
    override = os.getenv("OTEL_EXPORTER_OTLP_METRICS_ENDPOINT")
    if override:
        return override
    if config.metrics_endpoint:
        return config.metrics_endpoint
    if config.protocol == "grpc":
        return config.endpoint
    return f"{config.endpoint.rstrip('/')}/v1/metrics"


def logs_url(config: OtelConfig) -> str:
    override = os.getenv("OTEL_EXPORTER_OTLP_LOGS_ENDPOINT")
    if override:
        return override
    if config.logs_endpoint:
        return config.logs_endpoint
    if config.protocol == "grpc":
        return config.endpoint
    return f"{config.endpoint.rstrip('/')}/v1/logs"


def create_metric_reader(config: OtelConfig) -> Optional[MetricReader]:
    """Build the metric reader for the configured exporter, or None."""
    if config.metrics_exporter == "none":
        return None

    if config.metrics_exporter == "console":
        return PeriodicExportingMetricReader(
            ConsoleMetricExporter(), export_interval_millis=config.metric_export_interval_ms
        )

    temporality = DELTA_TEMPORALITY if config.metrics_temporality == "delta" else None
    exporter_cls = GrpcMetricExporter if config.protocol == "grpc" else HttpMetricExporter
    exporter = exporter_cls(
        endpoint=metrics_url(config),
        headers=dict(config.headers),
        preferred_temporality=temporality,
    )
    return PeriodicExportingMetricReader(
        exporter, export_interval_millis=config.metric_export_interval_ms
    )


def create_log_processor(config: OtelConfig) -> Optional[LogRecordProcessor]:
    """Build the log record processor for the configured exporter, or None."""
    if config.logs_exporter == "none":
        return None

    if config.logs_exporter == "console":
        return SimpleLogRecordProcessor(ConsoleLogExporter())

    exporter_cls = GrpcLogExporter if config.protocol == "grpc" else HttpLogExporter
    exporter = exporter_cls(endpoint=logs_url(config), headers=dict(config.headers))
    return BatchLogRecordProcessor(exporter, schedule_delay_millis=config.logs_export_interval_ms)


def init_telemetry(
    config: OtelConfig,
    metric_readers: Optional[List[MetricReader]] = None,
    log_sink: Optional[LogSink] = None,
) -> TelemetryContext:
    """Initialize the metric and log pipelines for a config.

    Providers are private to the returned context; nothing is registered
    globally, so several contexts can coexist (as they do in tests).

    Args:
        config: Resolved plugin configuration
        metric_readers: Readers to use instead of the configured exporter
        log_sink: Sink to use instead of an SDK LoggerProvider

    Returns:
        TelemetryContext wired to the new providers
    """
    profile = profile_for(config.telemetry_profile)
    resource = build_resource(config)

    if metric_readers is None:
        reader = create_metric_reader(config)
        metric_readers = [reader] if reader else []
    meter_provider = MeterProvider(resource=resource, metric_readers=metric_readers)
    meter = meter_provider.get_meter(profile.meter_name, PLUGIN_VERSION)

    logger_provider = None
    if log_sink is None:
        logger_provider = LoggerProvider(resource=resource)
        processor = create_log_processor(config)
        if processor:
            logger_provider.add_log_record_processor(processor)
        otel_logger = logger_provider.get_logger(profile.logger_name, PLUGIN_VERSION)
        log_sink = OtelLogSink(otel_logger, resource)

    logger.info(
        f"OpenTelemetry initialized: profile={profile.profile.value} "
        f"metrics={config.metrics_exporter} logs={config.logs_exporter} "
        f"protocol={config.protocol} endpoint={config.endpoint}"
    )
    return TelemetryContext(
        profile=profile,
        metrics=TelemetryMetrics.create(meter, profile),
        log_sink=log_sink,
        meter_provider=meter_provider,
        logger_provider=logger_provider,
    )
