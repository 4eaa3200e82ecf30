"""OpenTelemetry wiring and the dashboard's own instruments."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from sqlalchemy.ext.asyncio import AsyncEngine

from threepl_dashboard.config import AppSettings

logger = logging.getLogger(__name__)

_EXPORT_INTERVAL_MS = 15000
_instrumented_apps: set[int] = set()
_providers_installed = False

# Instruments resolve against whichever meter provider is active, a no-op one when export is off.
_meter = metrics.get_meter("threepl_dashboard")
_kpi_failures = _meter.create_counter(
    "dashboard.kpi.query_failures",
    unit="1",
    description="KPI aggregate queries that failed and reported 0",
)
_alerts_raised = _meter.create_counter(
    "dashboard.alerts.raised",
    unit="1",
    description="Critical KPI alerts persisted after de-duplication",
)


def setup_telemetry(app: FastAPI, settings: AppSettings, engine: AsyncEngine | None = None) -> bool:
    """Install OTLP exporters once per process and instrument ``app`` and ``engine``.

    Returns ``False`` when telemetry is switched off in settings.
    """

    global _providers_installed  # noqa: PLW0603

    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return False

    if not _providers_installed:
        _install_providers(settings)
        _providers_installed = True

    if id(app) not in _instrumented_apps:
        FastAPIInstrumentor.instrument_app(
            app,
            tracer_provider=trace.get_tracer_provider(),
            meter_provider=metrics.get_meter_provider(),
            excluded_urls=f"{settings.api_prefix}/health",
        )
        if engine is not None:
            SQLAlchemyInstrumentor().instrument(
                engine=engine.sync_engine,
                tracer_provider=trace.get_tracer_provider(),
            )
        _instrumented_apps.add(id(app))

    logger.info("Telemetry exporting to %s", settings.telemetry_otlp_endpoint or "the default OTLP endpoint")
    return True


def annotate_enduser(user_id: int | str, role: str, client_id: str | None = None) -> None:
    """Tag the current server span with the authenticated caller."""

    span = trace.get_current_span()
    if not span.is_recording():
        return
    span.set_attribute("enduser.id", str(user_id))
    span.set_attribute("enduser.role", role)
    if client_id:
        span.set_attribute("dashboard.client_id", client_id)


def record_kpi_failure(kpi_code: str) -> None:
    _kpi_failures.add(1, {"kpi.code": kpi_code})


def record_alert_raised(kpi_code: str) -> None:
    _alerts_raised.add(1, {"kpi.code": kpi_code})


def _install_providers(settings: AppSettings) -> None:
    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
            ResourceAttributes.SERVICE_NAMESPACE: "threepl-dashboard",
        }
    )
    exporter_options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        exporter_options["endpoint"] = settings.telemetry_otlp_endpoint

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio)),
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_options)))
    trace.set_tracer_provider(tracer_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(**exporter_options),
        export_interval_millis=_EXPORT_INTERVAL_MS,
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(**exporter_options)))
    set_logger_provider(logger_provider)
    LoggingInstrumentor().instrument(set_logging_format=False)


__all__ = [
    "annotate_enduser",
    "record_alert_raised",
    "record_kpi_failure",
    "setup_telemetry",
]
