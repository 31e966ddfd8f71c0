from __future__ import annotations

import atexit
import logging
import re
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from hivealerts.security.redaction import redact_data

logger = logging.getLogger(__name__)

METRIC_PREFIX = "hivealerts."
_INVALID_METRIC_CHARS = re.compile(r"[^a-zA-Z0-9_.-]+")


def metric_name(name: str) -> str:
    cleaned = _INVALID_METRIC_CHARS.sub("_", name).strip("_.")
    return METRIC_PREFIX + (cleaned or "unnamed")


def _attributes(attrs: dict[str, Any] | None) -> dict[str, Any]:
    # OTel only takes scalar attribute values.
    safe = redact_data(dict(attrs or {}))
    return {
        key: value if isinstance(value, str | bool | int | float) else str(value)
        for key, value in safe.items()
        if value is not None
    }


class Instrumentation:
    """Metrics and tracing facade; the base class records nothing."""

    def counter(self, name: str, value: int = 1, *, attrs: dict[str, Any] | None = None) -> None:
        return None

    def histogram(self, name: str, value: float, *, attrs: dict[str, Any] | None = None) -> None:
        return None

    @contextmanager
    def trace(self, name: str, *, attrs: dict[str, Any] | None = None) -> Iterator[None]:
        del name, attrs
        yield

    def shutdown(self) -> None:
        return None


class NoopInstrumentation(Instrumentation):
    pass


class OTelInstrumentation(Instrumentation):
    def __init__(
        self,
        *,
        service_name: str,
        otlp_endpoint: str | None,
        export_interval_ms: int = 30_000,
    ) -> None:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.trace import Status, StatusCode

        exporter_kwargs = {"endpoint": otlp_endpoint} if otlp_endpoint else {}
        resource = Resource.create({"service.name": service_name})

        self._tracer_provider = TracerProvider(resource=resource)
        self._tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs))
        )
        self._meter_provider = MeterProvider(
            resource=resource,
            metric_readers=[
                PeriodicExportingMetricReader(
                    OTLPMetricExporter(**exporter_kwargs),
                    export_interval_millis=export_interval_ms,
                )
            ],
        )
        trace.set_tracer_provider(self._tracer_provider)
        metrics.set_meter_provider(self._meter_provider)

        self._tracer = self._tracer_provider.get_tracer(service_name)
        self._meter = self._meter_provider.get_meter(service_name)
        self._error_status = Status(StatusCode.ERROR)
        self._instruments: dict[tuple[str, str], Any] = {}
        self._lock = threading.Lock()

    def _instrument(self, kind: str, name: str) -> Any:
        key = (kind, metric_name(name))
        with self._lock:
            instrument = self._instruments.get(key)
            if instrument is None:
                factory = (
                    self._meter.create_counter if kind == "counter" else self._meter.create_histogram
                )
                instrument = factory(key[1])
                self._instruments[key] = instrument
        return instrument

    def counter(self, name: str, value: int = 1, *, attrs: dict[str, Any] | None = None) -> None:
        self._instrument("counter", name).add(value, _attributes(attrs))

    def histogram(self, name: str, value: float, *, attrs: dict[str, Any] | None = None) -> None:
        self._instrument("histogram", name).record(value, _attributes(attrs))

    @contextmanager
    def trace(self, name: str, *, attrs: dict[str, Any] | None = None) -> Iterator[None]:
        with self._tracer.start_as_current_span(
            name,
            attributes=_attributes(attrs),
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            try:
                yield
            except Exception as exc:
                span.set_attribute("error.type", type(exc).__name__)
                span.set_status(self._error_status)
                raise

    def shutdown(self) -> None:
        self._meter_provider.force_flush()
        self._tracer_provider.force_flush()
        self._meter_provider.shutdown()
        self._tracer_provider.shutdown()


_LOCK = threading.Lock()
_INSTRUMENTATION: Instrumentation = NoopInstrumentation()


def configure_instrumentation(
    *,
    enabled: bool,
    service_name: str = "hivealerts",
    otlp_endpoint: str | None = None,
) -> Instrumentation:
    """Install the process-wide instrumentation.

    The previous instance is shut down first. When the OTel stack cannot be
    set up the process keeps running with the no-op implementation.
    """

    global _INSTRUMENTATION
    with _LOCK:
        previous = _INSTRUMENTATION
        if not enabled:
            current: Instrumentation = NoopInstrumentation()
        else:
            try:
                current = OTelInstrumentation(service_name=service_name, otlp_endpoint=otlp_endpoint)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "observability_setup_failed",
                    extra={"extra": {"otlp_endpoint": otlp_endpoint}},
                )
                current = NoopInstrumentation()
        _INSTRUMENTATION = current
    if previous is not current:
        previous.shutdown()
    return current


def get_instrumentation() -> Instrumentation:
    return _INSTRUMENTATION


def shutdown_instrumentation() -> None:
    _INSTRUMENTATION.shutdown()


atexit.register(shutdown_instrumentation)
