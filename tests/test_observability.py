from __future__ import annotations

import pytest

from hivealerts.adapters.instrumentation import InMemoryMetricsSink
from hivealerts.observability import (
    NoopInstrumentation,
    configure_instrumentation,
    get_instrumentation,
    metric_name,
)


def test_disabled_instrumentation_is_noop() -> None:
    instrumentation = configure_instrumentation(enabled=False)

    assert get_instrumentation() is instrumentation
    assert isinstance(instrumentation, NoopInstrumentation)
    with instrumentation.trace("api_call", attrs={"method": "GET"}):
        instrumentation.counter("api_http_errors", attrs={"status": 500})
        instrumentation.histogram("api_get_latency", 12.5)


def test_noop_trace_propagates_errors() -> None:
    with pytest.raises(ValueError), NoopInstrumentation().trace("api_call"):
        raise ValueError("boom")


def test_in_memory_sink_records_counts_and_latencies() -> None:
    sink = InMemoryMetricsSink()

    sink.inc("api_network_errors")
    sink.inc("api_network_errors", 2)
    sink.observe_ms("api_get_latency", 4.0)

    assert sink.counters["api_network_errors"] == 3
    assert sink.latencies == {"api_get_latency": [4.0]}


def test_metric_names_are_prefixed_and_sanitized() -> None:
    assert metric_name("api_get_latency") == "hivealerts.api_get_latency"
    assert metric_name("api get/latency") == "hivealerts.api_get_latency"
    assert metric_name("!!!") == "hivealerts.unnamed"
