from .alerts_api import (
    AlertsApiClient,
    ApiErrorKind,
    ApiRequestError,
    ApiTimeouts,
    extract_error_message,
)
from .credentials import CredentialStore, StaticCredentialStore
from .instrumentation import InMemoryMetricsSink, InstrumentationMetricsSink, MetricsSink

__all__ = [
    "AlertsApiClient",
    "ApiErrorKind",
    "ApiRequestError",
    "ApiTimeouts",
    "CredentialStore",
    "InMemoryMetricsSink",
    "InstrumentationMetricsSink",
    "MetricsSink",
    "StaticCredentialStore",
    "extract_error_message",
]
