from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from time import monotonic
from typing import Any

import httpx
from pydantic import ValidationError

from hivealerts.adapters.credentials import CredentialStore
from hivealerts.adapters.instrumentation import InstrumentationMetricsSink, MetricsSink
from hivealerts.domain.alert_rule import AlertRule, Hive
from hivealerts.logging_context import with_logging_context
from hivealerts.observability import get_instrumentation

logger = logging.getLogger(__name__)

_AUTH_STATUS_CODES = frozenset({401, 403})
_ERROR_SNIPPET_LIMIT = 300


class ApiErrorKind(StrEnum):
    NOT_AUTHENTICATED = "not_authenticated"
    AUTH = "auth"
    CLIENT = "client"
    SERVER = "server"
    NETWORK = "network"


class ApiRequestError(RuntimeError):
    def __init__(
        self,
        *,
        kind: ApiErrorKind,
        message: str,
        status_code: int | None = None,
        remote_message: str | None = None,
        payload: object = None,
        method: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.remote_message = remote_message
        self.payload = payload
        self.method = method
        self.path = path


def extract_error_message(payload: object) -> str | None:
    """Operator-facing message from a structured error body.

    ``message`` wins over ``error``, which wins over ``errors``; a per-field
    ``errors`` map (or list) is joined into one string.
    """

    if not isinstance(payload, dict):
        return None
    for key in ("message", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    errors = payload.get("errors")
    if isinstance(errors, dict):
        parts = [str(item) for item in errors.values() if item not in (None, "")]
    elif isinstance(errors, list):
        parts = [str(item) for item in errors if item not in (None, "")]
    else:
        parts = []
    joined = ", ".join(parts)
    return joined or None


@dataclass(frozen=True)
class ApiTimeouts:
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 10.0
    write_timeout_seconds: float = 10.0
    pool_timeout_seconds: float = 5.0

    @classmethod
    def uniform(cls, seconds: float) -> ApiTimeouts:
        return cls(
            connect_timeout_seconds=seconds,
            read_timeout_seconds=seconds,
            write_timeout_seconds=seconds,
            pool_timeout_seconds=seconds,
        )


class AlertsApiClient:
    def __init__(
        self,
        *,
        base_url: str,
        credentials: CredentialStore,
        metrics: MetricsSink | None = None,
        timeouts: ApiTimeouts | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.credentials = credentials
        self.metrics = metrics or InstrumentationMetricsSink()
        self.timeouts = timeouts or ApiTimeouts()
        timeout = httpx.Timeout(
            connect=self.timeouts.connect_timeout_seconds,
            read=self.timeouts.read_timeout_seconds,
            write=self.timeouts.write_timeout_seconds,
            pool=self.timeouts.pool_timeout_seconds,
        )
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AlertsApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def list_alerts(self) -> list[AlertRule]:
        payload = await self.request("GET", "/alerts")
        return self._parse_list(payload, AlertRule, method="GET", path="/alerts")

    async def get_alert(self, rule_id: str) -> AlertRule:
        path = f"/alerts/{rule_id}"
        with with_logging_context(rule_id=rule_id):
            payload = await self.request("GET", path)
        return self._parse_one(payload, AlertRule, method="GET", path=path)

    async def create_alert(self, body: dict[str, Any]) -> AlertRule:
        hive_id = body.get("hiveId")
        with with_logging_context(hive_id=str(hive_id) if hive_id else None):
            payload = await self.request("POST", "/alerts", json_body=body)
        return self._parse_one(payload, AlertRule, method="POST", path="/alerts")

    async def update_alert(self, rule_id: str, body: dict[str, Any]) -> AlertRule:
        path = f"/alerts/{rule_id}"
        with with_logging_context(rule_id=rule_id):
            payload = await self.request("PUT", path, json_body=body)
        return self._parse_one(payload, AlertRule, method="PUT", path=path)

    async def delete_alert(self, rule_id: str) -> None:
        with with_logging_context(rule_id=rule_id):
            await self.request("DELETE", f"/alerts/{rule_id}")

    async def reset_alert(self, rule_id: str) -> None:
        with with_logging_context(rule_id=rule_id):
            await self.request("POST", f"/alerts/{rule_id}/reset")

    async def list_hives(self) -> list[Hive]:
        payload = await self.request("GET", "/hives")
        return self._parse_list(payload, Hive, method="GET", path="/hives")

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
    ) -> object:
        token = self.credentials.get_token()
        if not token:
            raise ApiRequestError(
                kind=ApiErrorKind.NOT_AUTHENTICATED,
                message="no bearer credential available",
                method=method,
                path=path,
            )

        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        started = monotonic()
        try:
            with get_instrumentation().trace("api_call", attrs={"method": method, "path": path}):
                response = await self._client.request(
                    method,
                    path,
                    json=json_body,
                    headers=headers,
                )
        except httpx.RequestError as exc:
            self.metrics.inc("api_network_errors")
            logger.warning(
                "api_transport_failed",
                extra={
                    "extra": {
                        "method": method,
                        "path": path,
                        "error_type": type(exc).__name__,
                    }
                },
            )
            raise ApiRequestError(
                kind=ApiErrorKind.NETWORK,
                message=str(exc) or type(exc).__name__,
                method=method,
                path=path,
            ) from exc

        self.metrics.observe_ms(
            f"api_{method.lower()}_latency",
            (monotonic() - started) * 1000,
        )
        if response.status_code >= 400:
            self._raise_http_error(response, method=method, path=path)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiRequestError(
                kind=ApiErrorKind.SERVER,
                message="response body is not JSON",
                status_code=response.status_code,
                method=method,
                path=path,
            ) from exc

    def _raise_http_error(self, response: httpx.Response, *, method: str, path: str) -> None:
        status = response.status_code
        if status in _AUTH_STATUS_CODES:
            kind = ApiErrorKind.AUTH
        elif status >= 500:
            kind = ApiErrorKind.SERVER
        else:
            kind = ApiErrorKind.CLIENT

        payload: object = None
        try:
            payload = response.json()
        except ValueError:
            payload = None
        remote_message = extract_error_message(payload)

        self.metrics.inc("api_http_errors", attrs={"status": status})
        logger.warning(
            "api_request_rejected",
            extra={
                "extra": {
                    "method": method,
                    "path": path,
                    "status_code": status,
                    "kind": kind.value,
                    "remote_message": remote_message,
                }
            },
        )
        if kind is ApiErrorKind.AUTH:
            self.credentials.invalidate()

        raise ApiRequestError(
            kind=kind,
            message=remote_message or response.text[:_ERROR_SNIPPET_LIMIT] or f"HTTP {status}",
            status_code=status,
            remote_message=remote_message,
            payload=payload,
            method=method,
            path=path,
        )

    @staticmethod
    def _parse_one(payload: object, model: type[Any], *, method: str, path: str) -> Any:
        if not isinstance(payload, dict):
            raise ApiRequestError(
                kind=ApiErrorKind.SERVER,
                message=f"expected a JSON object, got {type(payload).__name__}",
                payload=payload,
                method=method,
                path=path,
            )
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise ApiRequestError(
                kind=ApiErrorKind.SERVER,
                message=f"unexpected {model.__name__} shape: {exc.error_count()} error(s)",
                payload=payload,
                method=method,
                path=path,
            ) from exc

    @classmethod
    def _parse_list(cls, payload: object, model: type[Any], *, method: str, path: str) -> list[Any]:
        if not isinstance(payload, list):
            raise ApiRequestError(
                kind=ApiErrorKind.SERVER,
                message=f"expected a JSON array, got {type(payload).__name__}",
                payload=payload,
                method=method,
                path=path,
            )
        return [cls._parse_one(item, model, method=method, path=path) for item in payload]
