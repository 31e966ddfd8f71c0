from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from pydantic import ValidationError

from hivealerts.adapters.alerts_api import ApiRequestError
from hivealerts.domain.alert_rule import AlertRule, AlertStatus
from hivealerts.domain.rule_codec import format_conditions
from hivealerts.logging_context import with_rule_context
from hivealerts.observability import get_instrumentation

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_SECONDS = 60.0
DELETE_FAILED_MESSAGE = "Failed to delete alert."
RESET_FAILED_MESSAGE = "Failed to reset alert."

ConfirmFn = Callable[[str], bool | Awaitable[bool]]
NotifyFn = Callable[[str], None]
RefreshFn = Callable[[tuple[AlertRule, ...]], None]


class AlertsApi(Protocol):
    async def list_alerts(self) -> list[AlertRule]: ...

    async def delete_alert(self, rule_id: str) -> None: ...

    async def reset_alert(self, rule_id: str) -> None: ...


@dataclass(frozen=True)
class AlertRuleRow:
    rule_id: str | None
    name: str
    hive_name: str
    status: AlertStatus
    conditions_text: str
    created_at: datetime | None

    @property
    def status_label(self) -> str:
        return self.status.label

    @classmethod
    def from_rule(cls, rule: AlertRule) -> AlertRuleRow:
        return cls(
            rule_id=rule.id,
            name=rule.name,
            hive_name=rule.hive_name or "",
            status=rule.status,
            conditions_text=format_conditions(rule.trigger_conditions),
            created_at=rule.created_at,
        )


def _deny(message: str) -> bool:
    del message
    return False


def _log_notice(message: str) -> None:
    logger.warning("alert_registry_notice", extra={"extra": {"notice": message}})


class AlertRegistry:
    """Rule list cache for one view, refreshed by polling.

    The cache is only written by this instance. Fetch failures leave an empty
    list rather than propagating, and responses that land after ``close`` are
    dropped.
    """

    def __init__(
        self,
        api: AlertsApi,
        *,
        confirm: ConfirmFn | None = None,
        notify: NotifyFn | None = None,
        on_refresh: RefreshFn | None = None,
        refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
    ) -> None:
        if refresh_interval_seconds <= 0:
            raise ValueError("refresh_interval_seconds must be > 0")
        self.api = api
        self.confirm = confirm or _deny
        self.notify = notify or _log_notice
        self.on_refresh = on_refresh
        self.refresh_interval_seconds = refresh_interval_seconds
        self._rules: tuple[AlertRule, ...] = ()
        self._active = True
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def rules(self) -> tuple[AlertRule, ...]:
        return self._rules

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def rows(self) -> list[AlertRuleRow]:
        return [AlertRuleRow.from_rule(rule) for rule in self._rules]

    def get(self, rule_id: str) -> AlertRule | None:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    async def list_rules(self) -> tuple[AlertRule, ...]:
        try:
            with get_instrumentation().trace("alert_registry_list"):
                fetched = tuple(await self.api.list_alerts())
        except (ApiRequestError, ValidationError) as exc:
            logger.warning(
                "alert_registry_list_failed",
                extra={
                    "extra": {
                        "error_type": type(exc).__name__,
                        "kind": exc.kind.value if isinstance(exc, ApiRequestError) else None,
                    }
                },
            )
            fetched = ()

        if not self._active:
            logger.debug("alert_registry_stale_list_discarded")
            return self._rules
        self._rules = fetched
        if self.on_refresh is not None:
            self.on_refresh(fetched)
        return fetched

    async def remove(self, rule_id: str) -> bool:
        with with_rule_context(rule_id, view="alert_registry"):
            confirmed = self.confirm("Are you sure you want to delete this alert?")
            if inspect.isawaitable(confirmed):
                confirmed = await confirmed
            if not confirmed:
                logger.info("alert_registry_delete_declined")
                return False
            try:
                await self.api.delete_alert(rule_id)
            except ApiRequestError as exc:
                logger.warning(
                    "alert_registry_delete_failed",
                    extra={"extra": {"kind": exc.kind.value, "status_code": exc.status_code}},
                )
                if self._active:
                    self.notify(DELETE_FAILED_MESSAGE)
                return False
            logger.info("alert_registry_deleted")
        await self.list_rules()
        return True

    async def reset(self, rule_id: str) -> bool:
        with with_rule_context(rule_id, view="alert_registry"):
            try:
                await self.api.reset_alert(rule_id)
            except ApiRequestError as exc:
                logger.warning(
                    "alert_registry_reset_failed",
                    extra={"extra": {"kind": exc.kind.value, "status_code": exc.status_code}},
                )
                if self._active:
                    self.notify(RESET_FAILED_MESSAGE)
                return False
            logger.info("alert_registry_reset_requested")
        await self.list_rules()
        return True

    def start_periodic_refresh(self, interval_seconds: float | None = None) -> asyncio.Task[None]:
        if not self._active:
            raise RuntimeError("AlertRegistry is closed")
        if self._refresh_task is not None and not self._refresh_task.done():
            return self._refresh_task
        interval = interval_seconds if interval_seconds is not None else self.refresh_interval_seconds
        if interval <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._refresh_task = asyncio.create_task(self._refresh_loop(interval))
        return self._refresh_task

    async def stop_periodic_refresh(self) -> None:
        task = self._refresh_task
        self._refresh_task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def close(self) -> None:
        self._active = False
        await self.stop_periodic_refresh()

    async def __aenter__(self) -> AlertRegistry:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _refresh_loop(self, interval: float) -> None:
        while self._active:
            try:
                await self.list_rules()
            except Exception:  # noqa: BLE001
                logger.exception("alert_registry_refresh_cycle_failed")
            await asyncio.sleep(interval)
