from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Protocol

from hivealerts.adapters.alerts_api import ApiRequestError
from hivealerts.domain.alert_rule import AlertRule, Hive
from hivealerts.domain.conditions import ConditionSet
from hivealerts.domain.rule_codec import decode_conditions, encode_conditions
from hivealerts.logging_context import with_rule_context
from hivealerts.services.api_errors import DraftValidationError, operator_message

logger = logging.getLogger(__name__)

ALERT_LIST_ROUTE = "/alerts"
LOAD_FAILED_MESSAGE = "Failed to load alert"
SAVE_FAILED_MESSAGE = "Failed to save alert. Please try again."
NAME_REQUIRED_MESSAGE = "Please enter an alert name."
HIVE_REQUIRED_MESSAGE = "Please select a hive."
CONDITION_REQUIRED_MESSAGE = "Please add at least one trigger condition."
HIVE_LOCKED_MESSAGE = "The hive of an existing alert cannot be changed."


class HiveLockedError(RuntimeError):
    """Raised when the hive of an existing alert rule is changed."""


class AlertsApi(Protocol):
    async def get_alert(self, rule_id: str) -> AlertRule: ...

    async def create_alert(self, body: dict[str, str]) -> AlertRule: ...

    async def update_alert(self, rule_id: str, body: dict[str, str]) -> AlertRule: ...

    async def list_hives(self) -> list[Hive]: ...


@dataclass(frozen=True)
class AlertDraft:
    name: str = ""
    hive_id: str = ""
    conditions: ConditionSet = field(default_factory=ConditionSet.blank)
    rule_id: str | None = None

    @property
    def is_edit(self) -> bool:
        return self.rule_id is not None

    def validate(self) -> None:
        if not self.name.strip():
            raise DraftValidationError(NAME_REQUIRED_MESSAGE)
        if not self.hive_id:
            raise DraftValidationError(HIVE_REQUIRED_MESSAGE)
        if not self.conditions.complete_subset():
            raise DraftValidationError(CONDITION_REQUIRED_MESSAGE)

    def to_payload(self) -> dict[str, str]:
        return {
            "name": self.name,
            "hiveId": self.hive_id,
            "triggerConditions": encode_conditions(self.conditions),
        }

    @classmethod
    def from_rule(cls, rule: AlertRule) -> AlertDraft:
        return cls(
            name=rule.name,
            hive_id=rule.hive_id,
            conditions=decode_conditions(rule.trigger_conditions),
            rule_id=rule.id,
        )


@dataclass(frozen=True)
class SubmitResult:
    ok: bool
    rule: AlertRule | None = None
    error: str | None = None


class AlertRuleEditor:
    """Create/edit controller for a single alert rule draft.

    The draft is private to this editor. Every edit clears the pending error
    message; ``submit`` validates locally before any request is issued and
    keeps the draft when the remote service rejects it.
    """

    def __init__(
        self,
        api: AlertsApi,
        *,
        on_navigate: Callable[[str], None] | None = None,
    ) -> None:
        self.api = api
        self.on_navigate = on_navigate
        self.draft: AlertDraft | None = None
        self.hives: list[Hive] = []
        self.error: str | None = None
        self.loading = False
        self._active = True
        self._generation = 0
        self._locked_hive: tuple[str, str] | None = None

    @property
    def hive_locked(self) -> bool:
        return self.draft is not None and self.draft.is_edit

    @property
    def is_active(self) -> bool:
        return self._active

    def close(self) -> None:
        self._active = False
        self.draft = None
        self._locked_hive = None

    async def load_hives(self) -> list[Hive]:
        try:
            hives = await self.api.list_hives()
        except ApiRequestError as exc:
            logger.warning(
                "alert_editor_hive_load_failed",
                extra={"extra": {"kind": exc.kind.value, "status_code": exc.status_code}},
            )
            hives = []
        if self._active:
            self.hives = hives
        return hives

    async def load_for_create(self) -> AlertDraft:
        generation = self._next_generation()
        self.error = None
        await self.load_hives()
        draft = AlertDraft()
        if self._is_current(generation):
            self.draft = draft
            self._locked_hive = None
        return draft

    async def load_for_edit(self, rule_id: str) -> AlertDraft | None:
        generation = self._next_generation()
        self.error = None
        self.loading = True
        with with_rule_context(rule_id, view="alert_editor"):
            try:
                await self.load_hives()
                rule = await self.api.get_alert(rule_id)
            except ApiRequestError as exc:
                if self._is_current(generation):
                    self.error = operator_message(exc, LOAD_FAILED_MESSAGE)
                    self.draft = None
                logger.warning(
                    "alert_editor_load_failed",
                    extra={"extra": {"kind": exc.kind.value, "status_code": exc.status_code}},
                )
                return None
            finally:
                if self._is_current(generation):
                    self.loading = False

        draft = AlertDraft.from_rule(rule)
        if not self._is_current(generation):
            logger.info("alert_editor_stale_load_discarded", extra={"extra": {"rule": rule_id}})
            return None
        self.draft = draft
        self._locked_hive = (str(draft.rule_id), draft.hive_id)
        return draft

    def set_name(self, name: str) -> AlertDraft:
        return self._edit(lambda draft: replace(draft, name=name))

    def select_hive(self, hive_id: str) -> AlertDraft:
        if self.hive_locked:
            raise HiveLockedError(HIVE_LOCKED_MESSAGE)
        return self._edit(lambda draft: replace(draft, hive_id=hive_id))

    def add_condition(self) -> AlertDraft:
        return self._edit(lambda draft: replace(draft, conditions=draft.conditions.add()))

    def remove_condition(self, index: int) -> AlertDraft:
        return self._edit(lambda draft: replace(draft, conditions=draft.conditions.remove(index)))

    def update_condition(self, index: int, field_name: str, value: object) -> AlertDraft:
        return self._edit(
            lambda draft: replace(
                draft, conditions=draft.conditions.update(index, field_name, value)
            )
        )

    async def submit(self, draft: AlertDraft | None = None) -> SubmitResult:
        candidate = draft if draft is not None else self.draft
        if candidate is None:
            candidate = AlertDraft()
        self.error = None

        try:
            self._check_hive_lock(candidate)
            candidate.validate()
        except (DraftValidationError, HiveLockedError) as exc:
            self.error = str(exc)
            return SubmitResult(ok=False, error=self.error)

        payload = candidate.to_payload()
        self.loading = True
        with with_rule_context(candidate.rule_id, view="alert_editor"):
            try:
                if candidate.is_edit:
                    saved = await self.api.update_alert(str(candidate.rule_id), payload)
                else:
                    saved = await self.api.create_alert(payload)
            except ApiRequestError as exc:
                message = operator_message(exc, SAVE_FAILED_MESSAGE)
                logger.warning(
                    "alert_editor_submit_failed",
                    extra={
                        "extra": {
                            "kind": exc.kind.value,
                            "status_code": exc.status_code,
                            "is_edit": candidate.is_edit,
                        }
                    },
                )
                if self._active:
                    self.error = message
                    self.draft = candidate
                    self.loading = False
                return SubmitResult(ok=False, error=message)

            logger.info(
                "alert_editor_submitted",
                extra={
                    "extra": {
                        "saved_rule": saved.id,
                        "is_edit": candidate.is_edit,
                        "condition_count": len(candidate.conditions.complete_subset()),
                    }
                },
            )

        self.loading = False
        if self._active:
            self.draft = None
            if self.on_navigate is not None:
                self.on_navigate(ALERT_LIST_ROUTE)
        return SubmitResult(ok=True, rule=saved)

    def _edit(self, change: Callable[[AlertDraft], AlertDraft]) -> AlertDraft:
        if self.draft is None:
            raise RuntimeError("No alert draft loaded; call load_for_create or load_for_edit")
        self.draft = change(self.draft)
        self.error = None
        return self.draft

    def _check_hive_lock(self, draft: AlertDraft) -> None:
        if not draft.is_edit or self._locked_hive is None:
            return
        rule_id, hive_id = self._locked_hive
        if str(draft.rule_id) == rule_id and draft.hive_id != hive_id:
            raise HiveLockedError(HIVE_LOCKED_MESSAGE)

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return self._active and generation == self._generation
