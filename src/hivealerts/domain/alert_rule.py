from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hivealerts.domain.conditions import ConditionSet
from hivealerts.domain.rule_codec import decode_conditions, format_conditions

_NANOS_RE = re.compile(r"^(?P<head>[^.]+T[^.]+)\.(?P<frac>\d{7,})(?P<tail>.*)$")


class AlertStatus(StrEnum):
    NORMAL = "normal"
    TRIGGERED = "triggered"

    @property
    def label(self) -> str:
        return self.value.capitalize()


def _coerce_identifier(value: object) -> object:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        raise ValueError("identifier must not be a boolean")
    return str(value)


class Hive(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    location: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: object) -> object:
        return _coerce_identifier(value)

    @property
    def selector_label(self) -> str:
        if self.location:
            return f"{self.name} ({self.location})"
        return self.name


class AlertRule(BaseModel):
    """An alert rule as persisted by the remote service.

    Instances are immutable. The triggered flag is owned by the remote
    evaluator; a fresh copy is obtained by re-fetching after a reset. Nothing
    in the package derives rules with ``model_copy``; only the service
    produces new states.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str | None = None
    name: str = ""
    hive_id: str = Field(alias="hiveId")
    hive_name: str | None = Field(default=None, alias="hiveName")
    trigger_conditions: str | None = Field(default=None, alias="triggerConditions")
    is_triggered: bool = Field(default=False, alias="isTriggered")
    created_at: datetime | None = Field(default=None, alias="createdAt")

    @field_validator("id", "hive_id", mode="before")
    @classmethod
    def coerce_ids(cls, value: object) -> object:
        return _coerce_identifier(value)

    @field_validator("is_triggered", mode="before")
    @classmethod
    def null_is_not_triggered(cls, value: object) -> object:
        return False if value is None else value

    @field_validator("created_at", mode="before")
    @classmethod
    def trim_fractional_seconds(cls, value: object) -> object:
        # The service serializes with nanosecond precision.
        if isinstance(value, str):
            match = _NANOS_RE.match(value)
            if match is not None:
                return f"{match.group('head')}.{match.group('frac')[:6]}{match.group('tail')}"
        return value

    @property
    def status(self) -> AlertStatus:
        return AlertStatus.TRIGGERED if self.is_triggered else AlertStatus.NORMAL

    @property
    def conditions(self) -> ConditionSet:
        return decode_conditions(self.trigger_conditions)

    @property
    def conditions_text(self) -> str:
        return format_conditions(self.trigger_conditions)
