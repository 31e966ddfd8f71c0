from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import StrEnum

MIN_CONDITIONS = 1
MAX_CONDITIONS = 4


class ConditionValidationError(ValueError):
    """Raised when an edited trigger condition field is not acceptable."""


class SensorParameter(StrEnum):
    TEMPERATURE = "temperature"
    EXTERNAL_TEMPERATURE = "externalTemperature"
    HUMIDITY = "humidity"
    CO2 = "co2"
    SOUND = "sound"
    WEIGHT = "weight"


class ComparisonOperator(StrEnum):
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="


PARAMETER_LABELS: dict[str, str] = {
    SensorParameter.TEMPERATURE.value: "Int. Temperature",
    SensorParameter.EXTERNAL_TEMPERATURE.value: "Ext. Temperature",
    SensorParameter.HUMIDITY.value: "Humidity",
    SensorParameter.CO2.value: "CO₂",
    SensorParameter.SOUND.value: "Sound Level",
    SensorParameter.WEIGHT.value: "Weight",
}

_PARAMETERS = frozenset(item.value for item in SensorParameter)
_OPERATORS = frozenset(item.value for item in ComparisonOperator)
_EDITABLE_FIELDS = ("parameter", "operator", "value")


def parameter_label(parameter: str) -> str:
    return PARAMETER_LABELS.get(parameter, parameter)


def parse_threshold(value: object) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConditionValidationError("Threshold must be a number")
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        normalized = value.strip().replace(",", ".")
        if not normalized:
            return None
        try:
            parsed = Decimal(normalized)
        except InvalidOperation as exc:
            raise ConditionValidationError(f"Threshold must be a number: {value!r}") from exc
    else:
        raise ConditionValidationError(f"Threshold must be a number: {value!r}")

    if not parsed.is_finite():
        raise ConditionValidationError(f"Threshold must be finite: {value!r}")
    # The service stores thresholds as doubles; keep only what a double can hold.
    as_float = float(parsed)
    if not math.isfinite(as_float) or (as_float == 0 and parsed != 0):
        raise ConditionValidationError(f"Threshold is out of range: {value!r}")
    nearest = Decimal(repr(as_float))
    return parsed if nearest == parsed else nearest


@dataclass(frozen=True)
class TriggerCondition:
    parameter: str = ""
    operator: str = ComparisonOperator.GT.value
    value: Decimal | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.parameter) and self.value is not None

    @property
    def label(self) -> str:
        return parameter_label(self.parameter)

    def with_field(self, field_name: str, value: object) -> TriggerCondition:
        if field_name == "parameter":
            parameter = "" if value is None else str(value).strip()
            if parameter and parameter not in _PARAMETERS:
                raise ConditionValidationError(f"Unknown sensor parameter: {parameter}")
            return replace(self, parameter=parameter)
        if field_name == "operator":
            operator = "" if value is None else str(value).strip()
            if operator not in _OPERATORS:
                raise ConditionValidationError(f"Unknown comparison operator: {operator}")
            return replace(self, operator=operator)
        if field_name == "value":
            return replace(self, value=parse_threshold(value))
        raise ConditionValidationError(
            f"Unknown condition field: {field_name} (expected one of {', '.join(_EDITABLE_FIELDS)})"
        )


@dataclass(frozen=True)
class ConditionSet:
    """Ordered, AND-combined trigger conditions of one alert rule.

    Editing keeps the length within [MIN_CONDITIONS, MAX_CONDITIONS]: adding
    past the maximum and removing below the minimum are no-ops. Sets decoded
    from persisted data are taken as they come.
    """

    conditions: tuple[TriggerCondition, ...] = field(default_factory=tuple)

    @classmethod
    def blank(cls) -> ConditionSet:
        return cls((TriggerCondition(),))

    def __len__(self) -> int:
        return len(self.conditions)

    def __iter__(self) -> Iterator[TriggerCondition]:
        return iter(self.conditions)

    def __getitem__(self, index: int) -> TriggerCondition:
        return self.conditions[index]

    @property
    def can_add(self) -> bool:
        return len(self.conditions) < MAX_CONDITIONS

    @property
    def can_remove(self) -> bool:
        return len(self.conditions) > MIN_CONDITIONS

    def add(self) -> ConditionSet:
        if not self.can_add:
            return self
        return ConditionSet((*self.conditions, TriggerCondition()))

    def remove(self, index: int) -> ConditionSet:
        self._check_index(index)
        if not self.can_remove:
            return self
        position = index % len(self.conditions)
        return ConditionSet(self.conditions[:position] + self.conditions[position + 1 :])

    def update(self, index: int, field_name: str, value: object) -> ConditionSet:
        self._check_index(index)
        position = index % len(self.conditions)
        updated = list(self.conditions)
        updated[position] = updated[position].with_field(field_name, value)
        return ConditionSet(tuple(updated))

    def complete_subset(self) -> tuple[TriggerCondition, ...]:
        return tuple(item for item in self.conditions if item.is_complete)

    def _check_index(self, index: int) -> None:
        if not -len(self.conditions) <= index < len(self.conditions):
            raise IndexError(f"condition index out of range: {index}")
