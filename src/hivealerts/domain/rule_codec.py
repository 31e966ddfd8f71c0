from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from decimal import Decimal

from hivealerts.domain.conditions import (
    ComparisonOperator,
    ConditionSet,
    ConditionValidationError,
    TriggerCondition,
    parameter_label,
    parse_threshold,
)

logger = logging.getLogger(__name__)

NO_CONDITIONS = "No conditions"
INVALID_CONDITIONS = "Invalid conditions"
CONDITION_JOINER = " AND "


class MalformedConditionsError(ValueError):
    """Raised internally when an encoded condition string cannot be parsed."""


def encode_conditions(conditions: ConditionSet | Iterable[TriggerCondition]) -> str:
    if isinstance(conditions, ConditionSet):
        complete = conditions.complete_subset()
    else:
        complete = tuple(item for item in conditions if item.is_complete)
    rows = [
        {
            "parameter": item.parameter,
            "operator": item.operator,
            "value": _dump_value(item.value),
        }
        for item in complete
    ]
    return json.dumps(rows, ensure_ascii=False, separators=(",", ":"))


def decode_conditions(raw: str | None) -> ConditionSet:
    if raw is None or not raw.strip():
        return ConditionSet.blank()
    try:
        rows = _load_rows(raw)
    except MalformedConditionsError as exc:
        logger.warning(
            "rule_codec_malformed_conditions",
            extra={"extra": {"reason": str(exc), "raw_length": len(raw)}},
        )
        return ConditionSet.blank()

    decoded: list[TriggerCondition] = []
    for row in rows:
        if not isinstance(row, dict):
            logger.warning(
                "rule_codec_skipped_condition",
                extra={"extra": {"row_type": type(row).__name__}},
            )
            continue
        decoded.append(_row_to_condition(row))

    if not decoded:
        return ConditionSet.blank()
    return ConditionSet(tuple(decoded))


def format_conditions(raw: str | None) -> str:
    if raw is None or not raw.strip():
        return NO_CONDITIONS
    try:
        rows = _load_rows(raw)
    except MalformedConditionsError:
        return INVALID_CONDITIONS
    if not rows:
        return NO_CONDITIONS
    if any(not isinstance(row, dict) for row in rows):
        return INVALID_CONDITIONS

    parts = []
    for row in rows:
        parameter = _text(row.get("parameter"))
        operator = _text(row.get("operator"))
        parts.append(f"{parameter_label(parameter)} {operator} {_render_value(row.get('value'))}")
    return CONDITION_JOINER.join(parts)


def _load_rows(raw: str) -> list[object]:
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        raise MalformedConditionsError(f"not valid JSON: {exc.__class__.__name__}") from exc
    if not isinstance(parsed, list):
        raise MalformedConditionsError(f"expected a JSON array, got {type(parsed).__name__}")
    return parsed


def _row_to_condition(row: dict[str, object]) -> TriggerCondition:
    operator = _text(row.get("operator")) or ComparisonOperator.GT.value
    try:
        value = parse_threshold(row.get("value"))
    except ConditionValidationError:
        logger.warning(
            "rule_codec_unparsable_value",
            extra={"extra": {"parameter": _text(row.get("parameter"))}},
        )
        value = None
    return TriggerCondition(parameter=_text(row.get("parameter")), operator=operator, value=value)


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def _dump_value(value: Decimal | None) -> int | float | None:
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _render_value(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
