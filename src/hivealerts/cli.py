from __future__ import annotations

import argparse
import asyncio
import json
import logging
import re
import sys
from collections.abc import Sequence
from dataclasses import replace

from hivealerts.adapters.alerts_api import AlertsApiClient, ApiRequestError, ApiTimeouts
from hivealerts.adapters.credentials import StaticCredentialStore
from hivealerts.config import Settings
from hivealerts.domain.alert_rule import AlertRule
from hivealerts.domain.conditions import MAX_CONDITIONS, ConditionSet, ConditionValidationError
from hivealerts.logging_utils import setup_logging
from hivealerts.observability import configure_instrumentation
from hivealerts.services.alert_registry import AlertRegistry, AlertRuleRow
from hivealerts.services.alert_rule_editor import LOAD_FAILED_MESSAGE, AlertRuleEditor
from hivealerts.services.api_errors import NOT_AUTHENTICATED_MESSAGE, operator_message

logger = logging.getLogger(__name__)

_CONDITION_EXPR_RE = re.compile(
    r"^\s*(?P<parameter>[A-Za-z0-9_]+)\s*(?P<operator>>=|<=|>|<)\s*(?P<value>\S+)\s*$"
)


class UsageError(ValueError):
    """Raised when command-line input cannot be turned into a request."""


def parse_condition_expression(expression: str) -> tuple[str, str, str]:
    match = _CONDITION_EXPR_RE.match(expression)
    if match is None:
        raise UsageError(
            f"Invalid condition {expression!r}; expected e.g. 'temperature>38' or 'co2 >= 400'"
        )
    return match.group("parameter"), match.group("operator"), match.group("value")


def build_condition_set(expressions: Sequence[str]) -> ConditionSet:
    if not expressions:
        raise UsageError("At least one --condition is required")
    if len(expressions) > MAX_CONDITIONS:
        raise UsageError(f"At most {MAX_CONDITIONS} conditions are allowed per alert")

    conditions = ConditionSet.blank()
    for index, expression in enumerate(expressions):
        if index > 0:
            conditions = conditions.add()
        parameter, operator, value = parse_condition_expression(expression)
        try:
            conditions = conditions.update(index, "parameter", parameter)
            conditions = conditions.update(index, "operator", operator)
            conditions = conditions.update(index, "value", value)
        except ConditionValidationError as exc:
            raise UsageError(str(exc)) from exc
    return conditions


def build_api_client(settings: Settings, *, token: str | None = None) -> AlertsApiClient:
    return AlertsApiClient(
        base_url=settings.api_base_url,
        credentials=StaticCredentialStore(token or settings.api_token_value()),
        timeouts=ApiTimeouts.uniform(settings.request_timeout_seconds),
    )


def format_rows(rows: Sequence[AlertRuleRow]) -> str:
    if not rows:
        return "No alerts."
    lines = []
    for row in rows:
        created = row.created_at.isoformat(timespec="seconds") if row.created_at else "-"
        lines.append(
            f"[{row.status_label}] {row.rule_id or '-'}  {row.name}  "
            f"hive={row.hive_name or '-'}  created={created}\n    {row.conditions_text}"
        )
    return "\n".join(lines)


def _rows_as_json(rows: Sequence[AlertRuleRow]) -> str:
    return json.dumps(
        [
            {
                "id": row.rule_id,
                "name": row.name,
                "hiveName": row.hive_name,
                "status": row.status.value,
                "conditions": row.conditions_text,
                "createdAt": row.created_at.isoformat() if row.created_at else None,
            }
            for row in rows
        ],
        ensure_ascii=False,
        indent=2,
    )


def _print_rule(rule: AlertRule) -> None:
    row = AlertRuleRow.from_rule(rule)
    print(f"Alert {rule.id}: {rule.name}")
    print(f"  Hive: {rule.hive_name or rule.hive_id}")
    print(f"  Status: {row.status_label}")
    print(f"  Conditions: {row.conditions_text}")
    if rule.created_at is not None:
        print(f"  Created: {rule.created_at.isoformat(timespec='seconds')}")


async def run_list(client: AlertsApiClient, *, json_output: bool = False) -> int:
    registry = AlertRegistry(client)
    async with registry:
        await registry.list_rules()
        rows = registry.rows()
    print(_rows_as_json(rows) if json_output else format_rows(rows))
    return 0


async def run_show(client: AlertsApiClient, rule_id: str) -> int:
    try:
        rule = await client.get_alert(rule_id)
    except ApiRequestError as exc:
        print(operator_message(exc, LOAD_FAILED_MESSAGE), file=sys.stderr)
        return 1
    _print_rule(rule)
    return 0


async def run_hives(client: AlertsApiClient) -> int:
    editor = AlertRuleEditor(client)
    hives = await editor.load_hives()
    if not hives:
        print("No hives.")
        return 0
    for hive in hives:
        print(f"{hive.id}  {hive.selector_label}")
    return 0


async def run_create(
    client: AlertsApiClient,
    *,
    name: str,
    hive_id: str,
    conditions: ConditionSet,
) -> int:
    editor = AlertRuleEditor(client)
    await editor.load_for_create()
    editor.set_name(name)
    draft = editor.select_hive(hive_id)
    result = await editor.submit(replace(draft, conditions=conditions))
    if not result.ok or result.rule is None:
        print(result.error, file=sys.stderr)
        return 1
    _print_rule(result.rule)
    return 0


async def run_update(
    client: AlertsApiClient,
    rule_id: str,
    *,
    name: str | None,
    conditions: ConditionSet | None,
) -> int:
    editor = AlertRuleEditor(client)
    draft = await editor.load_for_edit(rule_id)
    if draft is None:
        print(editor.error, file=sys.stderr)
        return 1
    if name is not None:
        draft = editor.set_name(name)
    if conditions is not None:
        draft = replace(draft, conditions=conditions)
    result = await editor.submit(draft)
    if not result.ok or result.rule is None:
        print(result.error, file=sys.stderr)
        return 1
    _print_rule(result.rule)
    return 0


async def run_delete(client: AlertsApiClient, rule_id: str, *, assume_yes: bool) -> int:
    async def _confirm(message: str) -> bool:
        if assume_yes:
            return True
        answer = await asyncio.to_thread(input, f"{message} [y/N] ")
        return answer.strip().lower() in {"y", "yes"}

    notices: list[str] = []
    async with AlertRegistry(client, confirm=_confirm, notify=notices.append) as registry:
        deleted = await registry.remove(rule_id)
    if deleted:
        print(f"Alert {rule_id} deleted.")
        return 0
    if notices:
        print(notices[-1], file=sys.stderr)
        return 1
    print("Cancelled.")
    return 0


async def run_reset(client: AlertsApiClient, rule_id: str) -> int:
    notices: list[str] = []
    async with AlertRegistry(client, notify=notices.append) as registry:
        ok = await registry.reset(rule_id)
        rule = registry.get(rule_id)
    if not ok:
        print(notices[-1] if notices else "Failed to reset alert.", file=sys.stderr)
        return 1
    status = rule.status.label if rule is not None else "unknown"
    print(f"Alert {rule_id} reset requested; current status: {status}.")
    return 0


async def run_watch(
    client: AlertsApiClient,
    *,
    interval_seconds: float,
    cycles: int | None,
) -> int:
    seen = 0
    done = asyncio.Event()

    def _on_refresh(rules: tuple[AlertRule, ...]) -> None:
        nonlocal seen
        seen += 1
        print(format_rows([AlertRuleRow.from_rule(rule) for rule in rules]))
        print("-" * 40)
        if cycles is not None and seen >= cycles:
            done.set()

    async with AlertRegistry(
        client,
        on_refresh=_on_refresh,
        refresh_interval_seconds=interval_seconds,
    ) as registry:
        task = registry.start_periodic_refresh()
        if cycles is None:
            await task
        else:
            await done.wait()
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hivealerts",
        description="Manage beehive alert rules on the monitoring service.",
        epilog="Env: HIVEALERTS_API_BASE_URL, HIVEALERTS_API_TOKEN, LOG_LEVEL",
    )
    parser.add_argument("--base-url", default=None, help="Override HIVEALERTS_API_BASE_URL")
    parser.add_argument("--token", default=None, help="Bearer token (default: env)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List alert rules with status")
    list_parser.add_argument("--json", action="store_true", help="Emit JSON")

    show_parser = subparsers.add_parser("show", help="Show one alert rule")
    show_parser.add_argument("rule_id")

    subparsers.add_parser("hives", help="List hives available for alerts")

    create_parser = subparsers.add_parser("create", help="Create an alert rule")
    create_parser.add_argument("--name", required=True)
    create_parser.add_argument("--hive", dest="hive_id", required=True)
    create_parser.add_argument(
        "--condition",
        dest="conditions",
        action="append",
        required=True,
        help="Threshold such as 'temperature>38'; repeat up to 4 times (AND-combined)",
    )

    update_parser = subparsers.add_parser("update", help="Update an alert rule")
    update_parser.add_argument("rule_id")
    update_parser.add_argument("--name", default=None)
    update_parser.add_argument(
        "--condition",
        dest="conditions",
        action="append",
        default=None,
        help="Replace all conditions; repeat up to 4 times",
    )

    delete_parser = subparsers.add_parser("delete", help="Delete an alert rule")
    delete_parser.add_argument("rule_id")
    delete_parser.add_argument("--yes", action="store_true", help="Skip confirmation prompt")

    reset_parser = subparsers.add_parser("reset", help="Reset a triggered alert rule")
    reset_parser.add_argument("rule_id")

    watch_parser = subparsers.add_parser("watch", help="Poll alert rules periodically")
    watch_parser.add_argument("--interval", type=float, default=None, help="Seconds between polls")
    watch_parser.add_argument("--cycles", type=int, default=None, help="Stop after N polls")
    return parser


async def _dispatch(args: argparse.Namespace, settings: Settings) -> int:
    async with build_api_client(settings, token=args.token) as client:
        if args.command == "list":
            return await run_list(client, json_output=args.json)
        if args.command == "show":
            return await run_show(client, args.rule_id)
        if args.command == "hives":
            return await run_hives(client)
        if args.command == "create":
            return await run_create(
                client,
                name=args.name,
                hive_id=args.hive_id,
                conditions=build_condition_set(args.conditions),
            )
        if args.command == "update":
            conditions = build_condition_set(args.conditions) if args.conditions else None
            return await run_update(client, args.rule_id, name=args.name, conditions=conditions)
        if args.command == "delete":
            return await run_delete(client, args.rule_id, assume_yes=args.yes)
        if args.command == "reset":
            return await run_reset(client, args.rule_id)
        if args.command == "watch":
            interval = args.interval or settings.refresh_interval_seconds
            return await run_watch(client, interval_seconds=interval, cycles=args.cycles)
    return 2


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    overrides: dict[str, object] = {}
    if args.base_url:
        overrides["HIVEALERTS_API_BASE_URL"] = args.base_url
    settings = Settings(**overrides)
    setup_logging(settings.log_level)
    configure_instrumentation(
        enabled=settings.observability_enabled,
        otlp_endpoint=settings.observability_otlp_endpoint,
    )

    if not (args.token or settings.api_token_value()):
        print(NOT_AUTHENTICATED_MESSAGE, file=sys.stderr)
        return 1

    logger.info(
        "cli_command_started",
        extra={"extra": {"command": args.command, "base_url": settings.api_base_url}},
    )
    try:
        return asyncio.run(_dispatch(args, settings))
    except UsageError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
