from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import httpx
import pytest

from hivealerts import cli
from hivealerts.adapters.alerts_api import AlertsApiClient
from hivealerts.adapters.credentials import StaticCredentialStore
from hivealerts.adapters.instrumentation import InMemoryMetricsSink
from hivealerts.config import Settings
from hivealerts.domain.conditions import TriggerCondition
from hivealerts.services.api_errors import NOT_AUTHENTICATED_MESSAGE


class _FakeService:
    def __init__(self) -> None:
        self.rules: dict[str, dict[str, Any]] = {
            "7": {
                "id": 7,
                "name": "Overheat",
                "hiveId": 3,
                "hiveName": "Apiary North",
                "triggerConditions": '[{"parameter":"temperature","operator":">","value":38}]',
                "isTriggered": True,
                "createdAt": "2024-05-01T10:15:30.123456789",
            }
        }
        self.requests: list[tuple[str, str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        path = request.url.path.removeprefix("/api")
        self.requests.append((request.method, path, body))
        if path == "/hives":
            return httpx.Response(200, json=[{"id": 3, "name": "Apiary North", "location": "Hill"}])
        if path == "/alerts" and request.method == "GET":
            return httpx.Response(200, json=list(self.rules.values()))
        if path == "/alerts" and request.method == "POST":
            created = {"id": 8, **body, "hiveName": "Apiary North", "isTriggered": False}
            self.rules["8"] = created
            return httpx.Response(201, json=created)
        parts = path.strip("/").split("/")
        rule = self.rules.get(parts[1])
        if rule is None:
            return httpx.Response(404, json={"message": f"Alert {parts[1]} not found"})
        if len(parts) == 3 and parts[2] == "reset":
            rule["isTriggered"] = False
            return httpx.Response(200)
        if request.method == "PUT":
            rule.update(body)
            return httpx.Response(200, json=rule)
        if request.method == "DELETE":
            del self.rules[parts[1]]
            return httpx.Response(204)
        return httpx.Response(200, json=rule)


@pytest.fixture
def service(monkeypatch) -> _FakeService:  # type: ignore[no-untyped-def]
    fake = _FakeService()

    def _build(settings: Settings, *, token: str | None = None) -> AlertsApiClient:
        return AlertsApiClient(
            base_url=settings.api_base_url,
            credentials=StaticCredentialStore(token or settings.api_token_value()),
            metrics=InMemoryMetricsSink(),
            client=httpx.AsyncClient(
                base_url=settings.api_base_url,
                transport=httpx.MockTransport(fake.handler),
            ),
        )

    monkeypatch.setattr(cli, "build_api_client", _build)
    monkeypatch.setenv("HIVEALERTS_API_TOKEN", "session-abc")
    return fake


def test_parse_condition_expression() -> None:
    assert cli.parse_condition_expression("co2 >= 400") == ("co2", ">=", "400")
    assert cli.parse_condition_expression("temperature>38.5") == ("temperature", ">", "38.5")
    with pytest.raises(cli.UsageError):
        cli.parse_condition_expression("temperature == 38")


def test_build_condition_set() -> None:
    conditions = cli.build_condition_set(["temperature>30", "temperature<36"])

    assert list(conditions) == [
        TriggerCondition("temperature", ">", Decimal("30")),
        TriggerCondition("temperature", "<", Decimal("36")),
    ]


@pytest.mark.parametrize(
    "expressions",
    [[], ["pressure>1"], ["co2>400"] * 5, ["weight>heavy"]],
)
def test_build_condition_set_rejects_bad_input(expressions: list[str]) -> None:
    with pytest.raises(cli.UsageError):
        cli.build_condition_set(expressions)


def test_missing_token_exits_without_request(capsys) -> None:  # type: ignore[no-untyped-def]
    assert cli.main(["list"]) == 1

    assert NOT_AUTHENTICATED_MESSAGE in capsys.readouterr().err


def test_list_prints_status_and_formatted_conditions(service, capsys) -> None:  # type: ignore[no-untyped-def]
    assert cli.main(["list"]) == 0

    out = capsys.readouterr().out
    assert "[Triggered] 7  Overheat  hive=Apiary North  created=2024-05-01T10:15:30" in out
    assert "Int. Temperature > 38" in out


def test_list_json_output(service, capsys) -> None:  # type: ignore[no-untyped-def]
    assert cli.main(["list", "--json"]) == 0

    rows = json.loads(capsys.readouterr().out)
    assert rows[0]["id"] == "7"
    assert rows[0]["status"] == "triggered"
    assert rows[0]["conditions"] == "Int. Temperature > 38"


def test_create_submits_encoded_conditions(service, capsys) -> None:  # type: ignore[no-untyped-def]
    code = cli.main(
        [
            "create",
            "--name",
            "Cold snap",
            "--hive",
            "3",
            "--condition",
            "externalTemperature<5",
            "--condition",
            "weight<=20.5",
        ]
    )

    assert code == 0
    method, path, body = service.requests[-1]
    assert (method, path) == ("POST", "/alerts")
    assert body["hiveId"] == "3"
    assert json.loads(body["triggerConditions"]) == [
        {"parameter": "externalTemperature", "operator": "<", "value": 5},
        {"parameter": "weight", "operator": "<=", "value": 20.5},
    ]
    assert "Alert 8: Cold snap" in capsys.readouterr().out


def test_create_with_bad_condition_is_usage_error(service, capsys) -> None:  # type: ignore[no-untyped-def]
    code = cli.main(["create", "--name", "x", "--hive", "3", "--condition", "pressure>1"])

    assert code == 2
    assert "Unknown sensor parameter" in capsys.readouterr().err
    assert service.requests == []


def test_update_keeps_hive_and_replaces_conditions(service) -> None:  # type: ignore[no-untyped-def]
    assert cli.main(["update", "7", "--condition", "humidity<40"]) == 0

    method, path, body = service.requests[-1]
    assert (method, path) == ("PUT", "/alerts/7")
    assert body["name"] == "Overheat"
    assert body["hiveId"] == "3"
    assert json.loads(body["triggerConditions"]) == [
        {"parameter": "humidity", "operator": "<", "value": 40}
    ]


def test_show_unknown_rule_prints_remote_message(service, capsys) -> None:  # type: ignore[no-untyped-def]
    assert cli.main(["show", "99"]) == 1

    assert "Alert 99 not found" in capsys.readouterr().err


def test_delete_requires_confirmation(service, monkeypatch, capsys) -> None:  # type: ignore[no-untyped-def]
    prompts: list[str] = []

    def _answer(prompt: str) -> str:
        prompts.append(prompt)
        return "n"

    monkeypatch.setattr("builtins.input", _answer)

    assert cli.main(["delete", "7"]) == 0

    assert prompts == ["Are you sure you want to delete this alert? [y/N] "]
    assert "Cancelled." in capsys.readouterr().out
    assert "7" in service.rules


def test_delete_confirmed_interactively(service, monkeypatch, capsys) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr("builtins.input", lambda prompt: "yes")

    assert cli.main(["delete", "7"]) == 0

    assert "Alert 7 deleted." in capsys.readouterr().out
    assert service.rules == {}


def test_delete_with_yes(service, capsys) -> None:  # type: ignore[no-untyped-def]
    assert cli.main(["delete", "7", "--yes"]) == 0

    assert "Alert 7 deleted." in capsys.readouterr().out
    assert service.rules == {}


def test_reset_reports_refetched_status(service, capsys) -> None:  # type: ignore[no-untyped-def]
    assert cli.main(["reset", "7"]) == 0

    assert "current status: Normal" in capsys.readouterr().out
    assert [request[:2] for request in service.requests] == [
        ("POST", "/alerts/7/reset"),
        ("GET", "/alerts"),
    ]


def test_hives_lists_selector_labels(service, capsys) -> None:  # type: ignore[no-untyped-def]
    assert cli.main(["hives"]) == 0

    assert "3  Apiary North (Hill)" in capsys.readouterr().out


def test_watch_stops_after_requested_cycles(service, monkeypatch, capsys) -> None:  # type: ignore[no-untyped-def]
    real_sleep = cli.asyncio.sleep

    async def fake_sleep(delay: float) -> None:
        await real_sleep(0)

    monkeypatch.setattr("hivealerts.services.alert_registry.asyncio.sleep", fake_sleep)

    assert cli.main(["watch", "--interval", "5", "--cycles", "2"]) == 0

    assert capsys.readouterr().out.count("Overheat") >= 2
