from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from hivealerts.config import DEFAULT_API_BASE_URL, Settings


def test_defaults() -> None:
    settings = Settings()

    assert settings.api_base_url == DEFAULT_API_BASE_URL
    assert settings.api_token is None
    assert settings.api_token_value() is None
    assert settings.refresh_interval_seconds == 60.0
    assert settings.observability_enabled is False


def test_reads_environment(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setenv("HIVEALERTS_API_BASE_URL", "https://hives.example.org/api/")
    monkeypatch.setenv("HIVEALERTS_API_TOKEN", "session-abc")
    monkeypatch.setenv("HIVEALERTS_REFRESH_INTERVAL_SECONDS", "15")

    settings = Settings()

    assert settings.api_base_url == "https://hives.example.org/api"
    assert settings.api_token_value() == "session-abc"
    assert settings.refresh_interval_seconds == 15.0


def test_token_is_not_rendered_in_repr() -> None:
    settings = Settings(HIVEALERTS_API_TOKEN="session-abc")

    assert "session-abc" not in repr(settings)


def test_blank_token_counts_as_missing() -> None:
    assert Settings(HIVEALERTS_API_TOKEN="   ").api_token is None


def test_loads_values_from_env_file(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    env_file = tmp_path / ".env"
    env_file.write_text(
        "HIVEALERTS_API_BASE_URL=http://10.0.0.5:8080/api\nLOG_LEVEL=DEBUG\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)

    settings = Settings(_env_file=str(env_file))

    assert settings.api_base_url == "http://10.0.0.5:8080/api"
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("HIVEALERTS_API_BASE_URL", "ftp://hives.example.org"),
        ("HIVEALERTS_REQUEST_TIMEOUT_SECONDS", "0"),
        ("HIVEALERTS_REFRESH_INTERVAL_SECONDS", "-5"),
    ],
)
def test_invalid_values_are_rejected(field: str, value: str) -> None:
    with pytest.raises(ValidationError):
        Settings(**{field: value})
