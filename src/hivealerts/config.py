from __future__ import annotations

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_BASE_URL = "http://localhost:8080/api"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_base_url: str = Field(default=DEFAULT_API_BASE_URL, alias="HIVEALERTS_API_BASE_URL")
    api_token: SecretStr | None = Field(default=None, alias="HIVEALERTS_API_TOKEN")
    request_timeout_seconds: float = Field(
        default=10.0, alias="HIVEALERTS_REQUEST_TIMEOUT_SECONDS"
    )
    refresh_interval_seconds: float = Field(
        default=60.0, alias="HIVEALERTS_REFRESH_INTERVAL_SECONDS"
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    observability_enabled: bool = Field(default=False, alias="OBSERVABILITY_ENABLED")
    observability_otlp_endpoint: str | None = Field(
        default=None, alias="OBSERVABILITY_OTLP_ENDPOINT"
    )

    @field_validator("api_base_url")
    def normalize_api_base_url(cls, value: str) -> str:
        cleaned = value.strip().rstrip("/")
        if not cleaned.startswith(("http://", "https://")):
            raise ValueError("HIVEALERTS_API_BASE_URL must be an http(s) URL")
        return cleaned

    @field_validator("api_token", mode="before")
    def blank_token_is_missing(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("request_timeout_seconds")
    def validate_request_timeout_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("HIVEALERTS_REQUEST_TIMEOUT_SECONDS must be > 0")
        return value

    @field_validator("refresh_interval_seconds")
    def validate_refresh_interval_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("HIVEALERTS_REFRESH_INTERVAL_SECONDS must be > 0")
        return value

    def api_token_value(self) -> str | None:
        if self.api_token is None:
            return None
        return self.api_token.get_secret_value()
