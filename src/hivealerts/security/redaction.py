from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "***REDACTED***"

_SENSITIVE_PARTS = ("token", "secret", "password", "authorization", "credential")
_SENSITIVE_EXACT_KEYS = {"auth", "bearer", "jwt", "api_key", "apikey"}

_PLAIN_SECRET_PATTERNS = (
    re.compile(r"(?im)(authorization\s*[:=]\s*)(bearer\s+)?([^\s,;\"']+)"),
    re.compile(r"(?im)(hivealerts_api_token\s*[:=]\s*)([^\s,;]+)"),
)
_BARE_BEARER_PATTERN = re.compile(r"(?i)(bearer\s+)([A-Za-z0-9\-_.~+/]+=*)")
_QUERY_PARAM_PATTERN = re.compile(r"([?&])(token|access_token|jwt)=([^&\s]+)", re.IGNORECASE)
_JSON_KEY_VALUE_PATTERN = re.compile(
    r'("(?:token|access_token|refresh_token|password|secret|authorization|jwt)"\s*:\s*")([^"\\]*)(")',
    re.IGNORECASE,
)


def _is_sensitive_key(key: object) -> bool:
    normalized = str(key).replace("-", "_").casefold()
    if normalized in _SENSITIVE_EXACT_KEYS:
        return True
    return any(part in normalized for part in _SENSITIVE_PARTS)


def mask_secret(value: str) -> str:
    if not value:
        return REDACTED
    if len(value) > 8:
        return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"
    if len(value) <= 2:
        return "*" * len(value)
    return f"{'*' * (len(value) - 2)}{value[-2:]}"


def _redact_match(match: re.Match[str]) -> str:
    prefix = match.group(1)
    optional_scheme = ""
    if match.lastindex and match.lastindex >= 3:
        optional_scheme = match.group(2) or ""
    return f"{prefix}{optional_scheme}[REDACTED]"


def sanitize_text(text: str, known_secrets: Iterable[str] = ()) -> str:
    redacted = str(text)
    for secret in known_secrets:
        if secret:
            redacted = redacted.replace(secret, mask_secret(str(secret)))

    for pattern in _PLAIN_SECRET_PATTERNS:
        redacted = pattern.sub(_redact_match, redacted)
    redacted = _BARE_BEARER_PATTERN.sub(lambda m: f"{m.group(1)}[REDACTED]", redacted)
    redacted = _QUERY_PARAM_PATTERN.sub(
        lambda m: f"{m.group(1)}{m.group(2)}={mask_secret(m.group(3))}", redacted
    )
    return _JSON_KEY_VALUE_PATTERN.sub(
        lambda m: f"{m.group(1)}{mask_secret(m.group(2))}{m.group(3)}", redacted
    )


def sanitize_mapping(d: Mapping[str, Any]) -> dict[str, Any]:
    sanitized: dict[str, Any] = {}
    for key, value in d.items():
        key_str = str(key)
        if _is_sensitive_key(key_str):
            sanitized[key_str] = mask_secret(str(value)) if value is not None else REDACTED
            continue
        sanitized[key_str] = redact_data(value)
    return sanitized


def redact_data(value: Any) -> Any:
    if isinstance(value, Mapping):
        return sanitize_mapping(value)
    if isinstance(value, list):
        return [redact_data(item) for item in value]
    if isinstance(value, tuple):
        return tuple(redact_data(item) for item in value)
    if isinstance(value, str):
        return sanitize_text(value)
    return value
