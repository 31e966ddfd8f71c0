from hivealerts.security.redaction import (
    REDACTED,
    mask_secret,
    redact_data,
    sanitize_mapping,
    sanitize_text,
)

__all__ = [
    "REDACTED",
    "mask_secret",
    "redact_data",
    "sanitize_mapping",
    "sanitize_text",
]
