from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """Bearer credential owned by the authentication layer."""

    def get_token(self) -> str | None: ...

    def invalidate(self) -> None: ...


class StaticCredentialStore:
    def __init__(self, token: str | None = None) -> None:
        self._token = token.strip() if token and token.strip() else None

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token.strip() if token and token.strip() else None

    def invalidate(self) -> None:
        if self._token is not None:
            logger.info("credential_invalidated")
        self._token = None
