from __future__ import annotations

from enum import Enum

import httpx

from hivealerts.adapters.alerts_api import ApiErrorKind, ApiRequestError
from hivealerts.domain.conditions import ConditionValidationError

NOT_AUTHENTICATED_MESSAGE = "You must be logged in. Please log in again."
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please log in again."
CANNOT_CONNECT_MESSAGE = "Cannot connect to the server. Please check your connection."


class DraftValidationError(ValueError):
    """Raised when a draft alert rule is not ready for submission."""


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    NOT_AUTHENTICATED = "not_authenticated"
    AUTH = "auth"
    REJECTED = "rejected"
    TRANSPORT = "transport"
    UNEXPECTED = "unexpected"


def classify_api_error(exc: Exception) -> ErrorCategory:
    if isinstance(exc, DraftValidationError | ConditionValidationError):
        return ErrorCategory.VALIDATION
    if isinstance(exc, ApiRequestError):
        if exc.kind is ApiErrorKind.NOT_AUTHENTICATED:
            return ErrorCategory.NOT_AUTHENTICATED
        if exc.kind is ApiErrorKind.AUTH:
            return ErrorCategory.AUTH
        if exc.kind is ApiErrorKind.NETWORK:
            return ErrorCategory.TRANSPORT
        if exc.kind in {ApiErrorKind.CLIENT, ApiErrorKind.SERVER}:
            return ErrorCategory.REJECTED
    if isinstance(exc, httpx.TransportError | TimeoutError | ConnectionError):
        return ErrorCategory.TRANSPORT
    return ErrorCategory.UNEXPECTED


def operator_message(exc: Exception, fallback: str) -> str:
    category = classify_api_error(exc)
    if category is ErrorCategory.VALIDATION:
        return str(exc) or fallback
    if category is ErrorCategory.NOT_AUTHENTICATED:
        return NOT_AUTHENTICATED_MESSAGE
    if category is ErrorCategory.AUTH:
        return SESSION_EXPIRED_MESSAGE
    if isinstance(exc, ApiRequestError) and exc.remote_message:
        return exc.remote_message
    if category is ErrorCategory.TRANSPORT:
        return CANNOT_CONNECT_MESSAGE
    return fallback
