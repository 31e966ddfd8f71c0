from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType

CONTEXT_FIELDS = ("view", "rule_id", "hive_id", "request_id")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_CURRENT: ContextVar[Mapping[str, str]] = ContextVar("hivealerts_log_context", default=_EMPTY)


def get_logging_context() -> dict[str, str]:
    return dict(_CURRENT.get())


@contextmanager
def with_logging_context(**context: str | None) -> Iterator[None]:
    """Bind correlation fields for log records emitted inside the block.

    Unknown keys and ``None`` values are ignored; inner bindings shadow outer
    ones and are undone on exit.
    """

    merged = dict(_CURRENT.get())
    for key, value in context.items():
        if key in CONTEXT_FIELDS and value is not None:
            merged[key] = str(value)
    token = _CURRENT.set(MappingProxyType(merged))
    try:
        yield
    finally:
        _CURRENT.reset(token)


@contextmanager
def with_rule_context(rule_id: str | None, view: str | None = None) -> Iterator[None]:
    with with_logging_context(rule_id=rule_id, view=view):
        yield
