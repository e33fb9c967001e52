from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class TerminalRequest:
    """Who is asking: the request, the till it came from and the staff member on it."""

    request_id: str | None = None
    terminal_id: str | None = None
    staff_id: str | None = None


_EMPTY = TerminalRequest()
_CURRENT: ContextVar[TerminalRequest] = ContextVar("terminal_request", default=_EMPTY)


def current_request() -> TerminalRequest:
    return _CURRENT.get()


def set_request_context(
    *, request_id: str | None = None, terminal_id: str | None = None, staff_id: str | None = None
) -> Token[TerminalRequest]:
    """Bind identifiers for the running request; fields left as None keep their current value."""
    changes = {
        key: value
        for key, value in (("request_id", request_id), ("terminal_id", terminal_id), ("staff_id", staff_id))
        if value is not None
    }
    return _CURRENT.set(replace(_CURRENT.get(), **changes))


def reset_request_context(token: Token[TerminalRequest]) -> None:
    _CURRENT.reset(token)


def get_request_id() -> str | None:
    return _CURRENT.get().request_id


def get_terminal_id() -> str | None:
    return _CURRENT.get().terminal_id


def get_staff_id() -> str | None:
    return _CURRENT.get().staff_id


def clear_request_context() -> None:
    _CURRENT.set(_EMPTY)
