"""Shortcut functions acting on the registry bound to the current context.

The web middleware binds a fresh registry for every request, so code deep
in a request handler can call ``start_timer()`` without passing the
registry around::

    with bound(TimerRegistry()):
        start_timer("db", "Load user")
        ...
        stop_timer("db")
"""
from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator, Optional

from .core.registry import TimerRegistry
from .domain.timers import TimerError, skip_origin_frames

skip_origin_frames(__file__)

_current: ContextVar[Optional[TimerRegistry]] = ContextVar("timerpanel_registry", default=None)


class NoActiveRegistry(TimerError):
    """Raised when a shortcut runs with no registry bound."""


def activate(registry: TimerRegistry) -> Token:
    return _current.set(registry)


def deactivate(token: Token) -> None:
    _current.reset(token)


@contextmanager
def bound(registry: TimerRegistry) -> Iterator[TimerRegistry]:
    token = activate(registry)
    try:
        yield registry
    finally:
        deactivate(token)


def current_registry() -> TimerRegistry:
    registry = _current.get()
    if registry is None:
        raise NoActiveRegistry("no timer registry is bound to this context")
    return registry


def start_timer(key: Optional[str] = None, title: Optional[str] = None) -> str:
    return current_registry().start(key, title)


def start_timer_sum(key: Optional[str] = None, title: Optional[str] = None) -> str:
    return current_registry().start_sum(key, title)


def start_timer_stack(key: Optional[str] = None, title: Optional[str] = None) -> str:
    return current_registry().start_stack(key, title)


def stop_timer(key: Optional[str] = None) -> str:
    return current_registry().stop(key)


def get_last_started_timer() -> Optional[str]:
    return current_registry().get_last_started()


__all__ = [
    "NoActiveRegistry",
    "activate",
    "bound",
    "current_registry",
    "deactivate",
    "get_last_started_timer",
    "start_timer",
    "start_timer_stack",
    "start_timer_sum",
    "stop_timer",
]
