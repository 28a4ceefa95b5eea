"""Helpers for caller-supplied functions (accessors, filters, bulk actions)."""

import inspect
from typing import Any, Callable


async def maybe_await(value: Any) -> Any:
    """Await *value* if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


def callable_name(func: Callable[..., Any], index: int) -> str:
    """Stable accessor key for a list function.

    Lambdas and other anonymous callables are named ``f_<index>`` after their
    position in the configured field list.
    """
    name = getattr(func, "__name__", "")
    if not name or name == "<lambda>" or not name.isidentifier():
        return f"f_{index}"
    return name
