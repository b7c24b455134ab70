"""Small helpers for code that accepts both sync and async collaborators."""

import inspect
from typing import Any, Awaitable, Callable


SleepFunc = Callable[[float], Awaitable[Any]]


async def maybe_await(value: Any) -> Any:
    """Return ``value``, awaiting it first when it is awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


async def call_maybe_async(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call ``func`` and await the result if the callable was a coroutine."""
    return await maybe_await(func(*args, **kwargs))
