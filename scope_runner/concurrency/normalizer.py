"""Normalize case, hook and group callbacks into a single awaitable contract."""

import asyncio
import inspect
import logging
from collections.abc import MutableSet
from typing import Any

from scope_runner.models.case import Callback

log = logging.getLogger(__name__)

_FIXED_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


def fixed_parameter_count(callback: Callback) -> int:
    """Count positional parameters that have no default value.

    Callables whose signature cannot be inspected (some builtins) count as
    taking no parameters.
    """
    try:
        signature = inspect.signature(callback)
    except (TypeError, ValueError):
        return 0

    return sum(
        1
        for parameter in signature.parameters.values()
        if parameter.kind in _FIXED_KINDS
        and parameter.default is inspect.Parameter.empty
    )


def invoke_callback(
    callback: Callback, pending: MutableSet[asyncio.Future[Any]] | None = None
) -> asyncio.Future[Any]:
    """Invoke a callback and return a future for its outcome.

    Three calling conventions are supported:

    - A callback taking exactly one fixed parameter receives a ``done``
      function and must call it once. Passing an exception instance to
      ``done`` fails the future; any other value succeeds.
    - A callback returning an awaitable has that awaitable adopted.
    - Any other return value, including an exception instance, succeeds.

    A done-style callback may itself be a coroutine function. Its body is
    scheduled as a task and, when ``pending`` is given, held there until it
    finishes.

    Must be called with a running event loop.
    """
    loop = asyncio.get_running_loop()

    if fixed_parameter_count(callback) == 1:
        return _invoke_with_done(loop, callback, pending)

    try:
        value = callback()
    except Exception as exc:
        future: asyncio.Future[Any] = loop.create_future()
        future.set_exception(exc)
        return future

    if inspect.isawaitable(value):
        return asyncio.ensure_future(value)

    future = loop.create_future()
    future.set_result(value)
    return future


def _invoke_with_done(
    loop: asyncio.AbstractEventLoop,
    callback: Callback,
    pending: MutableSet[asyncio.Future[Any]] | None,
) -> asyncio.Future[Any]:
    future: asyncio.Future[Any] = loop.create_future()

    def done(result: Any = None) -> None:
        if future.done():
            log.debug("Ignoring repeated completion signal from %r", callback)
            return
        if isinstance(result, BaseException):
            future.set_exception(result)
        else:
            future.set_result(result)

    def on_body_finished(task: asyncio.Future[Any]) -> None:
        if pending is not None:
            pending.discard(task)
        if task.cancelled():
            return
        if (exc := task.exception()) is not None and not future.done():
            future.set_exception(exc)

    try:
        value = callback(done)
    except Exception as exc:
        if not future.done():
            future.set_exception(exc)
        return future

    # The body may itself be a coroutine that signals completion later; it
    # must still run, but only its errors matter.
    if inspect.isawaitable(value):
        body = asyncio.ensure_future(value)
        if pending is not None:
            pending.add(body)
        body.add_done_callback(on_body_finished)

    return future
