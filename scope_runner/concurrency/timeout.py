"""Deadline wrapper for awaitables that never interrupts the wrapped work."""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


class CaseTimeoutError(Exception):
    """Raised when an operation does not settle before its deadline.

    Distinguishes "ran out of time" from "raised an error".
    """

    def __init__(self, elapsed_ms: float, timeout_ms: float) -> None:
        super().__init__(
            f"Async task timeout exceeded! Elapsed: {elapsed_ms:.0f}ms, "
            f"timeout: {timeout_ms:g}ms."
        )
        self.elapsed_ms = elapsed_ms
        self.timeout_ms = timeout_ms


def wrap_with_timeout(operation: Awaitable[T], timeout_ms: float) -> Awaitable[T]:
    """Race an operation against a deadline.

    A non-positive ``timeout_ms`` returns ``operation`` itself. Otherwise the
    returned awaitable yields the operation's outcome if it settles first, or
    raises :class:`CaseTimeoutError` with the actual elapsed time. The operation
    keeps running after a timeout; its late outcome is discarded.
    """
    if timeout_ms <= 0:
        return operation
    return _race(asyncio.ensure_future(operation), timeout_ms)


async def _race(operation: asyncio.Future[T], timeout_ms: float) -> T:
    loop = asyncio.get_running_loop()
    started = loop.time()

    done, _ = await asyncio.wait({operation}, timeout=timeout_ms / 1000)
    if operation in done:
        return operation.result()

    elapsed_ms = (loop.time() - started) * 1000
    operation.add_done_callback(_discard_late_outcome)
    raise CaseTimeoutError(elapsed_ms, timeout_ms)


def _discard_late_outcome(operation: asyncio.Future[Any]) -> None:
    if operation.cancelled():
        return
    # Retrieving the exception marks it handled for asyncio.
    if (exc := operation.exception()) is not None:
        log.debug("Discarding late failure after timeout: %r", exc)
    else:
        log.debug("Discarding late result after timeout")
