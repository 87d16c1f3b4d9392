"""Listener interface and dispatch for the runner's result stream."""

import inspect
import logging
from collections.abc import Sequence

from scope_runner.models.case import CaseInfo
from scope_runner.models.result import CaseResult, RunResults

log = logging.getLogger(__name__)

STATUS_SYMBOLS = {
    "success": "✓",
    "fail": "✗",
    "timeout": "⏱",
    "skipped": "-",
}


class RunnerListener:
    """Receives runner events. Override only the events of interest."""

    def on_active_file_changed(self, file_path: str | None) -> None:
        """The declaring file of the entry about to be visited changed."""

    def on_group_started(self, title: str) -> None:
        """A group is about to run its body."""

    def on_group_finished(self, title: str, elapsed_ms: float) -> None:
        """A group and all of its children finished."""

    def on_case_started(self, case: CaseInfo) -> None:
        """A case body is about to run."""

    async def before_case_result(self, result: CaseResult) -> None:
        """Inspect or rewrite a result before it is counted.

        Raising turns the case into a failure carrying the raised error. The
        ``outcome`` and ``error`` fields may also be edited in place.
        """

    def on_case_finished(self, result: CaseResult) -> None:
        """A case result was counted."""

    def on_run_finished(self, results: RunResults) -> None:
        """The run completed or was cancelled."""


class EventBus:
    """Fan-out of runner events to listeners in registration order."""

    def __init__(self) -> None:
        self._listeners: list[RunnerListener] = []
        self._one_shot: list[RunnerListener] = []

    @property
    def listeners(self) -> Sequence[RunnerListener]:
        return tuple(self._listeners)

    def add_listener(self, listener: RunnerListener, *, once: bool = False) -> None:
        """Register a listener. Adding a registered listener again does nothing.

        Args:
            listener: Receiver of runner events
            once: Drop the listener after the next run finishes

        """
        if listener in self._listeners:
            return
        self._listeners.append(listener)
        if once:
            self._one_shot.append(listener)

    def remove_listener(self, listener: RunnerListener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        if listener in self._listeners:
            self._listeners.remove(listener)
        if listener in self._one_shot:
            self._one_shot.remove(listener)

    def active_file_changed(self, file_path: str | None) -> None:
        for listener in self.listeners:
            listener.on_active_file_changed(file_path)

    def group_started(self, title: str) -> None:
        for listener in self.listeners:
            listener.on_group_started(title)

    def group_finished(self, title: str, elapsed_ms: float) -> None:
        for listener in self.listeners:
            listener.on_group_finished(title, elapsed_ms)

    def case_started(self, case: CaseInfo) -> None:
        for listener in self.listeners:
            listener.on_case_started(case)

    async def prepare_result(self, result: CaseResult) -> None:
        """Hand a pending result to every listener before it is counted."""
        for listener in self.listeners:
            try:
                if inspect.isawaitable(pending := listener.before_case_result(result)):
                    await pending
            except Exception as exc:
                log.debug(
                    "Listener %r failed case %r: %s", listener, result.title, exc
                )
                result.outcome = "fail"
                result.error = exc

    def case_finished(self, result: CaseResult) -> None:
        for listener in self.listeners:
            listener.on_case_finished(result)

    def run_finished(self, results: RunResults) -> None:
        for listener in self.listeners:
            listener.on_run_finished(results)

        for listener in self._one_shot:
            self._listeners.remove(listener)
        self._one_shot.clear()


class LoggingListener(RunnerListener):
    """Logs the result stream and an end-of-run summary."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.log = logger or log

    def on_active_file_changed(self, file_path: str | None) -> None:
        if file_path is not None:
            self.log.info("Running cases from %s", file_path)

    def on_group_started(self, title: str) -> None:
        self.log.debug("Entering group %s", title)

    def on_case_finished(self, result: CaseResult) -> None:
        symbol = STATUS_SYMBOLS.get(result.outcome, "?")
        self.log.info(
            "%s %s: %s (%.2fms)",
            symbol,
            " > ".join([*result.title_chain, result.title]),
            result.outcome,
            result.elapsed_ms,
        )
        if result.error is not None and result.outcome != "success":
            self.log.info("  Error: %s", result.error)

    def on_run_finished(self, results: RunResults) -> None:
        self.log.info("=" * 80)
        self.log.info(
            "Run finished in %.2fms: %d passed, %d failed, %d timed out, %d skipped",
            results.elapsed_ms,
            results.total_successes,
            results.total_failures,
            results.total_timeouts,
            results.total_skipped,
        )
        self.log.info("=" * 80)
