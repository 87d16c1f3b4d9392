"""Scheduler that discovers groups lazily and runs their cases in order.

Execution order for a single case::

    setup_once -> setup_each -> case -> teardown_each -> listeners -> count

``teardown_once`` hooks of a scope run when traversal leaves that scope, and
only if a case beneath it actually ran.
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from os import PathLike
from typing import Any

from scope_runner.concurrency.normalizer import invoke_callback
from scope_runner.concurrency.timeout import CaseTimeoutError, wrap_with_timeout
from scope_runner.events import EventBus, RunnerListener
from scope_runner.hooks import HookLedger, HookPhase
from scope_runner.models.case import (
    Callback,
    CaseInfo,
    CaseOptions,
    Entry,
    GroupInfo,
)
from scope_runner.models.config import RunnerConfig, merge_config
from scope_runner.models.result import CaseResult, RunResults

log = logging.getLogger(__name__)


class RunnerUsageError(RuntimeError):
    """Raised when the runner API is called in a state that does not allow it."""


@dataclass(kw_only=True)
class Scope:
    """Traversal state of one entered group, or of the root."""

    title_chain: Sequence[str] = ()
    children: list[Entry] = field(default_factory=list)
    skip_all: bool = False
    first_only_index: int | None = None
    ran_case: bool = False

    def add(self, entry: Entry) -> None:
        if entry.only and self.first_only_index is None:
            self.first_only_index = len(self.children)
        self.children.append(entry)

    def runnable_children(self) -> Sequence[Entry]:
        """Children to visit: the first focused child if any, else all of them."""
        if self.first_only_index is not None:
            return [self.children[self.first_only_index]]
        return list(self.children)

    def clear(self) -> None:
        self.children.clear()
        self.first_only_index = None
        self.ran_case = False


class TestRunner:
    """Registers groups, cases and hooks, then runs them on the event loop."""

    __test__ = False

    def __init__(
        self,
        config: RunnerConfig | Mapping[str, Any] | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.config = merge_config(RunnerConfig(), config)
        self.events = events if events is not None else EventBus()

        self._root = Scope()
        self._scopes: list[Scope] = [self._root]
        self._hooks = HookLedger()

        self._current_case: CaseInfo | None = None
        self._current_hook_phase: HookPhase | None = None
        self._current_run: asyncio.Task[RunResults] | None = None
        self._cancelled = False
        self._results = RunResults()
        # Coroutine bodies of done-style callbacks, held until they finish or
        # the run ends.
        self._pending_bodies: set[asyncio.Future[Any]] = set()

        self._registration_file: str | None = None
        self._active_file: str | None = None

    @property
    def is_running(self) -> bool:
        return self._current_run is not None

    def set_current_file(self, file_path: str | PathLike[str] | None) -> None:
        """Stamp subsequently registered groups and cases with a declaring file."""
        self._registration_file = None if file_path is None else str(file_path)

    def add_listener(self, listener: RunnerListener, *, once: bool = False) -> None:
        """Subscribe to runner events, for the next run only when ``once`` is set."""
        self.events.add_listener(listener, once=once)

    def remove_listener(self, listener: RunnerListener) -> None:
        self.events.remove_listener(listener)

    # Registration

    def group(self, title: str, body: Callback) -> None:
        self._register("group", GroupInfo(title=title, callback=body))

    def group_only(self, title: str, body: Callback) -> None:
        self._register("group_only", GroupInfo(title=title, callback=body, only=True))

    def group_skip(self, title: str, body: Callback) -> None:
        self._register("group_skip", GroupInfo(title=title, callback=body, skip=True))

    def case(
        self,
        title: str,
        body: Callback,
        options: CaseOptions | Mapping[str, Any] | None = None,
    ) -> None:
        self._register("case", self._build_case(title, body, options))

    def case_only(
        self,
        title: str,
        body: Callback,
        options: CaseOptions | Mapping[str, Any] | None = None,
    ) -> None:
        self._register("case_only", self._build_case(title, body, options, only=True))

    def case_skip(
        self,
        title: str,
        body: Callback,
        options: CaseOptions | Mapping[str, Any] | None = None,
    ) -> None:
        self._register("case_skip", self._build_case(title, body, options, skip=True))

    def setup_once(self, body: Callback) -> None:
        self._register_hook("setup_once", body)

    def setup_each(self, body: Callback) -> None:
        self._register_hook("setup_each", body)

    def teardown_each(self, body: Callback) -> None:
        self._register_hook("teardown_each", body)

    def teardown_once(self, body: Callback) -> None:
        self._register_hook("teardown_once", body)

    # Lifecycle

    def run(self) -> asyncio.Task[RunResults]:
        """Start running everything registered so far.

        Must be called from a running event loop. Returns a task resolving to
        the run's results.

        Raises:
            RunnerUsageError: If a run is already in progress

        """
        if self._current_run is not None:
            raise RunnerUsageError(
                "Can't start a test run if one is already in progress!"
            )

        self._current_run = asyncio.get_running_loop().create_task(self._run())
        return self._current_run

    def cancel(self) -> asyncio.Task[RunResults]:
        """Stop entering further groups and cases.

        The case currently executing is allowed to finish. Returns the task of
        the run in flight, which resolves with the results accumulated so far.

        Raises:
            RunnerUsageError: If no run is in progress

        """
        if self._current_run is None:
            raise RunnerUsageError(
                "Not currently executing a test run! Unable to cancel accordingly."
            )

        log.info("Cancelling test run")
        self._cancelled = True
        return self._current_run

    def reset(self) -> None:
        """Drop every pending group, case, hook and result.

        Raises:
            RunnerUsageError: If a run is in progress

        """
        if self._current_run is not None:
            raise RunnerUsageError("Can't reset if a test run is already in progress!")

        self._cancelled = False
        self._results = RunResults()
        self._clear_tree()

    def current_case_info(self) -> CaseInfo:
        """Return the case whose body is executing.

        Raises:
            RunnerUsageError: If no case is executing

        """
        if self._current_case is None:
            raise RunnerUsageError("Can't obtain case info if not actively in a case!")
        return self._current_case

    # Registration helpers

    def _build_case(
        self,
        title: str,
        body: Callback,
        options: CaseOptions | Mapping[str, Any] | None,
        *,
        only: bool = False,
        skip: bool = False,
    ) -> CaseInfo:
        if options is None:
            options = CaseOptions()
        elif not isinstance(options, CaseOptions):
            options = CaseOptions.model_validate(options)

        timeout_ms = options.timeout_ms
        if timeout_ms is not None and timeout_ms <= 0:
            timeout_ms = None

        return CaseInfo(
            title=title,
            callback=body,
            only=only,
            skip=skip,
            timeout_ms=timeout_ms,
        )

    def _register(self, name: str, entry: Entry) -> None:
        self._ensure_can_register(name)
        scope = self._scopes[-1]
        entry = replace(
            entry,
            file_path=self._registration_file,
            skip=entry.skip or scope.skip_all,
        )
        scope.add(entry)

    def _register_hook(self, phase: HookPhase, body: Callback) -> None:
        self._ensure_can_register(phase)
        self._hooks.register(phase, body)

    def _ensure_can_register(self, name: str) -> None:
        if self._current_case is not None:
            raise RunnerUsageError(f"Cannot add a {name} block while executing a case!")
        if self._current_hook_phase is not None:
            raise RunnerUsageError(
                f"Cannot add a {name} block while running {self._current_hook_phase} "
                "hooks!"
            )

    def _clear_tree(self) -> None:
        self._root.clear()
        self._scopes = [self._root]
        self._hooks.reset()
        self._current_case = None
        self._current_hook_phase = None

    # Traversal

    async def _run(self) -> RunResults:
        loop = asyncio.get_running_loop()
        started = loop.time()

        self._cancelled = False
        self._active_file = None
        self._results = results = RunResults()
        log.info("Starting test run (%d top-level entries)", len(self._root.children))

        try:
            await self._drain(self._root)
            if self._root.ran_case:
                await self._run_hooks("teardown_once", self._hooks.teardown_once())
        except Exception as exc:
            log.error("Test run aborted: %s", exc)
            raise
        finally:
            self._current_run = None
            self._pending_bodies.clear()
            self._clear_tree()

        results.elapsed_ms = (loop.time() - started) * 1000
        if self._cancelled:
            log.info("Test run cancelled after %d case(s)", results.total_tests)
        log.info(
            "Test run completed: %d case(s), %d passed, %d failed, %d timed out",
            results.total_tests,
            results.total_successes,
            results.total_failures,
            results.total_timeouts,
        )

        self._results = RunResults()
        self.events.run_finished(results)
        return results

    async def _drain(self, scope: Scope) -> None:
        for entry in scope.runnable_children():
            self._announce_file(entry.file_path)
            if self._cancelled:
                return

            if isinstance(entry, GroupInfo):
                await self._run_group(scope, entry)
            else:
                await self._run_case(scope, entry)

    def _announce_file(self, file_path: str | None) -> None:
        if file_path != self._active_file:
            self._active_file = file_path
            self.events.active_file_changed(file_path)

    async def _run_group(self, parent: Scope, group: GroupInfo) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()

        scope = Scope(
            title_chain=(*parent.title_chain, group.title), skip_all=group.skip
        )
        self._scopes.append(scope)
        self._hooks.enter_scope()
        log.debug("Entering group %s", " > ".join(scope.title_chain))
        self.events.group_started(group.title)

        try:
            body = invoke_callback(group.callback, self._pending_bodies)
            await wrap_with_timeout(body, self.config.timeout_for("group"))
            await self._drain(scope)
            if scope.ran_case:
                await self._run_hooks("teardown_once", self._hooks.teardown_once())
        finally:
            self._hooks.exit_scope()
            self._scopes.pop()

        parent.ran_case = parent.ran_case or scope.ran_case
        self.events.group_finished(group.title, (loop.time() - started) * 1000)

    async def _run_case(self, scope: Scope, case: CaseInfo) -> None:
        if case.skip:
            log.debug("Skipping case %s", case.title)
            self._finalize(
                CaseResult(outcome="skipped", case=case, title_chain=scope.title_chain)
            )
            return

        await self._run_hooks("setup_once", self._hooks.claim_setup_once())
        await self._run_hooks("setup_each", self._hooks.setup_each())
        scope.ran_case = True

        self.events.case_started(case)
        self._current_case = case
        try:
            result = await self._run_case_body(scope, case)
            await self._run_hooks("teardown_each", self._hooks.teardown_each())
        finally:
            self._current_case = None

        await self.events.prepare_result(result)
        self._finalize(result)

        if self.config.stop_on_first_fail and result.outcome != "success":
            log.info("Stopping after %s of case %r", result.outcome, case.title)
            self._cancelled = True

    async def _run_case_body(self, scope: Scope, case: CaseInfo) -> CaseResult:
        loop = asyncio.get_running_loop()
        started = loop.time()
        timeout_ms = (
            case.timeout_ms
            if case.timeout_ms is not None
            else self.config.timeout_for("case")
        )

        result = CaseResult(outcome="success", case=case, title_chain=scope.title_chain)
        try:
            body = invoke_callback(case.callback, self._pending_bodies)
            await wrap_with_timeout(body, timeout_ms)
        except CaseTimeoutError as exc:
            log.warning("Case %r timed out after %.0fms", case.title, exc.elapsed_ms)
            result.outcome = "timeout"
            result.error = exc
        except Exception as exc:
            result.outcome = "fail"
            result.error = exc

        result.elapsed_ms = (loop.time() - started) * 1000
        return result

    async def _run_hooks(self, phase: HookPhase, hooks: Sequence[Callback]) -> None:
        """Run all hooks due at one boundary under a single deadline."""
        if not hooks:
            return

        log.debug("Running %d %s hook(s)", len(hooks), phase)
        self._current_hook_phase = phase
        try:
            await wrap_with_timeout(
                _run_in_order(hooks, self._pending_bodies),
                self.config.timeout_for(phase),
            )
        finally:
            self._current_hook_phase = None

    def _finalize(self, result: CaseResult) -> None:
        self._results.record(result)
        self.events.case_finished(result)


async def _run_in_order(
    hooks: Sequence[Callback], pending: set[asyncio.Future[Any]]
) -> None:
    for hook in hooks:
        await invoke_callback(hook, pending)
