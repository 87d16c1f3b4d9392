"""Fixtures for runner tests."""

from collections.abc import Callable
from typing import Protocol

import pytest

from scope_runner.events import RunnerListener
from scope_runner.models.case import CaseInfo
from scope_runner.models.result import CaseResult, RunResults
from scope_runner.runner import TestRunner


class RecordFn(Protocol):
    """Protocol for building bodies that record their invocation."""

    def __call__(
        self,
        label: str,
        *,
        then: Callable[[], None] | None = None,
        error: Exception | None = None,
    ) -> Callable[[], None]:
        """Return a body appending ``label`` to the call log when invoked."""


class RecordingListener(RunnerListener):
    """Listener keeping every event it receives, in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []
        self.finished: list[RunResults] = []

    def on_active_file_changed(self, file_path: str | None) -> None:
        self.events.append(("file", file_path))

    def on_group_started(self, title: str) -> None:
        self.events.append(("group_started", title))

    def on_group_finished(self, title: str, elapsed_ms: float) -> None:
        self.events.append(("group_finished", title))

    def on_case_started(self, case: CaseInfo) -> None:
        self.events.append(("case_started", case.title))

    def on_case_finished(self, result: CaseResult) -> None:
        self.events.append(("case_finished", result.title))

    def on_run_finished(self, results: RunResults) -> None:
        self.events.append(("run_finished", results.total_tests))
        self.finished.append(results)


@pytest.fixture
def runner() -> TestRunner:
    """Create a runner with default configuration."""
    return TestRunner()


@pytest.fixture
def listener(runner: TestRunner) -> RecordingListener:
    """Attach a recording listener to the runner."""
    recording = RecordingListener()
    runner.add_listener(recording)
    return recording


@pytest.fixture
def calls() -> list[str]:
    """Ordered log of invoked bodies."""
    return []


@pytest.fixture
def record(calls: list[str]) -> RecordFn:
    """Build bodies that append to the call log, then optionally continue."""

    def make(
        label: str,
        *,
        then: Callable[[], None] | None = None,
        error: Exception | None = None,
    ) -> Callable[[], None]:
        def body() -> None:
            calls.append(label)
            if then is not None:
                then()
            if error is not None:
                raise error

        return body

    return make
