"""Tests for the event bus and logging listener."""

import logging
from unittest.mock import AsyncMock, Mock

import pytest

from scope_runner.events import EventBus, LoggingListener, RunnerListener
from scope_runner.testing.factories import (
    CaseInfoFactory,
    CaseResultFactory,
    RunResultsFactory,
)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


def test_listeners_are_notified_in_registration_order(bus: EventBus) -> None:
    """Fan-out follows the order listeners were added."""
    order: list[str] = []
    first, second = Mock(spec=RunnerListener), Mock(spec=RunnerListener)
    first.on_group_started.side_effect = lambda title: order.append("first")
    second.on_group_started.side_effect = lambda title: order.append("second")
    bus.add_listener(first)
    bus.add_listener(second)

    bus.group_started("G")

    assert order == ["first", "second"]


def test_every_event_reaches_listener(bus: EventBus) -> None:
    """Each bus method forwards to the matching listener hook."""
    listener = Mock(spec=RunnerListener)
    bus.add_listener(listener)
    case = CaseInfoFactory.build()
    result = CaseResultFactory.build(case=case)
    results = RunResultsFactory.build()

    bus.active_file_changed("a.py")
    bus.group_started("G")
    bus.case_started(case)
    bus.case_finished(result)
    bus.group_finished("G", 1.5)
    bus.run_finished(results)

    listener.on_active_file_changed.assert_called_once_with("a.py")
    listener.on_group_started.assert_called_once_with("G")
    listener.on_case_started.assert_called_once_with(case)
    listener.on_case_finished.assert_called_once_with(result)
    listener.on_group_finished.assert_called_once_with("G", 1.5)
    listener.on_run_finished.assert_called_once_with(results)


def test_adding_a_listener_twice_registers_it_once(bus: EventBus) -> None:
    """A listener already registered is not added again."""
    listener = Mock(spec=RunnerListener)

    bus.add_listener(listener)
    bus.add_listener(listener)
    bus.group_started("G")

    assert bus.listeners == (listener,)
    listener.on_group_started.assert_called_once_with("G")


def test_one_shot_listener_is_dropped_after_run_finished(bus: EventBus) -> None:
    """A listener added with once=True hears a single run."""
    one_shot = Mock(spec=RunnerListener)
    regular = Mock(spec=RunnerListener)
    bus.add_listener(one_shot, once=True)
    bus.add_listener(regular)

    bus.run_finished(RunResultsFactory.build())
    bus.group_started("next run")

    assert bus.listeners == (regular,)
    one_shot.on_run_finished.assert_called_once()
    one_shot.on_group_started.assert_not_called()


def test_removed_one_shot_listener_is_forgotten(bus: EventBus) -> None:
    """Removing a one-shot listener before the run ends is allowed."""
    one_shot = Mock(spec=RunnerListener)
    bus.add_listener(one_shot, once=True)

    bus.remove_listener(one_shot)
    bus.run_finished(RunResultsFactory.build())

    assert bus.listeners == ()
    one_shot.on_run_finished.assert_not_called()


def test_remove_unknown_listener_is_ignored(bus: EventBus) -> None:
    """Removing a listener that was never added does nothing."""
    bus.remove_listener(RunnerListener())

    assert bus.listeners == ()


def test_base_listener_ignores_everything(bus: EventBus) -> None:
    """The default listener hooks are no-ops."""
    bus.add_listener(RunnerListener())

    bus.group_started("G")
    bus.run_finished(RunResultsFactory.build())


class TestPrepareResult:
    """Tests for EventBus.prepare_result."""

    async def test_awaits_async_listeners(self, bus: EventBus) -> None:
        """Awaitable results of listeners are awaited."""
        listener = Mock(spec=RunnerListener)
        listener.before_case_result = AsyncMock()
        bus.add_listener(listener)
        result = CaseResultFactory.build()

        await bus.prepare_result(result)

        listener.before_case_result.assert_awaited_once_with(result)
        assert result.outcome == "success"

    async def test_failure_is_recorded_and_later_listeners_run(
        self, bus: EventBus
    ) -> None:
        """A raising listener fails the result without stopping the fan-out."""
        error = RuntimeError("rejected")
        failing = Mock(spec=RunnerListener)
        failing.before_case_result = AsyncMock(side_effect=error)
        later = Mock(spec=RunnerListener)
        later.before_case_result = AsyncMock()
        bus.add_listener(failing)
        bus.add_listener(later)
        result = CaseResultFactory.build()

        await bus.prepare_result(result)

        assert result.outcome == "fail"
        assert result.error is error
        later.before_case_result.assert_awaited_once_with(result)

    async def test_sync_failure_is_recorded(self, bus: EventBus) -> None:
        """A synchronous raise is treated like an async one."""
        listener = Mock(spec=RunnerListener)
        listener.before_case_result = Mock(side_effect=KeyError("sync"))
        bus.add_listener(listener)
        result = CaseResultFactory.build(outcome="timeout")

        await bus.prepare_result(result)

        assert result.outcome == "fail"
        assert isinstance(result.error, KeyError)


class TestLoggingListener:
    """Tests for LoggingListener."""

    def test_logs_failure_with_error(self, caplog: pytest.LogCaptureFixture) -> None:
        """Failed results are logged with their error."""
        listener = LoggingListener()
        result = CaseResultFactory.build(
            outcome="fail",
            case=CaseInfoFactory.build(title="divides"),
            title_chain=("math",),
            error=ZeroDivisionError("division by zero"),
        )

        with caplog.at_level(logging.INFO):
            listener.on_case_finished(result)

        assert "✗ math > divides: fail" in caplog.text
        assert "Error: division by zero" in caplog.text

    def test_uses_given_logger(self, caplog: pytest.LogCaptureFixture) -> None:
        """Output goes to the supplied logger."""
        listener = LoggingListener(logging.getLogger("reports"))

        with caplog.at_level(logging.INFO, logger="reports"):
            listener.on_active_file_changed("tests/test_math.py")

        assert caplog.records[0].name == "reports"
        assert "Running cases from tests/test_math.py" in caplog.text

    def test_summary(self, caplog: pytest.LogCaptureFixture) -> None:
        """The run summary lists every tally."""
        results = RunResultsFactory.build(
            elapsed_ms=12.5,
            total_tests=3,
            total_successes=1,
            total_failures=1,
            total_timeouts=1,
            total_skipped=2,
        )

        with caplog.at_level(logging.INFO):
            LoggingListener().on_run_finished(results)

        assert (
            "Run finished in 12.50ms: 1 passed, 1 failed, 1 timed out, 2 skipped"
            in caplog.text
        )
