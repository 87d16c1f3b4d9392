"""Lazily-discovered, hook-aware test case runner."""

from scope_runner.concurrency.timeout import CaseTimeoutError
from scope_runner.events import EventBus, LoggingListener, RunnerListener
from scope_runner.models.case import CaseInfo, CaseOptions
from scope_runner.models.config import RunnerConfig, TimeoutConfig, merge_config
from scope_runner.models.result import CaseResult, RunResults
from scope_runner.runner import RunnerUsageError, TestRunner

__all__ = [
    "CaseInfo",
    "CaseOptions",
    "CaseResult",
    "CaseTimeoutError",
    "EventBus",
    "LoggingListener",
    "RunResults",
    "RunnerConfig",
    "RunnerListener",
    "RunnerUsageError",
    "TestRunner",
    "TimeoutConfig",
    "merge_config",
]
