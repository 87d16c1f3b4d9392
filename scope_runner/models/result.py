"""Models for case and run results."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from scope_runner.models.case import CaseInfo

Outcome = Literal["success", "fail", "timeout", "skipped"]


@dataclass(kw_only=True)
class CaseResult:
    """Result of a single case.

    Mutable until the runner counts it: pre-finalization listeners may rewrite
    ``outcome`` and ``error``.
    """

    outcome: Outcome
    case: CaseInfo
    title_chain: Sequence[str] = ()
    elapsed_ms: float = 0.0
    error: BaseException | None = None

    @property
    def title(self) -> str:
        return self.case.title


@dataclass(kw_only=True)
class RunResults:
    """Accumulated results of one run.

    ``total_tests`` counts executed cases only; skipped cases are tallied in
    ``total_skipped`` but still listed in ``test_results``.
    """

    elapsed_ms: float = 0.0
    total_tests: int = 0
    total_successes: int = 0
    total_failures: int = 0
    total_timeouts: int = 0
    total_skipped: int = 0
    test_results: list[CaseResult] = field(default_factory=list)

    def record(self, result: CaseResult) -> None:
        """Count a finalized result."""
        self.test_results.append(result)
        if result.outcome == "skipped":
            self.total_skipped += 1
            return

        if result.outcome == "success":
            self.total_successes += 1
        elif result.outcome == "timeout":
            self.total_timeouts += 1
        else:
            self.total_failures += 1
        self.total_tests += 1
