"""Runner configuration models."""

from collections.abc import Mapping
from typing import Any, Final, Literal

from pydantic import Field

from scope_runner.models.base import Model

TimeoutPhase = Literal[
    "case", "setup_once", "setup_each", "teardown_each", "teardown_once", "group"
]

DEFAULT_TIMEOUT_MS: Final = 100


class TimeoutConfig(Model):
    """Per-phase timeouts in milliseconds. Zero or less disables the deadline."""

    case: float = Field(default=DEFAULT_TIMEOUT_MS, description="Case body timeout")
    setup_once: float = Field(
        default=DEFAULT_TIMEOUT_MS, description="Once-per-scope setup timeout"
    )
    setup_each: float = Field(
        default=DEFAULT_TIMEOUT_MS, description="Per-case setup timeout"
    )
    teardown_each: float = Field(
        default=DEFAULT_TIMEOUT_MS, description="Per-case teardown timeout"
    )
    teardown_once: float = Field(
        default=DEFAULT_TIMEOUT_MS, description="Once-per-scope teardown timeout"
    )
    group: float = Field(default=0, description="Group body timeout (unbounded)")


class RunnerConfig(Model):
    """Configuration supplied when constructing a runner."""

    timeout_ms: float | TimeoutConfig = Field(
        default=DEFAULT_TIMEOUT_MS,
        description="Single timeout for every case and hook phase, or per-phase",
    )
    stop_on_first_fail: bool = Field(
        default=False, description="Cancel the run after the first non-success"
    )

    def timeout_for(self, phase: TimeoutPhase) -> float:
        """Return the effective timeout for a phase.

        A single number covers the case and hook phases; group bodies are only
        bounded when configured per-phase.
        """
        if isinstance(self.timeout_ms, TimeoutConfig):
            return getattr(self.timeout_ms, phase)
        if phase == "group":
            return 0
        return self.timeout_ms


def merge_config(
    base: RunnerConfig,
    override: RunnerConfig | Mapping[str, Any] | None = None,
) -> RunnerConfig:
    """Merge explicitly-set values of ``override`` over ``base``.

    Per-phase timeouts are merged key by key when both sides are per-phase;
    otherwise an explicitly-set ``timeout_ms`` replaces the base value.
    """
    if override is None:
        return base
    if not isinstance(override, RunnerConfig):
        override = RunnerConfig.model_validate(override)

    update: dict[str, Any] = {}
    if "timeout_ms" in override.model_fields_set:
        if isinstance(base.timeout_ms, TimeoutConfig) and isinstance(
            override.timeout_ms, TimeoutConfig
        ):
            phases = override.timeout_ms.model_fields_set
            update["timeout_ms"] = base.timeout_ms.model_copy(
                update={phase: getattr(override.timeout_ms, phase) for phase in phases}
            )
        else:
            update["timeout_ms"] = override.timeout_ms
    if "stop_on_first_fail" in override.model_fields_set:
        update["stop_on_first_fail"] = override.stop_on_first_fail

    return base.model_copy(update=update)
