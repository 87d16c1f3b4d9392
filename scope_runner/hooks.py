"""Scope-aware register of setup and teardown hooks."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from scope_runner.models.case import Callback

HookPhase = Literal["setup_once", "setup_each", "teardown_each", "teardown_once"]


@dataclass(kw_only=True)
class HookSet:
    """Hooks declared by one scope, each list in registration order."""

    setup_once: list[Callback] = field(default_factory=list)
    setup_each: list[Callback] = field(default_factory=list)
    teardown_each: list[Callback] = field(default_factory=list)
    teardown_once: list[Callback] = field(default_factory=list)
    setup_once_ran: bool = False

    def for_phase(self, phase: HookPhase) -> list[Callback]:
        return getattr(self, phase)


class HookLedger:
    """Stack of per-scope hook sets mirroring the scopes being traversed.

    The bottom entry belongs to the root scope and is never popped.
    """

    def __init__(self) -> None:
        self._stack: list[HookSet] = [HookSet()]

    def register(self, phase: HookPhase, callback: Callback) -> None:
        """Append a hook to the innermost active scope."""
        self._stack[-1].for_phase(phase).append(callback)

    def enter_scope(self) -> None:
        self._stack.append(HookSet())

    def exit_scope(self) -> None:
        if len(self._stack) == 1:
            raise RuntimeError("Cannot exit the root hook scope")
        self._stack.pop()

    def reset(self) -> None:
        self._stack = [HookSet()]

    def setup_each(self) -> Sequence[Callback]:
        """Per-case setup hooks, outermost scope first."""
        return [hook for hooks in self._stack for hook in hooks.setup_each]

    def teardown_each(self) -> Sequence[Callback]:
        """Per-case teardown hooks, innermost scope first."""
        return [hook for hooks in reversed(self._stack) for hook in hooks.teardown_each]

    def claim_setup_once(self) -> Sequence[Callback]:
        """Return setup-once hooks of every scope that has not run them yet.

        Scopes are visited outermost first and marked as run, so each scope's
        setup-once hooks are handed out at most once.
        """
        due: list[Callback] = []
        for hooks in self._stack:
            if hooks.setup_once_ran:
                continue
            hooks.setup_once_ran = True
            due.extend(hooks.setup_once)
        return due

    def teardown_once(self) -> Sequence[Callback]:
        """Teardown-once hooks of the innermost scope."""
        return list(self._stack[-1].teardown_once)
