"""Models for registered groups and cases."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import Field

from scope_runner.models.base import Model

Callback = Callable[..., Any]


class CaseOptions(Model):
    """Per-case options accepted at registration."""

    timeout_ms: float | None = Field(
        default=None,
        description="Overrides the configured case timeout when positive",
    )


@dataclass(frozen=True, kw_only=True)
class CaseInfo:
    """A registered case. Immutable once registered."""

    title: str
    callback: Callback
    file_path: str | None = None
    only: bool = False
    skip: bool = False
    timeout_ms: float | None = None


@dataclass(frozen=True, kw_only=True)
class GroupInfo:
    """A registered group whose body registers further children when invoked."""

    title: str
    callback: Callback
    file_path: str | None = None
    only: bool = False
    skip: bool = False


Entry = CaseInfo | GroupInfo
