"""
Post-commit hooks — side effects that run after a row is durably written.

Each hook runs independently.  A failing hook is logged and the remaining
hooks still run; the committed row is never rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger("consult.hooks")

T = TypeVar("T")

PostCommitHook = Callable[[T], Any]


@dataclass
class HookReport:
    """What happened when the hooks ran."""

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class PostCommitHooks(Generic[T]):
    def __init__(self) -> None:
        self._hooks: list[tuple[str, PostCommitHook]] = []

    def add(self, name: str, hook: PostCommitHook) -> None:
        self._hooks.append((name, hook))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self._hooks]

    def run(self, committed: T) -> HookReport:
        report = HookReport()
        for name, hook in self._hooks:
            try:
                hook(committed)
                report.succeeded.append(name)
            except Exception as e:
                logger.error(
                    "Post-commit hook '%s' failed for %s: %s",
                    name, getattr(committed, "id", committed), e,
                )
                report.failed[name] = str(e)
        return report
