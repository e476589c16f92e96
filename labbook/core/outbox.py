"""Post-commit side effects.

Services queue audit entries and notifications while they work and flush the
outbox after their transaction commits. Each effect runs on its own; a
failure is logged and never reaches the caller or the other effects.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class _Effect:
    name: str
    func: Callable[..., Awaitable[Any]]
    args: tuple[Any, ...]
    kwargs: dict[str, Any]


@dataclass
class Outbox:
    _effects: list[_Effect] = field(default_factory=list)

    def add(self, name: str, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> None:
        self._effects.append(_Effect(name, func, args, kwargs))

    def discard(self) -> None:
        self._effects.clear()

    def __len__(self) -> int:
        return len(self._effects)

    async def flush(self) -> int:
        """Run queued effects in order; returns how many failed."""
        effects, self._effects = self._effects, []
        failures = 0
        for effect in effects:
            try:
                await effect.func(*effect.args, **effect.kwargs)
            except Exception:
                failures += 1
                logger.exception("side_effect_failed", effect=effect.name)
        return failures
