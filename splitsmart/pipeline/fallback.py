"""
Staged execution with an explicit fallback chain.

Each stage either produces a value or an :class:`UpstreamError`; the
chain returns the first success, or the last failure when every stage
failed.  Stages never see each other's exceptions.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Sequence, TypeVar

from splitsmart.errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class StageResult(Generic[T]):
    stage: str
    value: Optional[T] = None
    error: Optional[UpstreamError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass
class Stage(Generic[T]):
    name: str
    run: Callable[[], T]


def attempt(stage: Stage[T]) -> StageResult[T]:
    try:
        return StageResult(stage=stage.name, value=stage.run())
    except UpstreamError as exc:
        return StageResult(stage=stage.name, error=exc)


def run_with_fallback(stages: Sequence[Stage[T]]) -> StageResult[T]:
    if not stages:
        raise ValueError("at least one stage is required")
    result: Optional[StageResult[T]] = None
    for idx, stage in enumerate(stages):
        result = attempt(stage)
        if result.ok:
            return result
        nxt = stages[idx + 1].name if idx + 1 < len(stages) else None
        if nxt:
            logger.warning("Stage %s failed (%s); falling back to %s", stage.name, result.error, nxt)
        else:
            logger.warning("Stage %s failed (%s); no fallback left", stage.name, result.error)
    return result  # type: ignore[return-value]
