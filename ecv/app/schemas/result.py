"""
Explicit per-stage results.

Each pipeline stage returns a ``StageResult`` holding either a value or a
``PipelineError``. The orchestrator checks ``ok`` after every stage and
stops at the first failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from ecv.app.errors import PipelineError

T = TypeVar("T")


@dataclass(frozen=True)
class StageResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[PipelineError] = None

    def __post_init__(self) -> None:
        if (self.value is None) == (self.error is None):
            raise ValueError(
                "StageResult requires exactly one of value or error"
            )

    @classmethod
    def success(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: PipelineError) -> "StageResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, raising the stored error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
