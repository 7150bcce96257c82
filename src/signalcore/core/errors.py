"""Exception taxonomy and small result helpers for the signal engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class SignalCoreError(Exception):
    """Base class for all engine errors."""


class InputValidationError(SignalCoreError, ValueError):
    """Request rejected before any computation (bad prices, wrong-side levels)."""


class InsufficientDataError(SignalCoreError):
    """Candle series shorter than a component's minimum."""

    def __init__(self, required: int, actual: int, component: str = "series"):
        self.required = required
        self.actual = actual
        self.component = component
        super().__init__(
            f"{component} needs at least {required} candles, got {actual}"
        )


class ExternalServiceError(SignalCoreError):
    """A collaborator (market data, advisory) failed."""


class MarketDataError(ExternalServiceError):
    """Market data unavailable for a symbol."""


class AdvisoryError(ExternalServiceError):
    """Advisory provider call failed."""


class AdvisoryParseError(AdvisoryError):
    """Advisory response could not be parsed into structured fields."""


class RiskThresholdExceededError(SignalCoreError):
    """Position violates one or more hard risk limits."""

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        super().__init__("; ".join(self.violations) or "risk check failed")


class TradeNotFoundError(SignalCoreError):
    """No simulated trade with the given id."""


def safe_div(numerator: float, denominator: float) -> float:
    """Divide, returning 0 for a zero denominator."""
    if denominator == 0:
        return 0.0
    return numerator / denominator


@dataclass
class Result(Generic[T]):
    """Outcome of an operation that reports failure as a value."""
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "Result[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        """Return the value or raise InputValidationError with the failure message."""
        if not self.ok:
            raise InputValidationError(self.error or "operation failed")
        return self.value  # type: ignore[return-value]
