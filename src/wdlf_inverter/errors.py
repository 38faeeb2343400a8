"""Error taxonomy for wdlf-inverter.

The inversion engine is domain-only and must not depend on any particular
frontend. It raises a small set of exception classes, and exposes a stable
error enum/envelope that callers (the CLI, notebooks, batch drivers) can
translate into their own error formats.

Recoverable per-bin conditions are not exceptions at the API boundary:
a stalled generation bin is logged and skipped, and a lookback-time bin with
no constraining particles is reported as an explicit outcome by the rate
updater.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorType(str, Enum):
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    GENERATION_STALLED = "GENERATION_STALLED"
    INSUFFICIENT_HISTORY = "INSUFFICIENT_HISTORY"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: ErrorType
    message: str
    context: dict[str, Any] = Field(default_factory=dict)


def make_error(error_type: ErrorType, message: str, **context: Any) -> ErrorEnvelope:
    return ErrorEnvelope(type=error_type, message=message, context=dict(context))


class InvalidConfigurationError(ValueError):
    """Raised when input data or settings are malformed.

    Covers observed luminosity functions and rate models with non-monotonic,
    overlapping or zero-width bins, mismatched array lengths, and out-of-range
    modelling parameters. Always raised before the first iteration starts.
    """


class GenerationStalledError(RuntimeError):
    """Raised when a lookback-time bin exhausts its draw budget.

    Attributes:
        bin_index: Index of the lookback-time bin.
        draws: Number of progenitors drawn before giving up.
        realized: Number of white dwarfs realized before giving up.
    """

    def __init__(self, bin_index: int, draws: int, realized: int) -> None:
        self.bin_index = int(bin_index)
        self.draws = int(draws)
        self.realized = int(realized)
        super().__init__(
            f"Lookback-time bin {bin_index} realized only {realized} white dwarfs "
            f"in {draws} draws"
        )


class InsufficientHistoryError(RuntimeError):
    """Raised when a convergence fit is queried before it is constrained."""


def envelope_for(exc: BaseException) -> ErrorEnvelope:
    """Map an exception raised by the engine onto an ErrorEnvelope."""
    if isinstance(exc, InvalidConfigurationError):
        return make_error(ErrorType.INVALID_CONFIGURATION, str(exc))
    if isinstance(exc, GenerationStalledError):
        return make_error(
            ErrorType.GENERATION_STALLED,
            str(exc),
            bin_index=exc.bin_index,
            draws=exc.draws,
            realized=exc.realized,
        )
    if isinstance(exc, InsufficientHistoryError):
        return make_error(ErrorType.INSUFFICIENT_HISTORY, str(exc))
    return make_error(ErrorType.INTERNAL_ERROR, str(exc), exception=type(exc).__name__)
