"""Convergence monitoring of the chi-square history.

The raw chi-square of a Monte Carlo inversion is noisy, so convergence is
judged on a smooth fit to its history rather than on the raw values:

- POWER_LAW: chi2(n) = S * n**T, fitted in log-log space over the whole
  history.
- SLIDING_LINEAR: chi2(n) = m * n + c, fitted to the most recent points only.

``n`` is the 1-based iteration number counted after the first ``skip``
values, which are ignored. Both fits have two free parameters, so the
monitor is unconstrained until two usable values are available.
"""

from __future__ import annotations

import logging
import math
from enum import Enum

import numpy as np
from scipy import stats

from wdlf_inverter.config import ConvergenceStrategy
from wdlf_inverter.errors import InsufficientHistoryError

logger = logging.getLogger(__name__)

SLIDING_WINDOW = 5
FIT_PARAMETERS = 2


class ConvergenceState(str, Enum):
    UNCONSTRAINED = "unconstrained"
    CONSTRAINED = "constrained"


class ConvergenceMonitor:
    """Fits the chi-square history and decides when the inversion has converged."""

    def __init__(
        self,
        strategy: ConvergenceStrategy = ConvergenceStrategy.SLIDING_LINEAR,
        *,
        skip: int = 0,
        window: int = SLIDING_WINDOW,
    ) -> None:
        if skip < 0:
            raise ValueError(f"skip must be >= 0, got {skip}")
        if window < FIT_PARAMETERS:
            raise ValueError(f"window must be >= {FIT_PARAMETERS}, got {window}")
        self.strategy = ConvergenceStrategy(strategy)
        self.skip = int(skip)
        self.window = int(window)
        self.history: list[float] = []
        self._slope = math.nan
        self._intercept = math.nan

    def __len__(self) -> int:
        return len(self.history)

    @property
    def n_points(self) -> int:
        """Number of history values used by the fit."""
        return max(0, len(self.history) - self.skip)

    @property
    def state(self) -> ConvergenceState:
        if self.n_points < FIT_PARAMETERS:
            return ConvergenceState.UNCONSTRAINED
        return ConvergenceState.CONSTRAINED

    @property
    def is_constrained(self) -> bool:
        return self.state is ConvergenceState.CONSTRAINED

    def append(self, chi_square: float) -> None:
        if not math.isfinite(chi_square) or chi_square < 0:
            raise ValueError(f"chi-square must be finite and non-negative, got {chi_square}")
        self.history.append(float(chi_square))
        if self.is_constrained:
            self._fit()

    def _fit(self) -> None:
        y = np.asarray(self.history[self.skip :], dtype=np.float64)
        n = np.arange(1, y.size + 1, dtype=np.float64)
        if self.strategy is ConvergenceStrategy.POWER_LAW:
            # log undefined at zero; a perfect fit is floored to the smallest positive float
            log_y = np.log(np.maximum(y, np.finfo(np.float64).tiny))
            result = stats.linregress(np.log(n), log_y)
        else:
            k = min(self.window, y.size)
            result = stats.linregress(n[-k:], y[-k:])
        self._slope = float(result.slope)
        self._intercept = float(result.intercept)
        logger.debug(
            "%s fit over %d points: slope=%.4g intercept=%.4g",
            self.strategy.value,
            self.n_points,
            self._slope,
            self._intercept,
        )

    @property
    def parameters(self) -> tuple[float, float]:
        """Fitted (slope, intercept); for POWER_LAW these are (T, log S)."""
        self._require_constrained()
        return self._slope, self._intercept

    def fitted_chi_square(self, iteration: int) -> float:
        """Smoothed chi-square at 1-based post-skip ``iteration``."""
        self._require_constrained()
        if self.strategy is ConvergenceStrategy.POWER_LAW:
            return math.exp(self._intercept) * float(iteration) ** self._slope
        return self._slope * iteration + self._intercept

    def relative_change(self) -> float:
        """|f(N-1) - f(N)| / f(N-1) at the latest iteration N."""
        n = self.n_points
        latest = self.fitted_chi_square(n)
        previous = self.fitted_chi_square(n - 1)
        if previous == 0.0:
            return 0.0 if latest == 0.0 else math.inf
        return abs(previous - latest) / abs(previous)

    def has_converged(self, threshold: float) -> bool:
        if not self.is_constrained:
            return False
        return self.relative_change() < threshold

    def _require_constrained(self) -> None:
        if not self.is_constrained:
            raise InsufficientHistoryError(
                f"{self.strategy.value} fit needs {FIT_PARAMETERS} chi-square values after "
                f"skipping {self.skip}; have {self.n_points}"
            )
