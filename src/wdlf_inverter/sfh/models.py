"""Star formation rate models.

A single tagged-variant type, FormationRateModel, covers every star formation
history the engine understands. Analytic kinds (constant, single burst,
exponential decay) are described by a few parameters; binned kinds (fractal,
freeform, piecewise initial guess) by contiguous lookback-time bins holding a
rate and a one-sigma rate uncertainty.

Rates are in stars per year, lookback times in years.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np

from wdlf_inverter.domain.histogram import shared_edges, validate_bin_layout
from wdlf_inverter.errors import InvalidConfigurationError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)


class SfhKind(str, Enum):
    CONSTANT = "constant"
    SINGLE_BURST = "single_burst"
    EXPONENTIAL_DECAY = "exponential_decay"
    FRACTAL = "fractal"
    FREEFORM = "freeform"
    PIECEWISE_GUESS = "piecewise_guess"


BINNED_KINDS = frozenset({SfhKind.FRACTAL, SfhKind.FREEFORM, SfhKind.PIECEWISE_GUESS})

_KIND_NAMES = {
    SfhKind.CONSTANT: "Constant",
    SfhKind.SINGLE_BURST: "Single burst",
    SfhKind.EXPONENTIAL_DECAY: "Exponential decay",
    SfhKind.FRACTAL: "Fractal",
    SfhKind.FREEFORM: "Freeform",
    SfhKind.PIECEWISE_GUESS: "Initial guess",
}


def _check_time_range(t_min: float, t_max: float) -> None:
    if not (math.isfinite(t_min) and math.isfinite(t_max)):
        raise InvalidConfigurationError(
            f"Illegal lookback time range: {t_min} to {t_max}"
        )
    if t_min < 0:
        raise InvalidConfigurationError(f"Minimum lookback time must be >= 0, got {t_min}")
    if t_min >= t_max:
        raise InvalidConfigurationError(
            f"Minimum lookback time ({t_min}) must be smaller than maximum ({t_max})"
        )


def _check_rate(name: str, value: float) -> None:
    if not (math.isfinite(value) and value >= 0):
        raise InvalidConfigurationError(f"{name} must be finite and non-negative, got {value}")


class FormationRateModel:
    """Star formation rate as a function of lookback time.

    Use the factory functions (``constant``, ``exponential_decay``,
    ``freeform``, ``initial_guess``, ...) rather than the constructor.
    """

    def __init__(
        self,
        kind: SfhKind,
        t_min: float,
        t_max: float,
        *,
        params: dict[str, Any] | None = None,
        centres: ArrayLike | None = None,
        widths: ArrayLike | None = None,
        rates: ArrayLike | None = None,
        rate_sigmas: ArrayLike | None = None,
    ) -> None:
        self.kind = SfhKind(kind)
        self.params: dict[str, Any] = dict(params or {})

        if self.kind in BINNED_KINDS:
            if centres is None or widths is None or rates is None:
                raise InvalidConfigurationError(
                    f"{self.name} star formation rate requires bin centres, widths and rates"
                )
            c, w = validate_bin_layout(centres, widths, label=f"{self.name} star formation rate")
            r = np.array(rates, dtype=np.float64, copy=True)
            s = (
                np.zeros_like(c)
                if rate_sigmas is None
                else np.array(rate_sigmas, dtype=np.float64, copy=True)
            )
            if r.shape != c.shape or s.shape != c.shape:
                raise InvalidConfigurationError(
                    f"{self.name} star formation rate: {c.size} bins but "
                    f"{r.size} rates and {s.size} rate sigmas"
                )
            for i in range(c.size):
                _check_rate(f"Rate in bin {i}", float(r[i]))
                _check_rate(f"Rate sigma in bin {i}", float(s[i]))
            self._centres = c.copy()
            self._widths = w.copy()
            self._edges = shared_edges(c, w)
            self._rates = r
            self._sigmas = s
            self.t_min = float(self._edges[0])
            self.t_max = float(self._edges[-1])
            _check_time_range(self.t_min, self.t_max)
        else:
            _check_time_range(float(t_min), float(t_max))
            self.t_min = float(t_min)
            self.t_max = float(t_max)
            self._centres = None
            self._widths = None
            self._edges = None
            self._rates = None
            self._sigmas = None

    def __repr__(self) -> str:
        extra = f", n_bins={self.n_bins}" if self.is_binned else f", params={self.params}"
        return (
            f"FormationRateModel(kind={self.kind.value}, t_min={self.t_min:g}, "
            f"t_max={self.t_max:g}{extra})"
        )

    @property
    def name(self) -> str:
        return _KIND_NAMES[self.kind]

    @property
    def is_binned(self) -> bool:
        return self.kind in BINNED_KINDS

    # ------------------------------------------------------------------
    # Binned views
    # ------------------------------------------------------------------

    def _require_binned(self) -> None:
        if not self.is_binned:
            raise InvalidConfigurationError(
                f"{self.name} star formation rate has no lookback-time bins; "
                "use discretise() first"
            )

    @property
    def n_bins(self) -> int:
        self._require_binned()
        return int(self._centres.size)

    @property
    def centres(self) -> NDArray[np.float64]:
        self._require_binned()
        return self._centres.copy()

    @property
    def widths(self) -> NDArray[np.float64]:
        self._require_binned()
        return self._widths.copy()

    @property
    def edges(self) -> NDArray[np.float64]:
        self._require_binned()
        return self._edges.copy()

    @property
    def rates(self) -> NDArray[np.float64]:
        self._require_binned()
        return self._rates.copy()

    @property
    def rate_sigmas(self) -> NDArray[np.float64]:
        self._require_binned()
        return self._sigmas.copy()

    def bin_range(self, index: int) -> tuple[float, float]:
        self._require_binned()
        return float(self._edges[index]), float(self._edges[index + 1])

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def rate(self, t: float) -> float:
        """Star formation rate at lookback time ``t``; zero outside [t_min, t_max]."""
        if not (self.t_min <= t <= self.t_max):
            return 0.0
        if self.is_binned:
            idx = int(np.searchsorted(self._edges, t, side="right")) - 1
            return float(self._rates[min(idx, self._rates.size - 1)])
        if self.kind is SfhKind.CONSTANT:
            return float(self.params["rate"])
        if self.kind is SfhKind.SINGLE_BURST:
            lo, hi = self.params["t_start"], self.params["t_end"]
            return float(self.params["rate"]) if lo <= t <= hi else 0.0
        # EXPONENTIAL_DECAY
        r0, tau = self.params["r0"], self.params["tau"]
        return float(r0 * math.exp(-(self.t_max - t) / tau))

    def integrate(self, lower: float, upper: float) -> tuple[float, float]:
        """Number of stars formed between two lookback times.

        Returns:
            (count, sigma) where sigma sums the bin uncertainties in quadrature.
        """
        if upper < lower:
            lower, upper = upper, lower
        a = max(lower, self.t_min)
        b = min(upper, self.t_max)
        if b <= a:
            return 0.0, 0.0

        if self.is_binned:
            overlap = np.clip(
                np.minimum(b, self._edges[1:]) - np.maximum(a, self._edges[:-1]), 0.0, None
            )
            count = float(np.sum(self._rates * overlap))
            sigma = float(np.sqrt(np.sum((self._sigmas * overlap) ** 2)))
            return count, sigma
        if self.kind is SfhKind.CONSTANT:
            return float(self.params["rate"]) * (b - a), 0.0
        if self.kind is SfhKind.SINGLE_BURST:
            lo = max(a, self.params["t_start"])
            hi = min(b, self.params["t_end"])
            return (float(self.params["rate"]) * (hi - lo), 0.0) if hi > lo else (0.0, 0.0)
        r0, tau = self.params["r0"], self.params["tau"]
        count = tau * r0 * (math.exp(-(self.t_max - b) / tau) - math.exp(-(self.t_max - a) / tau))
        return float(count), 0.0

    def integrate_bin(self, index: int) -> tuple[float, float]:
        """Number of stars formed in one lookback-time bin, with sigma."""
        self._require_binned()
        width = float(self._widths[index])
        return float(self._rates[index]) * width, float(self._sigmas[index]) * width

    def integral(self) -> tuple[float, float]:
        """Total number of stars formed, with sigma."""
        return self.integrate(self.t_min, self.t_max)

    def max_rate(self) -> float:
        if self.is_binned:
            return float(np.max(self._rates))
        if self.kind is SfhKind.EXPONENTIAL_DECAY:
            return float(self.params["r0"])
        return float(self.params["rate"])

    def draw_creation_time(self, rng: np.random.Generator) -> float:
        """Draw a lookback time of formation distributed like the rate."""
        total, _ = self.integral()
        if total <= 0:
            raise InvalidConfigurationError(
                f"{self.name} star formation rate forms no stars; cannot draw creation times"
            )
        if self.is_binned:
            mass = self._rates * self._widths
            idx = int(rng.choice(mass.size, p=mass / mass.sum()))
            return float(rng.uniform(self._edges[idx], self._edges[idx + 1]))
        if self.kind is SfhKind.CONSTANT:
            return float(rng.uniform(self.t_min, self.t_max))
        if self.kind is SfhKind.SINGLE_BURST:
            lo = max(self.t_min, self.params["t_start"])
            hi = min(self.t_max, self.params["t_end"])
            return float(rng.uniform(lo, hi))
        # Invert the cumulative distribution measured from t_min
        r0, tau = self.params["r0"], self.params["tau"]
        u = float(rng.uniform(0.0, total))
        t = self.t_max + tau * math.log(u / (tau * r0) + math.exp(-(self.t_max - self.t_min) / tau))
        return float(min(max(t, self.t_min), self.t_max))

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def copy(self) -> FormationRateModel:
        if self.is_binned:
            return FormationRateModel(
                self.kind,
                self.t_min,
                self.t_max,
                params=self.params,
                centres=self._centres,
                widths=self._widths,
                rates=self._rates,
                rate_sigmas=self._sigmas,
            )
        return FormationRateModel(self.kind, self.t_min, self.t_max, params=self.params)

    def set_bin(self, index: int, rate: float, rate_sigma: float) -> None:
        """Overwrite the rate and sigma of one bin in place."""
        self._require_binned()
        _check_rate(f"Rate in bin {index}", float(rate))
        _check_rate(f"Rate sigma in bin {index}", float(rate_sigma))
        self._rates[index] = float(rate)
        self._sigmas[index] = float(rate_sigma)

    def with_bin(self, index: int, rate: float, rate_sigma: float) -> FormationRateModel:
        updated = self.copy()
        updated.set_bin(index, rate, rate_sigma)
        return updated

    def to_table(self) -> list[dict[str, float]]:
        """Per-bin rows suitable for JSON output."""
        self._require_binned()
        return [
            {
                "lower": float(self._edges[i]),
                "upper": float(self._edges[i + 1]),
                "centre": float(self._centres[i]),
                "width": float(self._widths[i]),
                "rate": float(self._rates[i]),
                "rate_sigma": float(self._sigmas[i]),
            }
            for i in range(self._centres.size)
        ]


# ----------------------------------------------------------------------
# Factories
# ----------------------------------------------------------------------


def constant(t_min: float, t_max: float, rate: float) -> FormationRateModel:
    _check_rate("Star formation rate", rate)
    return FormationRateModel(SfhKind.CONSTANT, t_min, t_max, params={"rate": float(rate)})


def single_burst(
    t_min: float, t_max: float, rate: float, t_start: float, t_end: float
) -> FormationRateModel:
    """Constant rate between ``t_start`` and ``t_end`` and zero elsewhere."""
    _check_rate("Star formation rate", rate)
    if not (t_min <= t_start < t_end <= t_max):
        raise InvalidConfigurationError(
            f"Burst [{t_start}, {t_end}] must lie within [{t_min}, {t_max}] and have positive duration"
        )
    return FormationRateModel(
        SfhKind.SINGLE_BURST,
        t_min,
        t_max,
        params={"rate": float(rate), "t_start": float(t_start), "t_end": float(t_end)},
    )


def exponential_decay(t_min: float, t_max: float, r0: float, tau: float) -> FormationRateModel:
    """Rate ``r0 * exp(-(t_max - t) / tau)``: ``r0`` at the onset, decaying toward the present."""
    _check_rate("Initial star formation rate", r0)
    if not (math.isfinite(tau) and tau > 0):
        raise InvalidConfigurationError(f"Decay timescale must be positive, got {tau}")
    return FormationRateModel(
        SfhKind.EXPONENTIAL_DECAY, t_min, t_max, params={"r0": float(r0), "tau": float(tau)}
    )


def _equal_bins(t_min: float, t_max: float, n_bins: int) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    _check_time_range(t_min, t_max)
    if n_bins < 1:
        raise InvalidConfigurationError(f"Number of bins must be >= 1, got {n_bins}")
    edges = np.linspace(t_min, t_max, n_bins + 1)
    return 0.5 * (edges[:-1] + edges[1:]), np.diff(edges)


def freeform(
    centres: ArrayLike,
    widths: ArrayLike,
    rates: ArrayLike,
    rate_sigmas: ArrayLike | None = None,
) -> FormationRateModel:
    return FormationRateModel(
        SfhKind.FREEFORM,
        0.0,
        0.0,
        centres=centres,
        widths=widths,
        rates=rates,
        rate_sigmas=rate_sigmas,
    )


def initial_guess(t_min: float, t_max: float, n_bins: int, rate: float) -> FormationRateModel:
    """Flat starting model of ``n_bins`` equal lookback-time bins."""
    _check_rate("Initial guess rate", rate)
    centres, widths = _equal_bins(t_min, t_max, n_bins)
    return FormationRateModel(
        SfhKind.PIECEWISE_GUESS,
        t_min,
        t_max,
        params={"rate": float(rate)},
        centres=centres,
        widths=widths,
        rates=np.full(n_bins, float(rate)),
    )


def _midpoint_displacement(
    values: NDArray[np.float64],
    a: int,
    b: int,
    std: float,
    hurst: float,
    level: int,
    rng: np.random.Generator,
) -> None:
    c = (a + b) // 2
    level_std = std * math.sqrt((1.0 - 2.0 ** (2.0 * hurst - 2.0)) / 2.0 ** (2.0 * level * hurst - 2.0))
    values[c] = 0.5 * (values[a] + values[b]) + level_std * rng.standard_normal()
    if b - a == 2:
        return
    _midpoint_displacement(values, a, c, std, hurst, level + 1, rng)
    _midpoint_displacement(values, c, b, std, hurst, level + 1, rng)


def fractal(
    t_min: float,
    t_max: float,
    *,
    magnitude: int = 5,
    r0: float = 5e-12,
    hurst: float = 0.5,
    std: float = 1e-12,
    clamp_to_zero: bool = True,
    rng: np.random.Generator,
) -> FormationRateModel:
    """Random fractal star formation history.

    Builds ``2**magnitude + 1`` equal bins whose rates follow a recursive
    midpoint displacement walk starting and ending at ``r0``. Negative rates
    are either clamped to zero or removed by shifting the whole curve up so
    that its minimum is zero.

    Args:
        t_min: Minimum lookback time [yr]
        t_max: Maximum lookback time [yr]
        magnitude: Recursion depth
        r0: Rate at both end points [stars/yr]
        hurst: Hurst exponent in (0, 1)
        std: Standard deviation of the first displacement [stars/yr]
        clamp_to_zero: Clamp negative rates instead of shifting
        rng: Random generator for the displacements

    Returns:
        A FRACTAL formation rate model.
    """
    if magnitude < 1:
        raise InvalidConfigurationError(f"Fractal magnitude must be >= 1, got {magnitude}")
    if not (0.0 < hurst < 1.0):
        raise InvalidConfigurationError(f"Hurst exponent must lie in (0, 1), got {hurst}")
    _check_rate("Fractal end point rate", r0)
    _check_rate("Fractal displacement std", std)

    n = 2**magnitude + 1
    centres, widths = _equal_bins(t_min, t_max, n)
    rates = np.zeros(n, dtype=np.float64)
    rates[0] = rates[-1] = r0
    _midpoint_displacement(rates, 0, n - 1, std, hurst, 1, rng)

    if clamp_to_zero:
        rates = np.clip(rates, 0.0, None)
    else:
        rates = rates - rates.min()
    logger.debug("Generated fractal SFR with %d bins (H=%.3f)", n, hurst)

    return FormationRateModel(
        SfhKind.FRACTAL,
        t_min,
        t_max,
        params={
            "magnitude": int(magnitude),
            "r0": float(r0),
            "hurst": float(hurst),
            "std": float(std),
            "clamp_to_zero": bool(clamp_to_zero),
        },
        centres=centres,
        widths=widths,
        rates=rates,
    )


def discretise(model: FormationRateModel, n_bins: int) -> FormationRateModel:
    """Piecewise-constant copy of ``model`` with the same integral in each of ``n_bins`` equal bins."""
    centres, widths = _equal_bins(model.t_min, model.t_max, n_bins)
    rates = np.empty(n_bins, dtype=np.float64)
    sigmas = np.empty(n_bins, dtype=np.float64)
    for i in range(n_bins):
        lo = centres[i] - widths[i] / 2.0
        count, sigma = model.integrate(lo, lo + widths[i])
        rates[i] = count / widths[i]
        sigmas[i] = sigma / widths[i]
    return FormationRateModel(
        SfhKind.PIECEWISE_GUESS,
        model.t_min,
        model.t_max,
        params={"source": model.kind.value},
        centres=centres,
        widths=widths,
        rates=rates,
        rate_sigmas=sigmas,
    )
