"""Observed and model white dwarf luminosity functions.

This module provides:
- ObservedLuminosityFunction: immutable input histogram (density per magnitude)
- ModelLuminosityFunction: diagnostic snapshot of a simulated population
- parse_luminosity_function_text: reader for the four-column text format
- format_luminosity_function_text: the matching writer
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from wdlf_inverter.domain.histogram import validate_bin_layout
from wdlf_inverter.errors import InvalidConfigurationError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from wdlf_inverter.domain.histogram import BinnedHistogram
    from wdlf_inverter.domain.particle import ParticleArena

# Density sigma reported for magnitude bins that contain no simulated white dwarfs
EMPTY_BIN_SIGMA = 1e9

# Redraw cap for negative densities when resampling
MAX_RESAMPLE_REDRAWS = 1000


def _frozen(values: ArrayLike) -> NDArray[np.float64]:
    arr = np.array(values, dtype=np.float64, copy=True)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True)
class ObservedLuminosityFunction:
    """Observed white dwarf luminosity function.

    Attributes:
        centres: Magnitude bin centres
        widths: Magnitude bin widths
        density: Number density per unit magnitude
        density_error: One-sigma uncertainty on ``density``
        name: Human-readable label
    """

    centres: NDArray[np.float64]
    widths: NDArray[np.float64]
    density: NDArray[np.float64]
    density_error: NDArray[np.float64]
    name: str = "observed"

    def __post_init__(self) -> None:
        centres, widths = validate_bin_layout(
            self.centres, self.widths, label=f"luminosity function '{self.name}'"
        )
        density = np.asarray(self.density, dtype=np.float64)
        error = np.asarray(self.density_error, dtype=np.float64)
        n = centres.size
        if density.shape != (n,):
            raise InvalidConfigurationError(
                f"luminosity function '{self.name}': {density.size} density values for {n} bins"
            )
        if error.shape != (n,):
            raise InvalidConfigurationError(
                f"luminosity function '{self.name}': {error.size} density errors for {n} bins"
            )
        if not (np.all(np.isfinite(density)) and np.all(np.isfinite(error))):
            raise InvalidConfigurationError(
                f"luminosity function '{self.name}': density and errors must be finite"
            )
        negative = np.flatnonzero(density < 0)
        if negative.size:
            raise InvalidConfigurationError(
                f"luminosity function '{self.name}': negative density in bin {int(negative[0])}"
            )
        non_positive = np.flatnonzero(error <= 0)
        if non_positive.size:
            raise InvalidConfigurationError(
                f"luminosity function '{self.name}': non-positive density error "
                f"in bin {int(non_positive[0])}"
            )

        # Make all arrays read-only; the observation is never mutated.
        object.__setattr__(self, "centres", _frozen(centres))
        object.__setattr__(self, "widths", _frozen(widths))
        object.__setattr__(self, "density", _frozen(density))
        object.__setattr__(self, "density_error", _frozen(error))

    def __len__(self) -> int:
        return int(self.centres.size)

    @property
    def magnitude_range(self) -> tuple[float, float]:
        return (
            float(self.centres[0] - self.widths[0] / 2.0),
            float(self.centres[-1] + self.widths[-1] / 2.0),
        )

    def total_number(self) -> tuple[float, float]:
        """Integrated number of white dwarfs and its one-sigma uncertainty."""
        n = float(np.sum(self.density * self.widths))
        sigma = float(np.sqrt(np.sum((self.density_error * self.widths) ** 2)))
        return n, sigma

    def resample(self, rng: np.random.Generator, *, name: str | None = None) -> ObservedLuminosityFunction:
        """Draw a Gaussian realisation of the density within its errors.

        Negative draws are redrawn so the realisation stays a valid density.
        """
        draws = rng.normal(self.density, self.density_error)
        for _ in range(MAX_RESAMPLE_REDRAWS):
            negative = draws < 0
            if not np.any(negative):
                break
            draws[negative] = rng.normal(self.density[negative], self.density_error[negative])
        else:
            draws = np.clip(draws, 0.0, None)
        return ObservedLuminosityFunction(
            centres=self.centres,
            widths=self.widths,
            density=draws,
            density_error=self.density_error,
            name=name or f"{self.name} (resampled)",
        )


@dataclass(frozen=True)
class ModelLuminosityFunction:
    """Luminosity function of a simulated white dwarf population.

    Means are weighted by particle weight; bins without particles report
    zero density, ``EMPTY_BIN_SIGMA`` uncertainty and ``None`` means.
    """

    centres: NDArray[np.float64]
    widths: NDArray[np.float64]
    density: NDArray[np.float64]
    density_sigma: NDArray[np.float64]
    counts: NDArray[np.int64]
    mean_wd_mass: tuple[float | None, ...]
    mean_total_age: tuple[float | None, ...]

    @classmethod
    def from_histogram(
        cls, white_dwarfs: BinnedHistogram, arena: ParticleArena
    ) -> ModelLuminosityFunction:
        n = len(white_dwarfs)
        density = np.zeros(n, dtype=np.float64)
        sigma = np.full(n, EMPTY_BIN_SIGMA, dtype=np.float64)
        masses: list[float | None] = []
        ages: list[float | None] = []
        for i in range(n):
            members = white_dwarfs.members(i)
            if not members:
                masses.append(None)
                ages.append(None)
                continue
            weights = arena.weights(members)
            variances = arena.weight_variances(members)
            width = white_dwarfs.bins[i].width
            density[i] = float(np.sum(weights)) / width
            # Sampling (shot) noise of the weighted sum plus carried variances
            sigma[i] = float(np.sqrt(np.sum(weights**2) + np.sum(variances))) / width
            total = float(np.sum(weights))
            if total > 0:
                masses.append(float(sum(arena[j].wd_mass * arena[j].weight for j in members) / total))
                ages.append(float(sum(arena[j].total_age * arena[j].weight for j in members) / total))
            else:
                masses.append(None)
                ages.append(None)
        return cls(
            centres=white_dwarfs.centres,
            widths=white_dwarfs.widths,
            density=density,
            density_sigma=sigma,
            counts=white_dwarfs.counts(),
            mean_wd_mass=tuple(masses),
            mean_total_age=tuple(ages),
        )

    def to_observed(
        self, *, fractional_error: float = 0.05, name: str = "synthetic"
    ) -> ObservedLuminosityFunction:
        """Treat this model LF as an observation with a fractional error."""
        if fractional_error <= 0:
            raise InvalidConfigurationError("fractional_error must be positive")
        empty = np.flatnonzero(self.density <= 0)
        if empty.size:
            raise InvalidConfigurationError(
                f"model luminosity function has no white dwarfs in bin {int(empty[0])}"
            )
        return ObservedLuminosityFunction(
            centres=self.centres,
            widths=self.widths,
            density=self.density,
            density_error=fractional_error * self.density,
            name=name,
        )

    def to_rows(self) -> list[dict[str, float | int | None]]:
        return [
            {
                "centre": float(self.centres[i]),
                "width": float(self.widths[i]),
                "density": float(self.density[i]),
                "density_sigma": float(self.density_sigma[i]),
                "count": int(self.counts[i]),
                "mean_wd_mass": self.mean_wd_mass[i],
                "mean_total_age": self.mean_total_age[i],
            }
            for i in range(self.centres.size)
        ]


def parse_luminosity_function_text(text: str, *, name: str = "observed") -> ObservedLuminosityFunction:
    """Parse the four-column luminosity function text format.

    One row per magnitude bin: bin centre, bin width, density, density error.
    Blank lines and lines starting with ``#`` are skipped.

    Raises:
        InvalidConfigurationError: On malformed rows or invalid bins.
    """
    rows: list[tuple[float, float, float, float]] = []
    for line_number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        tokens = line.split()
        if len(tokens) < 4:
            raise InvalidConfigurationError(
                f"{name}: line {line_number} has {len(tokens)} columns, expected 4"
            )
        try:
            centre, width, density, error = (float(tok) for tok in tokens[:4])
        except ValueError as exc:
            raise InvalidConfigurationError(f"{name}: line {line_number}: {exc}") from exc
        rows.append((centre, width, density, error))

    if not rows:
        raise InvalidConfigurationError(f"{name}: no luminosity function rows found")

    data = np.asarray(rows, dtype=np.float64)
    return ObservedLuminosityFunction(
        centres=data[:, 0],
        widths=data[:, 1],
        density=data[:, 2],
        density_error=data[:, 3],
        name=name,
    )


def format_luminosity_function_text(
    centres: ArrayLike,
    widths: ArrayLike,
    density: ArrayLike,
    density_error: ArrayLike,
    *,
    header: str | None = None,
) -> str:
    lines: list[str] = []
    if header:
        lines.extend(f"# {h}" for h in header.splitlines())
    lines.append("# centre\twidth\tdensity\tdensity_error")
    for c, w, d, e in zip(
        np.asarray(centres, dtype=np.float64),
        np.asarray(widths, dtype=np.float64),
        np.asarray(density, dtype=np.float64),
        np.asarray(density_error, dtype=np.float64),
        strict=True,
    ):
        lines.append("\t".join(repr(float(v)) for v in (c, w, d, e)))
    return "\n".join(lines) + "\n"
