"""Simulation particles and the per-iteration particle arena.

A Particle is one simulated star that reached the white dwarf phase. It
carries its provenance (progenitor parameters, formation time, white dwarf
parameters) and a mutable statistical weight: the expected number of real
stars it represents, with a variance on that number.

Both histograms built in an iteration refer to particles by their integer
index into a ParticleArena, so a weight update made through one histogram
is visible through the other and can be checked for exactly-once rescaling.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


class AtmosphereType(str, Enum):
    """White dwarf atmosphere composition."""

    H = "H"
    HE = "He"


@dataclass(slots=True)
class Particle:
    """One simulated star.

    Attributes:
        progenitor_mass: Main sequence progenitor mass [M_sun]
        metallicity: Metallicity Z
        helium: Helium content Y
        pre_wd_lifetime: Total pre-WD lifetime of the progenitor [yr]
        total_age: Lookback time of formation [yr]
        wd_mass: White dwarf mass [M_sun]
        atmosphere: White dwarf atmosphere type
        magnitude: Present-day magnitude including observation noise
        extrapolated: True if the cooling model had to extrapolate
        observed: True if the magnitude falls in the observed LF range
        weight: Number of real stars represented
        weight_variance: Variance on ``weight``
        rescale_count: Times the reweighting engine rescaled this particle
            in the current iteration
    """

    progenitor_mass: float
    metallicity: float
    helium: float
    pre_wd_lifetime: float
    total_age: float
    wd_mass: float
    atmosphere: AtmosphereType
    magnitude: float = float("nan")
    extrapolated: bool = False
    observed: bool = False
    weight: float = 1.0
    weight_variance: float = 0.0
    rescale_count: int = 0

    @property
    def is_white_dwarf(self) -> bool:
        return self.total_age > self.pre_wd_lifetime

    @property
    def cooling_age(self) -> float:
        """Time since the white dwarf formed [yr]."""
        if not self.is_white_dwarf:
            raise ValueError(
                f"Cooling age undefined: total age {self.total_age} does not exceed "
                f"pre-WD lifetime {self.pre_wd_lifetime}"
            )
        return self.total_age - self.pre_wd_lifetime

    def reweight(self, scale: float, scale_sigma: float) -> None:
        """Scale the weight by ``scale`` and propagate the variance.

        The scale factor and the prior weight are treated as uncorrelated:
        var' = w^2 * sigma_s^2 + s^2 * var, evaluated with the pre-update weight.
        """
        self.weight_variance = (
            self.weight * self.weight * scale_sigma * scale_sigma
            + scale * scale * self.weight_variance
        )
        self.weight = scale * self.weight
        self.rescale_count += 1

    def add_observational_variance(self, variance: float) -> None:
        self.weight_variance += variance


class ParticleArena:
    """Owns every particle generated in one iteration."""

    def __init__(self) -> None:
        self._particles: list[Particle] = []

    def append(self, particle: Particle) -> int:
        """Add a particle and return its index."""
        self._particles.append(particle)
        return len(self._particles) - 1

    def extend(self, particles: list[Particle]) -> range:
        start = len(self._particles)
        self._particles.extend(particles)
        return range(start, len(self._particles))

    def __getitem__(self, index: int) -> Particle:
        return self._particles[index]

    def __len__(self) -> int:
        return len(self._particles)

    def __iter__(self) -> Iterator[Particle]:
        return iter(self._particles)

    def weights(self, indices: list[int] | None = None) -> NDArray[np.float64]:
        selected = self._select(indices)
        return np.fromiter((p.weight for p in selected), dtype=np.float64, count=len(selected))

    def weight_variances(self, indices: list[int] | None = None) -> NDArray[np.float64]:
        selected = self._select(indices)
        return np.fromiter(
            (p.weight_variance for p in selected), dtype=np.float64, count=len(selected)
        )

    def assert_rescaled_at_most_once(self) -> None:
        """Raise RuntimeError if any particle was rescaled more than once."""
        repeated = [i for i, p in enumerate(self._particles) if p.rescale_count > 1]
        if repeated:
            raise RuntimeError(
                f"{len(repeated)} particles rescaled more than once (first index {repeated[0]})"
            )

    def _select(self, indices: list[int] | None) -> list[Particle]:
        if indices is None:
            return self._particles
        return [self._particles[i] for i in indices]
