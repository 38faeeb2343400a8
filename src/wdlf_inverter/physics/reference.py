"""Analytic reference physics.

Simple closed-form stand-ins for each collaborator contract. They are good
enough to exercise the inversion end to end and to build synthetic test
populations; they are not tabulated stellar evolution.

- PowerLawImf: Salpeter-like power law, sampled by inverting its CDF
- LinearIfmr: linear initial-final mass relation (Kalirai et al. 2008 default)
- PowerLawLifetime: main sequence lifetime t = t_sun * (M / M_sun)**alpha
- MestelCooling: Mestel-law bolometric cooling tracks
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from wdlf_inverter.domain.particle import AtmosphereType
from wdlf_inverter.errors import InvalidConfigurationError
from wdlf_inverter.physics.contracts import CoolingResult, PopulationPhysics

if TYPE_CHECKING:
    import numpy as np

# Absolute bolometric magnitude of the Sun
SOLAR_MBOL = 4.74

BOLOMETRIC_FILTER = "M_BOL"


@dataclass(frozen=True)
class PowerLawImf:
    """dN/dM proportional to M**exponent between ``m_lower`` and ``m_upper``."""

    exponent: float = -2.3
    m_lower: float = 0.6
    m_upper: float = 7.0

    def __post_init__(self) -> None:
        if not (0.0 < self.m_lower < self.m_upper):
            raise InvalidConfigurationError(
                f"IMF mass range must satisfy 0 < m_lower < m_upper, got "
                f"[{self.m_lower}, {self.m_upper}]"
            )

    def draw_mass(self, rng: np.random.Generator) -> float:
        x = float(rng.random())
        if math.isclose(self.exponent, -1.0):
            return self.m_lower * (self.m_upper / self.m_lower) ** x
        k = self.exponent + 1.0
        lo = self.m_lower**k
        hi = self.m_upper**k
        return float((lo + x * (hi - lo)) ** (1.0 / k))


@dataclass(frozen=True)
class LinearIfmr:
    slope: float = 0.109
    intercept: float = 0.428

    def final_mass(self, initial_mass: float) -> float:
        return self.slope * initial_mass + self.intercept


@dataclass(frozen=True)
class PowerLawLifetime:
    """Pre-WD lifetime scaling as a power of the progenitor mass.

    Metal-rich stars live slightly longer: the lifetime is multiplied by
    ``(Z / z_ref) ** z_index``. Helium content is accepted but unused.
    """

    t_sun: float = 1.0e10
    alpha: float = -2.5
    z_ref: float = 0.017
    z_index: float = 0.0

    def lifetime(self, metallicity: float, helium: float, mass: float) -> float:
        if mass <= 0 or metallicity <= 0:
            raise ValueError(f"Lifetime undefined for mass={mass}, Z={metallicity}")
        return self.t_sun * mass**self.alpha * (metallicity / self.z_ref) ** self.z_index


@dataclass(frozen=True)
class MestelCooling:
    """Mestel-law cooling: L proportional to M * t**(-7/5).

    Ages beyond ``max_cooling_age`` are extrapolated along the same law and
    flagged. Helium atmospheres are offset by ``he_offset`` magnitudes.
    """

    log_l_ref: float = -3.5
    t_ref: float = 1.0e9
    t_offset: float = 1.0e7
    m_ref: float = 0.6
    index: float = 1.4
    he_offset: float = 0.3
    max_cooling_age: float = 1.5e10

    def magnitude(
        self,
        cooling_age: float,
        mass: float,
        atmosphere: AtmosphereType,
        filter_name: str,
    ) -> CoolingResult:
        if filter_name != BOLOMETRIC_FILTER:
            raise InvalidConfigurationError(
                f"Filter '{filter_name}' not supported by the Mestel cooling model; "
                f"use '{BOLOMETRIC_FILTER}'"
            )
        if cooling_age < 0 or mass <= 0:
            raise ValueError(f"Cooling undefined for age={cooling_age}, mass={mass}")
        log_l = (
            math.log10(mass / self.m_ref)
            - self.index * math.log10((cooling_age + self.t_offset) / self.t_ref)
            + self.log_l_ref
        )
        mbol = SOLAR_MBOL - 2.5 * log_l
        if atmosphere is AtmosphereType.HE:
            mbol += self.he_offset
        return CoolingResult(magnitude=mbol, extrapolated=cooling_age > self.max_cooling_age)


def reference_physics() -> PopulationPhysics:
    """Bundle the default analytic models."""
    return PopulationPhysics(
        imf=PowerLawImf(),
        ifmr=LinearIfmr(),
        lifetime=PowerLawLifetime(),
        cooling=MestelCooling(),
    )
