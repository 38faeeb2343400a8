"""Shared fixtures: a toy stellar population with an exact magnitude-age mapping.

The toy physics makes every progenitor a white dwarf the moment it forms and
gives it a magnitude equal to its cooling age in units of EPOCH (2**30 yr),
with no observation noise. Lookback-time bins one EPOCH wide then map
one-to-one onto magnitude bins of width 1, which makes inversion results
exactly predictable.
"""

from __future__ import annotations

import numpy as np
import pytest

from wdlf_inverter.config import InversionConfig, ModellingParameters
from wdlf_inverter.domain.luminosity_function import ObservedLuminosityFunction
from wdlf_inverter.domain.particle import AtmosphereType
from wdlf_inverter.physics.contracts import CoolingResult, PopulationPhysics
from wdlf_inverter.sfh.models import initial_guess

# Toy time unit [yr]; a power of two keeps particle weights exact binary fractions
EPOCH = 2.0**30
TRUE_RATE = 2.0 / EPOCH  # stars/yr -> 2 white dwarfs per magnitude per bin


class UniformImf:
    def draw_mass(self, rng: np.random.Generator) -> float:
        return float(rng.uniform(1.0, 3.0))


class HalfMassIfmr:
    def final_mass(self, initial_mass: float) -> float:
        return 0.5 * initial_mass


class ConstantLifetime:
    def __init__(self, value: float = 0.0) -> None:
        self.value = value

    def lifetime(self, metallicity: float, helium: float, mass: float) -> float:
        return self.value


class GyrCooling:
    """Magnitude equals cooling age in EPOCH units."""

    def magnitude(
        self,
        cooling_age: float,
        mass: float,
        atmosphere: AtmosphereType,
        filter_name: str,
    ) -> CoolingResult:
        return CoolingResult(magnitude=cooling_age / EPOCH, extrapolated=cooling_age > 4.5 * EPOCH)


def make_toy_physics(lifetime: float = 0.0) -> PopulationPhysics:
    return PopulationPhysics(
        imf=UniformImf(),
        ifmr=HalfMassIfmr(),
        lifetime=ConstantLifetime(lifetime),
        cooling=GyrCooling(),
    )


@pytest.fixture
def toy_physics() -> PopulationPhysics:
    return make_toy_physics()


@pytest.fixture
def toy_physics_factory():
    """Build toy physics with a given constant pre-WD lifetime [yr]."""
    return make_toy_physics


@pytest.fixture
def true_rate() -> float:
    return TRUE_RATE


@pytest.fixture
def noiseless_modelling() -> ModellingParameters:
    return ModellingParameters(magnitude_sigma=0.0)


@pytest.fixture
def toy_magnitude_bins() -> tuple[np.ndarray, np.ndarray]:
    """Five magnitude bins [0, 1), [1, 2), ... [4, 5)."""
    return np.arange(5) + 0.5, np.ones(5)


@pytest.fixture
def toy_observed_lf(toy_magnitude_bins) -> ObservedLuminosityFunction:
    """LF of a constant TRUE_RATE over 0-5 Gyr under the toy physics."""
    centres, widths = toy_magnitude_bins
    density = np.full(5, TRUE_RATE * EPOCH)
    return ObservedLuminosityFunction(
        centres=centres,
        widths=widths,
        density=density,
        density_error=0.05 * density,
        name="toy",
    )


@pytest.fixture
def toy_initial_model():
    """Flat guess at twice the true rate."""
    return initial_guess(0.0, 5 * EPOCH, 5, 2 * TRUE_RATE)


@pytest.fixture
def toy_config(noiseless_modelling) -> InversionConfig:
    return InversionConfig(
        wd_per_bin=32,
        min_iterations=3,
        max_iterations=10,
        convergence_threshold=0.01,
        max_draws_per_bin=10_000,
        n_workers=1,
        seed=1234,
        modelling=noiseless_modelling,
    )


@pytest.fixture
def epoch() -> float:
    """Toy time unit [yr]."""
    return EPOCH
