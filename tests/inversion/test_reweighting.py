"""Tests for scaling a simulated population to the observed LF."""

from __future__ import annotations

import numpy as np
import pytest

from wdlf_inverter.domain.histogram import BinnedHistogram
from wdlf_inverter.domain.luminosity_function import ObservedLuminosityFunction
from wdlf_inverter.domain.particle import AtmosphereType, Particle, ParticleArena
from wdlf_inverter.errors import InvalidConfigurationError
from wdlf_inverter.inversion.reweighting import scale_to_observed


def _particle(magnitude: float, weight: float) -> Particle:
    return Particle(
        progenitor_mass=2.0,
        metallicity=0.017,
        helium=0.279,
        pre_wd_lifetime=0.0,
        total_age=1.0e9,
        wd_mass=0.6,
        atmosphere=AtmosphereType.H,
        magnitude=magnitude,
        weight=weight,
    )


@pytest.fixture
def population() -> tuple[ParticleArena, BinnedHistogram]:
    """Four particles in bin 0, two in bin 1, none in bin 2; weight 0.5 each."""
    arena = ParticleArena()
    hist = BinnedHistogram([0.5, 1.5, 2.5], [1.0, 1.0, 1.0], label="magnitude bins")
    for magnitude in (0.1, 0.3, 0.6, 0.9, 1.2, 1.8):
        index = arena.append(_particle(magnitude, 0.5))
        hist.add(magnitude, index)
    return arena, hist


@pytest.fixture
def observation() -> ObservedLuminosityFunction:
    return ObservedLuminosityFunction(
        centres=np.array([0.5, 1.5, 2.5]),
        widths=np.ones(3),
        density=np.array([3.0, 1.0, 0.5]),
        density_error=np.array([0.3, 0.1, 0.1]),
    )


class TestScaleToObserved:
    """Per-bin rescaling."""

    def test_weights_match_observation(self, population, observation) -> None:
        arena, hist = population
        scale_to_observed(arena, hist, observation)
        assert hist.density(0, arena) == pytest.approx(3.0)
        assert hist.density(1, arena) == pytest.approx(1.0)
        np.testing.assert_allclose(arena.weights(hist.members(0)), 0.75)

    def test_chi_square_uses_unscaled_model(self, population, observation) -> None:
        arena, hist = population
        summary = scale_to_observed(arena, hist, observation)
        assert summary.chi_square == pytest.approx((1.0 / 0.3) ** 2)
        first, second = summary.corrections
        assert first.model_density == pytest.approx(2.0)
        assert first.scale == pytest.approx(1.5)
        assert second.scale == pytest.approx(1.0)
        assert second.chi_square == 0.0

    def test_variance_propagation(self, population, observation) -> None:
        arena, hist = population
        summary = scale_to_observed(arena, hist, observation)
        # sigma_s^2 = err^2/model^2 + obs^2 * sum(w^2) / model^4
        assert summary.corrections[0].scale_sigma ** 2 == pytest.approx(0.0225 + 0.5625)
        # w^2 sigma_s^2 plus a quarter share of (err * width)^2
        expected = 0.25 * 0.585 + 0.25 * 0.09
        np.testing.assert_allclose(arena.weight_variances(hist.members(0)), expected)

    def test_empty_bin_skipped(self, population, observation) -> None:
        arena, hist = population
        summary = scale_to_observed(arena, hist, observation)
        assert summary.skipped_bins == [2]
        assert [c.index for c in summary.corrections] == [0, 1]

    def test_every_particle_rescaled_once(self, population, observation) -> None:
        arena, hist = population
        scale_to_observed(arena, hist, observation)
        assert [p.rescale_count for p in arena] == [1] * 6

    def test_second_rescale_rejected(self, population, observation) -> None:
        arena, hist = population
        scale_to_observed(arena, hist, observation)
        with pytest.raises(RuntimeError, match="rescaled twice"):
            scale_to_observed(arena, hist, observation)

    def test_layout_mismatch(self, population) -> None:
        arena, hist = population
        other = ObservedLuminosityFunction(
            centres=np.array([0.5, 1.5]),
            widths=np.ones(2),
            density=np.ones(2),
            density_error=np.ones(2),
        )
        with pytest.raises(InvalidConfigurationError, match="different bins"):
            scale_to_observed(arena, hist, other)
