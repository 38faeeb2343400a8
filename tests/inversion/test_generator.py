"""Tests for the Monte Carlo particle generator."""

from __future__ import annotations

import numpy as np
import pytest

from wdlf_inverter.config import ModellingParameters
from wdlf_inverter.errors import InvalidConfigurationError
from wdlf_inverter.inversion.generator import ParticleGenerator
from wdlf_inverter.physics.reference import reference_physics
from wdlf_inverter.sfh.models import constant, initial_guess

EPOCH = 2.0**30  # toy time unit [yr]


def _snapshot(result) -> list[tuple[float, float, float, float, bool]]:
    return [
        (p.progenitor_mass, p.total_age, p.magnitude, p.weight, p.observed)
        for p in result.arena
    ]


class TestGeneration:
    """Per-bin generation under the toy physics."""

    def test_weights_and_histograms(self, toy_physics, noiseless_modelling, toy_magnitude_bins) -> None:
        model = initial_guess(0.0, 5 * EPOCH, 5, 2.0 / EPOCH)
        generator = ParticleGenerator(toy_physics, noiseless_modelling)
        result = generator.generate(model, 25, toy_magnitude_bins, seed=11)

        assert len(result.arena) == 125
        assert result.progenitors.counts().tolist() == [25] * 5
        assert result.white_dwarfs.counts().tolist() == [25] * 5
        assert result.stalled_bins == []
        for i, stats in enumerate(result.bin_stats):
            # Every draw becomes a white dwarf under a zero lifetime
            assert stats.draws == 25
            assert stats.realized == 25
            assert stats.expected_real == pytest.approx(2.0)
            weights = result.arena.weights(result.progenitors.members(i))
            np.testing.assert_allclose(weights, 2.0 / 25)

    def test_particles_land_in_matching_bins(self, toy_physics, noiseless_modelling, toy_magnitude_bins) -> None:
        model = initial_guess(0.0, 5 * EPOCH, 5, 1.0 / EPOCH)
        result = ParticleGenerator(toy_physics, noiseless_modelling).generate(
            model, 10, toy_magnitude_bins, seed=3
        )
        for i in range(5):
            for j in result.progenitors.members(i):
                p = result.arena[j]
                assert i * EPOCH <= p.total_age < (i + 1) * EPOCH
                assert p.is_white_dwarf
                assert p.weight_variance == 0.0
            assert result.progenitors.members(i) == result.white_dwarfs.members(i)

    def test_out_of_range_magnitudes_are_unobserved(self, toy_physics, noiseless_modelling) -> None:
        model = initial_guess(0.0, 5 * EPOCH, 5, 1.0 / EPOCH)
        bins = (np.array([0.5, 1.5, 2.5]), np.ones(3))
        result = ParticleGenerator(toy_physics, noiseless_modelling).generate(model, 10, bins, seed=3)
        assert result.n_observed == 30
        assert len(result.arena) == 50
        late = [result.arena[j] for j in result.progenitors.members(4)]
        assert not any(p.observed for p in late)

    def test_lifetime_reduces_completeness(self, toy_physics_factory, noiseless_modelling, toy_magnitude_bins) -> None:
        # Half of the stars formed in [2, 3) Gyr are older than 2.5 Gyr
        physics = toy_physics_factory(lifetime=2.5 * EPOCH)
        model = initial_guess(2 * EPOCH, 3 * EPOCH, 1, 1.0 / EPOCH)
        result = ParticleGenerator(physics, noiseless_modelling).generate(
            model, 200, toy_magnitude_bins, seed=8
        )
        stats = result.bin_stats[0]
        assert stats.realized == 200
        assert stats.draws == pytest.approx(400, rel=0.2)
        np.testing.assert_allclose(result.arena.weights(), stats.expected_real / stats.draws)


class TestDeterminism:
    """One independent random stream per lookback-time bin."""

    def test_worker_count_does_not_change_results(self, toy_physics, toy_magnitude_bins) -> None:
        model = initial_guess(0.0, 5 * EPOCH, 5, 1.0 / EPOCH)
        modelling = ModellingParameters(magnitude_sigma=0.2)
        serial = ParticleGenerator(toy_physics, modelling, n_workers=1).generate(
            model, 30, toy_magnitude_bins, seed=99
        )
        parallel = ParticleGenerator(toy_physics, modelling, n_workers=4).generate(
            model, 30, toy_magnitude_bins, seed=99
        )
        assert _snapshot(serial) == _snapshot(parallel)
        assert serial.white_dwarfs.counts().tolist() == parallel.white_dwarfs.counts().tolist()

    def test_different_seeds_differ(self, toy_physics, noiseless_modelling, toy_magnitude_bins) -> None:
        model = initial_guess(0.0, 5 * EPOCH, 5, 1.0 / EPOCH)
        generator = ParticleGenerator(toy_physics, noiseless_modelling)
        a = generator.generate(model, 10, toy_magnitude_bins, seed=1)
        b = generator.generate(model, 10, toy_magnitude_bins, seed=2)
        assert _snapshot(a) != _snapshot(b)


class TestStalledBins:
    """Draw budget exhaustion."""

    def test_stalled_bins_are_skipped(self, toy_physics_factory, noiseless_modelling, toy_magnitude_bins) -> None:
        physics = toy_physics_factory(lifetime=2.5 * EPOCH)
        model = initial_guess(0.0, 5 * EPOCH, 5, 1.0 / EPOCH)
        generator = ParticleGenerator(physics, noiseless_modelling, max_draws_per_bin=500)
        result = generator.generate(model, 20, toy_magnitude_bins, seed=4)

        assert result.stalled_bins == [0, 1]
        for i in (0, 1):
            stats = result.bin_stats[i]
            assert stats.stalled
            assert stats.draws == 500
            assert stats.realized == 0
            assert result.progenitors.members(i) == []
        assert all(not s.stalled for s in result.bin_stats[2:])
        assert len(result.arena) == 60


class TestValidation:
    def test_analytic_model_rejected(self, toy_physics, noiseless_modelling, toy_magnitude_bins) -> None:
        generator = ParticleGenerator(toy_physics, noiseless_modelling)
        with pytest.raises(InvalidConfigurationError, match="no lookback-time bins"):
            generator.generate(constant(0.0, EPOCH, 1.0 / EPOCH), 10, toy_magnitude_bins, seed=0)

    def test_target_above_budget_rejected(self, toy_physics, noiseless_modelling, toy_magnitude_bins) -> None:
        generator = ParticleGenerator(toy_physics, noiseless_modelling, max_draws_per_bin=5)
        with pytest.raises(InvalidConfigurationError, match="draw budget"):
            generator.generate(initial_guess(0.0, EPOCH, 1, 1.0 / EPOCH), 10, toy_magnitude_bins, seed=0)

    def test_impossible_metallicity(self, toy_physics, toy_magnitude_bins) -> None:
        modelling = ModellingParameters(metallicity_mean=-1.0, metallicity_sigma=0.001)
        generator = ParticleGenerator(toy_physics, modelling)
        with pytest.raises(InvalidConfigurationError, match="No positive metallicity"):
            generator.generate(initial_guess(0.0, EPOCH, 1, 1.0 / EPOCH), 1, toy_magnitude_bins, seed=0)

    def test_invalid_modelling_parameters(self, toy_physics) -> None:
        with pytest.raises(InvalidConfigurationError, match="w_h"):
            ParticleGenerator(toy_physics, ModellingParameters(w_h=1.5))


class TestReferencePhysics:
    def test_reference_population(self) -> None:
        model = initial_guess(1.0e9, 1.1e10, 4, 1.0)
        bins = (np.array([13.0, 15.0, 17.0]), np.full(3, 2.0))
        result = ParticleGenerator(reference_physics(), ModellingParameters()).generate(
            model, 20, bins, seed=5
        )
        assert len(result.arena) == 80
        for p in result.arena:
            assert 0.6 <= p.progenitor_mass <= 7.0
            assert p.total_age > p.pre_wd_lifetime
            assert np.isfinite(p.magnitude)
        assert all(s.draws >= s.realized for s in result.bin_stats)
