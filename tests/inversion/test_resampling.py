"""Tests for bootstrap resampling of the inversion."""

from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from wdlf_inverter.errors import InvalidConfigurationError
from wdlf_inverter.inversion.resampling import (
    MAD_TO_SIGMA,
    bootstrap_inversion,
    summarise_rates,
)


class TestSummariseRates:
    def test_statistics(self) -> None:
        rates = np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
        med, mad, mean, std = summarise_rates(rates)
        np.testing.assert_allclose(med, [3.0, 4.0])
        np.testing.assert_allclose(mad, [2.0 * MAD_TO_SIGMA] * 2)
        np.testing.assert_allclose(mean, [3.0, 4.0])
        np.testing.assert_allclose(std, [2.0, 2.0])

    def test_single_realisation(self) -> None:
        med, mad, _, std = summarise_rates(np.array([[1.0, 2.0]]))
        np.testing.assert_allclose(med, [1.0, 2.0])
        np.testing.assert_allclose(mad, 0.0)
        np.testing.assert_allclose(std, 0.0)


class TestBootstrap:
    """Resampled inversions on the toy population."""

    @pytest.fixture
    def quick_config(self, toy_config):
        return dataclasses.replace(toy_config, max_iterations=4)

    def test_summary(self, toy_observed_lf, toy_initial_model, toy_physics, quick_config, epoch) -> None:
        seen = []
        summary = bootstrap_inversion(
            toy_observed_lf,
            toy_initial_model,
            toy_physics,
            quick_config,
            n_realisations=3,
            seed=17,
            on_realisation=lambda index, result: seen.append(index),
        )
        assert seen == [0, 1, 2]
        assert summary.n_realisations == 3
        assert 0 <= summary.n_converged <= 3
        rates = np.vstack([r.model.rates for r in summary.realisations])
        np.testing.assert_allclose(summary.median, np.median(rates, axis=0))
        # Resampled densities are N(2, 0.1)
        assert np.all((rates * epoch > 1.4) & (rates * epoch < 2.6))
        assert not np.allclose(rates[0], rates[1])

        model = summary.to_model()
        np.testing.assert_allclose(model.rates, summary.median)
        np.testing.assert_allclose(model.rate_sigmas, summary.mad_sigma)
        assert len(summary.to_table()) == 5

    def test_reproducible(self, toy_observed_lf, toy_initial_model, toy_physics, quick_config) -> None:
        runs = [
            bootstrap_inversion(
                toy_observed_lf, toy_initial_model, toy_physics, quick_config, n_realisations=2, seed=3
            )
            for _ in range(2)
        ]
        np.testing.assert_array_equal(runs[0].median, runs[1].median)

    def test_needs_a_realisation(self, toy_observed_lf, toy_initial_model, toy_physics) -> None:
        with pytest.raises(InvalidConfigurationError, match="n_realisations"):
            bootstrap_inversion(toy_observed_lf, toy_initial_model, toy_physics, n_realisations=0)
