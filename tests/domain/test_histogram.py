"""Tests for BinnedHistogram and bin layout validation."""

from __future__ import annotations

import numpy as np
import pytest

from wdlf_inverter.domain.histogram import BinnedHistogram, validate_bin_layout
from wdlf_inverter.domain.particle import AtmosphereType, Particle, ParticleArena
from wdlf_inverter.errors import InvalidConfigurationError


def _arena(weights: list[float], variances: list[float] | None = None) -> ParticleArena:
    arena = ParticleArena()
    variances = variances or [0.0] * len(weights)
    for w, v in zip(weights, variances, strict=True):
        arena.append(
            Particle(
                progenitor_mass=2.0,
                metallicity=0.017,
                helium=0.279,
                pre_wd_lifetime=0.0,
                total_age=1.0,
                wd_mass=0.6,
                atmosphere=AtmosphereType.H,
                weight=w,
                weight_variance=v,
            )
        )
    return arena


class TestValidateBinLayout:
    """Tests for validate_bin_layout."""

    def test_accepts_contiguous_bins(self) -> None:
        c, w = validate_bin_layout([0.5, 1.5, 3.0], [1.0, 1.0, 2.0], label="x")
        assert c.dtype == np.float64
        assert w.tolist() == [1.0, 1.0, 2.0]

    @pytest.mark.parametrize(
        ("centres", "widths", "match"),
        [
            ([], [], "at least one bin"),
            ([0.5, 1.5], [1.0], "bin centres but"),
            ([0.5, 1.5], [1.0, 0.0], "non-positive width"),
            ([1.5, 0.5], [1.0, 1.0], "not ascending"),
            ([0.5, 2.0], [1.0, 1.0], "gap"),
            ([0.5, 1.2], [1.0, 1.0], "overlap"),
            ([0.5, np.nan], [1.0, 1.0], "finite"),
        ],
    )
    def test_rejects_bad_layouts(self, centres, widths, match) -> None:
        with pytest.raises(InvalidConfigurationError, match=match):
            validate_bin_layout(centres, widths, label="x")


class TestBinMembership:
    """Half-open [lower, upper) membership."""

    def test_shared_edge_goes_to_upper_bin(self) -> None:
        hist = BinnedHistogram([0.5, 1.5, 2.5], [1.0, 1.0, 1.0])
        assert hist.find_bin(1.0) == 1
        assert hist.find_bin(2.0) == 2

    def test_lower_edge_included_upper_edge_excluded(self) -> None:
        hist = BinnedHistogram([0.5, 1.5], [1.0, 1.0])
        assert hist.find_bin(0.0) == 0
        assert hist.find_bin(2.0) is None
        assert hist.find_bin(-1e-12) is None

    def test_non_finite_values_are_out_of_range(self) -> None:
        hist = BinnedHistogram([0.5], [1.0])
        assert hist.find_bin(float("nan")) is None
        assert hist.find_bin(float("inf")) is None

    def test_every_value_lands_in_exactly_one_bin(self) -> None:
        hist = BinnedHistogram([0.25, 0.75, 1.5], [0.5, 0.5, 1.0])
        values = np.concatenate([hist.edges[:-1], np.linspace(0.0, 1.999, 101)])
        for i, v in enumerate(values):
            assert hist.add(float(v), i) is not None
        assert int(hist.counts().sum()) == values.size

    def test_add_out_of_range_returns_none(self) -> None:
        hist = BinnedHistogram([0.5], [1.0])
        assert hist.add(5.0, 0) is None
        assert hist.counts().tolist() == [0]


class TestAggregates:
    """Weighted sums, densities and layout matching."""

    def test_density_and_sigma(self) -> None:
        arena = _arena([1.0, 3.0, 2.0], [0.5, 0.5, 1.0])
        hist = BinnedHistogram([1.0, 3.0], [2.0, 2.0])
        hist.insert(0, 0)
        hist.insert(0, 1)
        hist.insert(1, 2)
        assert hist.weight_sum(0, arena) == pytest.approx(4.0)
        assert hist.density(0, arena) == pytest.approx(2.0)
        assert hist.variance_sum(0, arena) == pytest.approx(1.0)
        assert hist.density_sigma(0, arena) == pytest.approx(0.5)
        assert hist.density(1, arena) == pytest.approx(1.0)

    def test_empty_bin_density_is_zero(self) -> None:
        hist = BinnedHistogram([0.5], [1.0])
        assert hist.density(0, ParticleArena()) == 0.0

    def test_matches_layout(self) -> None:
        hist = BinnedHistogram([0.5, 1.5], [1.0, 1.0])
        assert hist.matches_layout([0.5, 1.5], [1.0, 1.0])
        assert not hist.matches_layout([0.5, 1.6], [1.0, 1.0])
        assert not hist.matches_layout([0.5], [1.0])

    def test_edges_are_shared(self) -> None:
        hist = BinnedHistogram([0.1, 0.3, 0.6], [0.2, 0.2, 0.4])
        for left, right in zip(hist.bins[:-1], hist.bins[1:]):
            assert left.upper == right.lower
