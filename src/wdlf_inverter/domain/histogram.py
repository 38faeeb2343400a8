"""Binned histogram of particle indices.

Bins are built from centres and widths, must be ascending, contiguous and
non-overlapping, and use half-open membership ``[lower, upper)``. A value
equal to an interior edge always belongs to the upper bin.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from wdlf_inverter.errors import InvalidConfigurationError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from wdlf_inverter.domain.particle import ParticleArena

# Relative tolerance (in units of bin width) for edge contiguity checks
EDGE_TOLERANCE = 1e-9


@dataclass
class HistogramBin:
    centre: float
    width: float
    lower: float
    upper: float
    members: list[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.members)


def validate_bin_layout(
    centres: ArrayLike, widths: ArrayLike, *, label: str
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Check that bins are finite, positive-width, ascending and contiguous.

    Returns:
        The centres and widths as float64 arrays.

    Raises:
        InvalidConfigurationError: If any check fails.
    """
    c = np.asarray(centres, dtype=np.float64)
    w = np.asarray(widths, dtype=np.float64)
    if c.ndim != 1 or w.ndim != 1:
        raise InvalidConfigurationError(f"{label}: bin centres and widths must be 1-D")
    if c.size == 0:
        raise InvalidConfigurationError(f"{label}: at least one bin is required")
    if c.size != w.size:
        raise InvalidConfigurationError(
            f"{label}: {c.size} bin centres but {w.size} bin widths"
        )
    if not (np.all(np.isfinite(c)) and np.all(np.isfinite(w))):
        raise InvalidConfigurationError(f"{label}: bin centres and widths must be finite")
    bad = np.flatnonzero(w <= 0)
    if bad.size:
        raise InvalidConfigurationError(
            f"{label}: bin {int(bad[0])} has non-positive width {w[bad[0]]}"
        )

    lower = c - w / 2.0
    upper = c + w / 2.0
    for i in range(c.size - 1):
        if c[i + 1] <= c[i]:
            raise InvalidConfigurationError(
                f"{label}: bin centres not ascending at bin {i + 1} ({c[i]} then {c[i + 1]})"
            )
        tol = EDGE_TOLERANCE * max(w[i], w[i + 1])
        gap = lower[i + 1] - upper[i]
        if gap > tol:
            raise InvalidConfigurationError(
                f"{label}: gap of {gap} between bins {i} and {i + 1}"
            )
        if gap < -tol:
            raise InvalidConfigurationError(
                f"{label}: bins {i} and {i + 1} overlap by {-gap}"
            )
    return c, w


def shared_edges(centres: NDArray[np.float64], widths: NDArray[np.float64]) -> NDArray[np.float64]:
    """Edge array of validated bins; neighbours share one edge value exactly."""
    edges = np.empty(centres.size + 1, dtype=np.float64)
    edges[:-1] = centres - widths / 2.0
    edges[-1] = centres[-1] + widths[-1] / 2.0
    return edges


class BinnedHistogram:
    """Ordered, contiguous bins each holding particle indices."""

    def __init__(self, centres: ArrayLike, widths: ArrayLike, *, label: str = "histogram") -> None:
        c, w = validate_bin_layout(centres, widths, label=label)
        self.label = label
        self._edges = shared_edges(c, w)
        self.bins = [
            HistogramBin(
                centre=float(c[i]),
                width=float(w[i]),
                lower=float(self._edges[i]),
                upper=float(self._edges[i + 1]),
            )
            for i in range(c.size)
        ]

    def __len__(self) -> int:
        return len(self.bins)

    @property
    def edges(self) -> NDArray[np.float64]:
        return self._edges.copy()

    @property
    def centres(self) -> NDArray[np.float64]:
        return np.array([b.centre for b in self.bins], dtype=np.float64)

    @property
    def widths(self) -> NDArray[np.float64]:
        return np.array([b.width for b in self.bins], dtype=np.float64)

    def find_bin(self, value: float) -> int | None:
        """Index of the bin containing ``value``, or None if out of range."""
        if not np.isfinite(value):
            return None
        idx = int(np.searchsorted(self._edges, value, side="right")) - 1
        if idx < 0 or idx >= len(self.bins):
            return None
        return idx

    def add(self, value: float, index: int) -> int | None:
        """Insert a particle index keyed by ``value``.

        Returns:
            The bin index, or None if ``value`` lies outside every bin.
        """
        bin_index = self.find_bin(value)
        if bin_index is not None:
            self.bins[bin_index].members.append(index)
        return bin_index

    def insert(self, bin_index: int, index: int) -> None:
        """Insert a particle index into a known bin."""
        self.bins[bin_index].members.append(index)

    def members(self, bin_index: int) -> list[int]:
        return self.bins[bin_index].members

    def counts(self) -> NDArray[np.int64]:
        return np.array([len(b) for b in self.bins], dtype=np.int64)

    def weight_sum(self, bin_index: int, arena: ParticleArena) -> float:
        return float(np.sum(arena.weights(self.bins[bin_index].members)))

    def variance_sum(self, bin_index: int, arena: ParticleArena) -> float:
        return float(np.sum(arena.weight_variances(self.bins[bin_index].members)))

    def density(self, bin_index: int, arena: ParticleArena) -> float:
        """Weighted particle count per unit bin width."""
        return self.weight_sum(bin_index, arena) / self.bins[bin_index].width

    def density_sigma(self, bin_index: int, arena: ParticleArena) -> float:
        """Standard deviation of ``density`` from the carried particle variances."""
        return float(np.sqrt(self.variance_sum(bin_index, arena))) / self.bins[bin_index].width

    def matches_layout(self, centres: ArrayLike, widths: ArrayLike) -> bool:
        c = np.asarray(centres, dtype=np.float64)
        w = np.asarray(widths, dtype=np.float64)
        if c.size != len(self.bins) or w.size != len(self.bins):
            return False
        return bool(
            np.all(np.abs(c - self.centres) <= EDGE_TOLERANCE * np.maximum(w, 1.0))
            and np.all(np.abs(w - self.widths) <= EDGE_TOLERANCE * np.maximum(w, 1.0))
        )
