"""Revised formation-rate estimate from a reweighted population.

After reweighting, the observed particles formed in each lookback-time bin
represent a number of real white dwarfs inside the observed magnitude range.
Dividing by the fraction of stars formed in the bin that end up there (the
bin completeness) gives the number of stars formed, and dividing by the bin
width gives the rate.

Every bin produces an explicit outcome. A bin with no observed particles is
unconstrained by the data: it keeps the prior rate and is reported as such.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from wdlf_inverter.errors import InvalidConfigurationError

if TYPE_CHECKING:
    from wdlf_inverter.domain.histogram import BinnedHistogram
    from wdlf_inverter.domain.particle import ParticleArena
    from wdlf_inverter.inversion.generator import BinDrawStats
    from wdlf_inverter.sfh.models import FormationRateModel

logger = logging.getLogger(__name__)

REASON_NO_OBSERVED = "no observed white dwarfs formed in this bin"
REASON_STALLED = "generation stalled; bin skipped this iteration"


@dataclass(frozen=True)
class RateBinUpdated:
    index: int
    rate: float
    rate_sigma: float
    real_count: float
    completeness: float


@dataclass(frozen=True)
class RateBinUnconstrained:
    index: int
    reason: str


RateBinOutcome = RateBinUpdated | RateBinUnconstrained


@dataclass
class RateUpdate:
    model: FormationRateModel
    outcomes: list[RateBinOutcome]

    @property
    def unconstrained_bins(self) -> list[int]:
        return [o.index for o in self.outcomes if isinstance(o, RateBinUnconstrained)]


def update_rate(
    arena: ParticleArena,
    progenitors: BinnedHistogram,
    prior_model: FormationRateModel,
    bin_stats: list[BinDrawStats],
) -> RateUpdate:
    """Compute the next formation-rate model.

    Args:
        arena: Reweighted particles of this iteration
        progenitors: Lookback-time histogram of particle indices
        prior_model: Model the population was generated from
        bin_stats: Per-bin draw statistics from the generator

    Returns:
        RateUpdate with the revised model (a copy of ``prior_model``) and one
        outcome per lookback-time bin.
    """
    n_bins = prior_model.n_bins
    if len(progenitors) != n_bins or len(bin_stats) != n_bins:
        raise InvalidConfigurationError(
            f"Rate model has {n_bins} bins but progenitor histogram has "
            f"{len(progenitors)} and draw statistics {len(bin_stats)}"
        )

    model = prior_model.copy()
    outcomes: list[RateBinOutcome] = []
    for i, hist_bin in enumerate(progenitors.bins):
        stats = bin_stats[i]
        observed = [j for j in hist_bin.members if arena[j].observed]

        if stats.stalled or not observed:
            reason = REASON_STALLED if stats.stalled else REASON_NO_OBSERVED
            logger.warning("Lookback-time bin %d unconstrained: %s", i, reason)
            outcomes.append(RateBinUnconstrained(index=i, reason=reason))
            continue

        # Fraction of stars formed in the bin that are white dwarfs today,
        # times the fraction of those inside the observed magnitude range.
        completeness = (len(observed) / stats.realized) * (stats.realized / stats.draws)

        real_count = float(np.sum(arena.weights(observed))) / completeness
        real_sigma = math.sqrt(float(np.sum(arena.weight_variances(observed)))) / completeness
        width = hist_bin.width
        rate = real_count / width
        rate_sigma = real_sigma / width
        model.set_bin(i, rate, rate_sigma)
        outcomes.append(
            RateBinUpdated(
                index=i,
                rate=rate,
                rate_sigma=rate_sigma,
                real_count=real_count,
                completeness=completeness,
            )
        )

    n_unconstrained = sum(isinstance(o, RateBinUnconstrained) for o in outcomes)
    logger.info(
        "Updated formation rate: %d bins constrained, %d unconstrained",
        n_bins - n_unconstrained,
        n_unconstrained,
    )
    return RateUpdate(model=model, outcomes=outcomes)
