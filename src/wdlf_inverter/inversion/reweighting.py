"""Scaling of a simulated white dwarf population to an observed LF.

In every magnitude bin the particle weights are multiplied by the ratio of
the observed to the simulated density, so that afterwards the weighted
population reproduces the observation exactly. Uncertainties on the scale
factor (from the observation and from Monte Carlo sampling noise) are carried
into each particle's weight variance, and the measured variance of the bin is
spread over its particles as an observational floor.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from wdlf_inverter.errors import InvalidConfigurationError

if TYPE_CHECKING:
    from wdlf_inverter.domain.histogram import BinnedHistogram
    from wdlf_inverter.domain.luminosity_function import ObservedLuminosityFunction
    from wdlf_inverter.domain.particle import ParticleArena

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BinCorrection:
    index: int
    model_density: float
    observed_density: float
    scale: float
    scale_sigma: float
    chi_square: float


@dataclass
class ReweightSummary:
    chi_square: float
    corrections: list[BinCorrection] = field(default_factory=list)
    skipped_bins: list[int] = field(default_factory=list)


def scale_to_observed(
    arena: ParticleArena,
    white_dwarfs: BinnedHistogram,
    observed_lf: ObservedLuminosityFunction,
) -> ReweightSummary:
    """Rescale the white dwarf population to match ``observed_lf``.

    Args:
        arena: Particles of this iteration (weights are updated in place)
        white_dwarfs: Magnitude histogram of particle indices
        observed_lf: Observation with the same bin layout as ``white_dwarfs``

    Returns:
        ReweightSummary with the chi-square of the unscaled model against the
        observation, per-bin corrections and the bins skipped for having no
        simulated density.

    Raises:
        InvalidConfigurationError: If the bin layouts differ.
        RuntimeError: If any particle ends up rescaled more than once.
    """
    if not white_dwarfs.matches_layout(observed_lf.centres, observed_lf.widths):
        raise InvalidConfigurationError(
            "Magnitude histogram and observed luminosity function have different bins"
        )

    summary = ReweightSummary(chi_square=0.0)
    for i, hist_bin in enumerate(white_dwarfs.bins):
        members = hist_bin.members
        width = hist_bin.width
        weights = arena.weights(members)
        model = float(np.sum(weights)) / width
        observed = float(observed_lf.density[i])
        error = float(observed_lf.density_error[i])

        if model == 0.0:
            logger.debug("Magnitude bin %d has no simulated density; not rescaled", i)
            summary.skipped_bins.append(i)
            continue

        # Monte Carlo sampling variance of the weighted sum
        model_variance = float(np.sum(weights**2)) / (width * width)
        scale = observed / model
        scale_sigma = math.sqrt(
            error * error / (model * model)
            + observed * observed * model_variance / model**4
        )
        chi_square = ((model - observed) / error) ** 2

        # Observed variance of the number of stars in the bin, shared by weight
        bin_variance = (error * width) ** 2
        total_weight = float(np.sum(weights))
        for j, w in zip(members, weights, strict=True):
            particle = arena[j]
            if particle.rescale_count > 0:
                raise RuntimeError(f"Particle {j} rescaled twice in one iteration")
            particle.reweight(scale, scale_sigma)
            share = w / total_weight if total_weight > 0 else 1.0 / len(members)
            particle.add_observational_variance(bin_variance * share)

        summary.chi_square += chi_square
        summary.corrections.append(
            BinCorrection(
                index=i,
                model_density=model,
                observed_density=observed,
                scale=scale,
                scale_sigma=scale_sigma,
                chi_square=chi_square,
            )
        )

    arena.assert_rescaled_at_most_once()
    if summary.skipped_bins:
        logger.warning(
            "%d magnitude bins had no simulated white dwarfs: %s",
            len(summary.skipped_bins),
            summary.skipped_bins,
        )
    logger.info("Rescaled population to observation; chi-square %.4g", summary.chi_square)
    return summary
