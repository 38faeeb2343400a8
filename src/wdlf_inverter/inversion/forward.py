"""Forward modelling of a luminosity function from a star formation history."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from wdlf_inverter.config import ModellingParameters
from wdlf_inverter.domain.luminosity_function import ModelLuminosityFunction
from wdlf_inverter.inversion.generator import ParticleGenerator

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from wdlf_inverter.physics.contracts import PopulationPhysics
    from wdlf_inverter.sfh.models import FormationRateModel

logger = logging.getLogger(__name__)


def synthesize_luminosity_function(
    model: FormationRateModel,
    physics: PopulationPhysics,
    magnitude_centres: ArrayLike,
    magnitude_widths: ArrayLike,
    *,
    wd_per_bin: int = 2000,
    seed: int | None = None,
    modelling: ModellingParameters | None = None,
    max_draws_per_bin: int = 10_000_000,
    n_workers: int = 1,
) -> ModelLuminosityFunction:
    """Simulate the white dwarf luminosity function produced by ``model``.

    The model must be binned; analytic models can be converted with
    ``wdlf_inverter.sfh.discretise``. Particle weights are left as generated,
    so the density is in real stars per magnitude.
    """
    generator = ParticleGenerator(
        physics,
        modelling or ModellingParameters(),
        max_draws_per_bin=max_draws_per_bin,
        n_workers=n_workers,
    )
    generation = generator.generate(model, wd_per_bin, (magnitude_centres, magnitude_widths), seed)
    if generation.stalled_bins:
        logger.warning(
            "Synthetic luminosity function is missing lookback-time bins %s",
            generation.stalled_bins,
        )
    return ModelLuminosityFunction.from_histogram(generation.white_dwarfs, generation.arena)
