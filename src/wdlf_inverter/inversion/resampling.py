"""Bootstrap uncertainties on a recovered star formation history.

The observed luminosity function is resampled within its errors and each
realisation is inverted from the same initial model. The spread of the
recovered rates across realisations estimates the uncertainty due to the
observational noise. Inversions run one after another.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from wdlf_inverter.config import InversionConfig
from wdlf_inverter.errors import InvalidConfigurationError
from wdlf_inverter.inversion.controller import InversionController, InversionResult
from wdlf_inverter.sfh.models import freeform

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from wdlf_inverter.domain.luminosity_function import ObservedLuminosityFunction
    from wdlf_inverter.physics.contracts import PopulationPhysics
    from wdlf_inverter.sfh.models import FormationRateModel

logger = logging.getLogger(__name__)

# Scale factor from median absolute deviation to Gaussian sigma
MAD_TO_SIGMA = 1.4826


@dataclass
class BootstrapSummary:
    """Per-bin statistics of the recovered rates over all realisations."""

    centres: NDArray[np.float64]
    widths: NDArray[np.float64]
    median: NDArray[np.float64]
    mad_sigma: NDArray[np.float64]
    mean: NDArray[np.float64]
    std: NDArray[np.float64]
    realisations: list[InversionResult] = field(default_factory=list)

    @property
    def n_realisations(self) -> int:
        return len(self.realisations)

    @property
    def n_converged(self) -> int:
        return sum(1 for r in self.realisations if r.converged)

    def to_model(self) -> FormationRateModel:
        """Freeform model of the median rate with the MAD-based sigma."""
        return freeform(self.centres, self.widths, self.median, self.mad_sigma)

    def to_table(self) -> list[dict[str, float]]:
        return [
            {
                "centre": float(self.centres[i]),
                "width": float(self.widths[i]),
                "median": float(self.median[i]),
                "mad_sigma": float(self.mad_sigma[i]),
                "mean": float(self.mean[i]),
                "std": float(self.std[i]),
            }
            for i in range(self.centres.size)
        ]


def summarise_rates(rates: NDArray[np.float64]) -> tuple[NDArray, NDArray, NDArray, NDArray]:
    """Median, scaled MAD, mean and sample std along axis 0 of a (n_real, n_bins) array."""
    med = np.median(rates, axis=0)
    mad = np.median(np.abs(rates - med), axis=0) * MAD_TO_SIGMA
    mean = np.mean(rates, axis=0)
    std = np.std(rates, axis=0, ddof=1) if rates.shape[0] > 1 else np.zeros(rates.shape[1])
    return med, mad, mean, std


def bootstrap_inversion(
    observed_lf: ObservedLuminosityFunction,
    initial_model: FormationRateModel,
    physics: PopulationPhysics,
    config: InversionConfig | None = None,
    *,
    n_realisations: int = 10,
    seed: int | None = None,
    on_realisation: Callable[[int, InversionResult], None] | None = None,
) -> BootstrapSummary:
    """Invert ``n_realisations`` Gaussian resamplings of ``observed_lf``.

    Args:
        observed_lf: Observation to resample
        initial_model: Starting model for every realisation
        physics: Stellar physics collaborators
        config: Inversion settings; its seed is replaced per realisation
        n_realisations: Number of resampled inversions
        seed: Root seed for the resampling and the inversions
        on_realisation: Called with (index, result) after each inversion

    Returns:
        BootstrapSummary over the final models of all realisations.
    """
    if n_realisations < 1:
        raise InvalidConfigurationError(f"n_realisations must be >= 1, got {n_realisations}")
    base = config or InversionConfig()
    base.validate()

    children = np.random.SeedSequence(seed).spawn(n_realisations)
    results: list[InversionResult] = []
    for k, child in enumerate(children):
        resample_seq, inversion_seq = child.spawn(2)
        resampled = observed_lf.resample(
            np.random.default_rng(resample_seq), name=f"{observed_lf.name} #{k + 1}"
        )
        run_config = dataclasses.replace(base, seed=int(inversion_seq.generate_state(1)[0]))
        logger.info("Bootstrap realisation %d of %d", k + 1, n_realisations)
        result = InversionController(resampled, initial_model, physics, run_config).run()
        results.append(result)
        if on_realisation is not None:
            on_realisation(k, result)

    rates = np.vstack([r.model.rates for r in results])
    med, mad, mean, std = summarise_rates(rates)
    return BootstrapSummary(
        centres=initial_model.centres,
        widths=initial_model.widths,
        median=med,
        mad_sigma=mad,
        mean=mean,
        std=std,
        realisations=results,
    )
