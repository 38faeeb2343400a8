"""Monte Carlo particle generator.

For each lookback-time bin of the current formation-rate model, draws
progenitors until a target number of them have become white dwarfs by the
present day, then gives every realised white dwarf the statistical weight

    weight = expected_real / draws

where ``expected_real`` is the number of stars the model forms in the bin.
Realised particles are binned by formation time (progenitor histogram) and by
magnitude (white dwarf histogram).

Bins are independent: each owns its own random stream spawned from one
``numpy.random.SeedSequence``, so the result is the same for any number of
worker threads. Workers fill private buffers; the arena and both histograms
are assembled afterwards, in bin order.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from wdlf_inverter.domain.histogram import BinnedHistogram
from wdlf_inverter.domain.particle import AtmosphereType, Particle, ParticleArena
from wdlf_inverter.errors import GenerationStalledError, InvalidConfigurationError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from wdlf_inverter.config import ModellingParameters
    from wdlf_inverter.physics.contracts import PopulationPhysics
    from wdlf_inverter.sfh.models import FormationRateModel

logger = logging.getLogger(__name__)

# Cap on redraws of a non-positive metallicity or helium content
MAX_POSITIVE_REDRAWS = 10_000


@dataclass(frozen=True)
class BinDrawStats:
    """Bookkeeping for one lookback-time bin.

    Attributes:
        draws: Progenitors drawn (white dwarf or not)
        realized: White dwarfs realised
        expected_real: Stars the formation-rate model forms in the bin
        stalled: True if the draw budget ran out and the bin was skipped
    """

    draws: int
    realized: int
    expected_real: float
    stalled: bool = False


@dataclass
class GenerationResult:
    arena: ParticleArena
    white_dwarfs: BinnedHistogram
    progenitors: BinnedHistogram
    bin_stats: list[BinDrawStats]
    stalled_bins: list[int] = field(default_factory=list)

    @property
    def n_observed(self) -> int:
        return int(self.white_dwarfs.counts().sum())


@dataclass
class _BinBuffer:
    index: int
    particles: list[Particle]
    draws: int
    expected_real: float


def _draw_positive(rng: np.random.Generator, mean: float, sigma: float, label: str) -> float:
    if sigma == 0:
        if mean <= 0:
            raise InvalidConfigurationError(f"{label} mean must be positive, got {mean}")
        return float(mean)
    for _ in range(MAX_POSITIVE_REDRAWS):
        value = float(rng.normal(mean, sigma))
        if value > 0:
            return value
    raise InvalidConfigurationError(
        f"No positive {label} in {MAX_POSITIVE_REDRAWS} draws from N({mean}, {sigma})"
    )


class ParticleGenerator:
    """Forward-simulates white dwarf populations for a formation-rate model."""

    def __init__(
        self,
        physics: PopulationPhysics,
        modelling: ModellingParameters,
        *,
        max_draws_per_bin: int = 10_000_000,
        n_workers: int = 1,
    ) -> None:
        modelling.validate()
        if max_draws_per_bin < 1:
            raise InvalidConfigurationError(
                f"max_draws_per_bin must be >= 1, got {max_draws_per_bin}"
            )
        self.physics = physics
        self.modelling = modelling
        self.max_draws_per_bin = int(max_draws_per_bin)
        self.n_workers = max(1, int(n_workers))

    def generate(
        self,
        rate_model: FormationRateModel,
        target_wd_per_bin: int,
        magnitude_bins: tuple[ArrayLike, ArrayLike],
        seed: int | np.random.SeedSequence | None = None,
    ) -> GenerationResult:
        """Simulate one population.

        Args:
            rate_model: Binned formation-rate model
            target_wd_per_bin: White dwarfs to realise in each lookback-time bin
            magnitude_bins: (centres, widths) of the magnitude bins
            seed: Root seed or SeedSequence; one child stream is spawned per bin

        Returns:
            GenerationResult with the arena, both histograms and per-bin stats.

        Raises:
            InvalidConfigurationError: If the model is not binned, the target
                is not positive, or a positive Z/Y cannot be drawn.
        """
        if not rate_model.is_binned:
            raise InvalidConfigurationError(
                f"{rate_model.name} star formation rate has no lookback-time bins"
            )
        if target_wd_per_bin < 1:
            raise InvalidConfigurationError(
                f"target_wd_per_bin must be >= 1, got {target_wd_per_bin}"
            )
        if target_wd_per_bin > self.max_draws_per_bin:
            raise InvalidConfigurationError(
                f"target_wd_per_bin ({target_wd_per_bin}) exceeds the draw budget "
                f"({self.max_draws_per_bin})"
            )

        centres, widths = magnitude_bins
        white_dwarfs = BinnedHistogram(centres, widths, label="magnitude bins")
        progenitors = BinnedHistogram(
            rate_model.centres, rate_model.widths, label="lookback-time bins"
        )

        root = seed if isinstance(seed, np.random.SeedSequence) else np.random.SeedSequence(seed)
        n_bins = rate_model.n_bins
        child_seeds = root.spawn(n_bins)

        buffers: dict[int, _BinBuffer] = {}
        stats: dict[int, BinDrawStats] = {}
        stalled: list[int] = []

        with ThreadPoolExecutor(max_workers=self.n_workers) as pool:
            future_map = {
                pool.submit(
                    self._generate_bin,
                    index=i,
                    rate_model=rate_model,
                    target=int(target_wd_per_bin),
                    rng=np.random.default_rng(child_seeds[i]),
                ): i
                for i in range(n_bins)
            }
            for fut in as_completed(future_map):
                i = future_map[fut]
                expected_real = rate_model.integrate_bin(i)[0]
                try:
                    buffers[i] = fut.result()
                except GenerationStalledError as exc:
                    logger.warning("Skipping lookback-time bin %d this iteration: %s", i, exc)
                    stats[i] = BinDrawStats(
                        draws=exc.draws,
                        realized=exc.realized,
                        expected_real=expected_real,
                        stalled=True,
                    )
                    stalled.append(i)

        arena = ParticleArena()
        for i in range(n_bins):
            buffer = buffers.get(i)
            if buffer is None:
                continue
            weight = buffer.expected_real / buffer.draws
            for particle in buffer.particles:
                particle.weight = weight
                particle.weight_variance = 0.0
                index = arena.append(particle)
                progenitors.insert(i, index)
                particle.observed = white_dwarfs.add(particle.magnitude, index) is not None
            stats[i] = BinDrawStats(
                draws=buffer.draws,
                realized=len(buffer.particles),
                expected_real=buffer.expected_real,
            )

        result = GenerationResult(
            arena=arena,
            white_dwarfs=white_dwarfs,
            progenitors=progenitors,
            bin_stats=[stats[i] for i in range(n_bins)],
            stalled_bins=sorted(stalled),
        )
        logger.info(
            "Generated %d white dwarfs (%d in magnitude range) from %d draws over %d bins",
            len(arena),
            result.n_observed,
            sum(s.draws for s in result.bin_stats),
            n_bins,
        )
        return result

    def _generate_bin(
        self,
        *,
        index: int,
        rate_model: FormationRateModel,
        target: int,
        rng: np.random.Generator,
    ) -> _BinBuffer:
        t_lo, t_hi = rate_model.bin_range(index)
        expected_real = rate_model.integrate_bin(index)[0]
        m = self.modelling
        physics = self.physics

        particles: list[Particle] = []
        draws = 0
        while len(particles) < target:
            if draws >= self.max_draws_per_bin:
                raise GenerationStalledError(index, draws, len(particles))
            draws += 1

            mass = physics.imf.draw_mass(rng)
            z = _draw_positive(rng, m.metallicity_mean, m.metallicity_sigma, "metallicity")
            y = _draw_positive(rng, m.helium_mean, m.helium_sigma, "helium content")
            lifetime = physics.lifetime.lifetime(z, y, mass)
            wd_mass = physics.ifmr.final_mass(mass)
            atmosphere = AtmosphereType.H if rng.random() < m.w_h else AtmosphereType.HE
            total_age = float(rng.uniform(t_lo, t_hi))

            if total_age <= lifetime:
                continue

            cooled = physics.cooling.magnitude(total_age - lifetime, wd_mass, atmosphere, m.filter_name)
            magnitude = cooled.magnitude
            if m.magnitude_sigma > 0:
                magnitude += float(rng.normal(0.0, m.magnitude_sigma))
            particles.append(
                Particle(
                    progenitor_mass=mass,
                    metallicity=z,
                    helium=y,
                    pre_wd_lifetime=lifetime,
                    total_age=total_age,
                    wd_mass=wd_mass,
                    atmosphere=atmosphere,
                    magnitude=magnitude,
                    extrapolated=cooled.extrapolated,
                )
            )

        return _BinBuffer(index=index, particles=particles, draws=draws, expected_real=expected_real)
