"""Iteration controller for the luminosity function inversion.

Each iteration:

1. generate a white dwarf population from the current formation-rate model
2. snapshot its luminosity function
3. rescale it to the observed luminosity function (chi-square)
4. derive the updated formation-rate model
5. feed the chi-square to the convergence monitor and decide whether to stop

The loop itself is sequential; only the particle generation inside an
iteration is parallel. ``request_stop`` may be called from any thread and
ends the run after the iteration in progress.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from wdlf_inverter.config import InversionConfig
from wdlf_inverter.domain.luminosity_function import ModelLuminosityFunction
from wdlf_inverter.errors import InvalidConfigurationError
from wdlf_inverter.inversion.convergence import ConvergenceMonitor
from wdlf_inverter.inversion.generator import ParticleGenerator
from wdlf_inverter.inversion.rate_update import update_rate
from wdlf_inverter.inversion.reweighting import scale_to_observed

if TYPE_CHECKING:
    from wdlf_inverter.domain.luminosity_function import ObservedLuminosityFunction
    from wdlf_inverter.inversion.generator import GenerationResult
    from wdlf_inverter.inversion.rate_update import RateUpdate
    from wdlf_inverter.inversion.reweighting import ReweightSummary
    from wdlf_inverter.physics.contracts import PopulationPhysics
    from wdlf_inverter.sfh.models import FormationRateModel

logger = logging.getLogger(__name__)


class TerminationState(str, Enum):
    CONVERGED = "converged"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"
    STOPPED = "stopped"


class IterationReport(BaseModel):
    """Summary of one completed iteration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    iteration: int
    chi_square: float
    fitted_chi_square: float | None = None
    relative_change: float | None = None
    n_white_dwarfs: int
    n_observed: int
    stalled_bins: list[int] = Field(default_factory=list)
    skipped_magnitude_bins: list[int] = Field(default_factory=list)
    unconstrained_bins: list[int] = Field(default_factory=list)
    termination: TerminationState | None = None
    elapsed_seconds: float = 0.0


@dataclass
class IterationDiagnostics:
    """Everything an external renderer may want to inspect after an iteration."""

    report: IterationReport
    generation: GenerationResult
    model_lf: ModelLuminosityFunction
    reweight: ReweightSummary
    rate_update: RateUpdate


@dataclass
class InversionState:
    current_model: FormationRateModel
    updated_model: FormationRateModel | None = None
    chi_square_history: list[float] = field(default_factory=list)
    iteration_count: int = 0
    min_iterations: int = 5
    convergence_threshold: float = 0.01
    model_lf: ModelLuminosityFunction | None = None
    termination: TerminationState | None = None


@dataclass
class InversionResult:
    model: FormationRateModel
    termination: TerminationState
    chi_square_history: list[float]
    reports: list[IterationReport]
    model_lf: ModelLuminosityFunction | None

    @property
    def converged(self) -> bool:
        return self.termination is TerminationState.CONVERGED

    @property
    def iterations(self) -> int:
        return len(self.reports)

    def to_payload(self) -> dict[str, Any]:
        return {
            "termination": self.termination.value,
            "converged": self.converged,
            "iterations": self.iterations,
            "chi_square_history": list(self.chi_square_history),
            "model": {
                "kind": self.model.kind.value,
                "bins": self.model.to_table(),
            },
            "model_lf": self.model_lf.to_rows() if self.model_lf is not None else None,
            "reports": [r.model_dump(mode="json") for r in self.reports],
        }


IterationCallback = Callable[[IterationReport, IterationDiagnostics], None]


def evaluate_termination(
    *,
    iteration_count: int,
    min_iterations: int,
    max_iterations: int,
    monitor: ConvergenceMonitor,
    threshold: float,
    stop_requested: bool = False,
) -> TerminationState | None:
    """Decide whether the run ends after ``iteration_count`` iterations.

    Returns:
        The terminal state, or None to continue iterating.
    """
    if (
        iteration_count >= min_iterations
        and monitor.is_constrained
        and monitor.has_converged(threshold)
    ):
        return TerminationState.CONVERGED
    if iteration_count >= max_iterations:
        return TerminationState.ITERATION_LIMIT_REACHED
    if stop_requested:
        return TerminationState.STOPPED
    return None


class InversionController:
    """Runs the inversion loop for one observed luminosity function."""

    def __init__(
        self,
        observed_lf: ObservedLuminosityFunction,
        initial_model: FormationRateModel,
        physics: PopulationPhysics,
        config: InversionConfig | None = None,
    ) -> None:
        self.config = config or InversionConfig()
        self.config.validate()

        if not initial_model.is_binned:
            raise InvalidConfigurationError(
                f"Initial {initial_model.name} star formation rate must be binned"
            )
        total, _ = initial_model.integral()
        if total <= 0:
            raise InvalidConfigurationError("Initial star formation rate forms no stars")

        self.observed_lf = observed_lf
        self.physics = physics
        self.generator = ParticleGenerator(
            physics,
            self.config.modelling,
            max_draws_per_bin=self.config.max_draws_per_bin,
            n_workers=self.config.n_workers,
        )
        self.monitor = ConvergenceMonitor(self.config.strategy, skip=self.config.skip)
        self.state = InversionState(
            current_model=initial_model.copy(),
            min_iterations=self.config.min_iterations,
            convergence_threshold=self.config.convergence_threshold,
        )
        self.reports: list[IterationReport] = []
        self._callbacks: list[IterationCallback] = []
        self._stop = threading.Event()
        self._seeds = np.random.SeedSequence(self.config.seed)

    def on_iteration(self, callback: IterationCallback) -> None:
        self._callbacks.append(callback)

    def request_stop(self) -> None:
        """Ask the loop to stop after the current iteration. Thread-safe."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def step(self) -> IterationDiagnostics:
        """Run one iteration and advance the state."""
        state = self.state
        iteration = state.iteration_count + 1
        start = time.time()
        lf = self.observed_lf

        logger.info(
            "Iteration %d: simulating %d white dwarfs per lookback-time bin",
            iteration,
            self.config.wd_per_bin,
        )
        generation = self.generator.generate(
            state.current_model,
            self.config.wd_per_bin,
            (lf.centres, lf.widths),
            seed=self._seeds.spawn(1)[0],
        )
        model_lf = ModelLuminosityFunction.from_histogram(generation.white_dwarfs, generation.arena)

        logger.info("Iteration %d: scaling white dwarf population", iteration)
        reweight = scale_to_observed(generation.arena, generation.white_dwarfs, lf)

        logger.info("Iteration %d: calculating revised formation rate", iteration)
        rate_update = update_rate(
            generation.arena,
            generation.progenitors,
            state.current_model,
            generation.bin_stats,
        )

        self.monitor.append(reweight.chi_square)
        state.chi_square_history.append(reweight.chi_square)
        state.iteration_count = iteration
        state.updated_model = rate_update.model
        state.model_lf = model_lf

        fitted = None
        relative = None
        if self.monitor.is_constrained:
            fitted = self.monitor.fitted_chi_square(self.monitor.n_points)
            relative = self.monitor.relative_change()

        termination = evaluate_termination(
            iteration_count=iteration,
            min_iterations=self.config.min_iterations,
            max_iterations=self.config.max_iterations,
            monitor=self.monitor,
            threshold=self.config.convergence_threshold,
            stop_requested=self.stop_requested,
        )
        state.termination = termination

        report = IterationReport(
            iteration=iteration,
            chi_square=reweight.chi_square,
            fitted_chi_square=fitted,
            relative_change=relative,
            n_white_dwarfs=len(generation.arena),
            n_observed=generation.n_observed,
            stalled_bins=list(generation.stalled_bins),
            skipped_magnitude_bins=list(reweight.skipped_bins),
            unconstrained_bins=rate_update.unconstrained_bins,
            termination=termination,
            elapsed_seconds=time.time() - start,
        )
        self.reports.append(report)
        logger.info("Iteration %d: chi-square = %.4g", iteration, reweight.chi_square)

        diagnostics = IterationDiagnostics(
            report=report,
            generation=generation,
            model_lf=model_lf,
            reweight=reweight,
            rate_update=rate_update,
        )
        for callback in self._callbacks:
            callback(report, diagnostics)

        # The particles are discarded; only the model and history carry over.
        state.current_model = rate_update.model
        return diagnostics

    def run(self) -> InversionResult:
        """Iterate until converged, the iteration limit, or a stop request."""
        while self.state.termination is None:
            self.step()

        logger.info(
            "Inversion finished after %d iterations: %s",
            self.state.iteration_count,
            self.state.termination.value,
        )
        return InversionResult(
            model=self.state.current_model,
            termination=self.state.termination,
            chi_square_history=list(self.state.chi_square_history),
            reports=list(self.reports),
            model_lf=self.state.model_lf,
        )


def invert(
    observed_lf: ObservedLuminosityFunction,
    initial_model: FormationRateModel,
    physics: PopulationPhysics,
    config: InversionConfig | None = None,
) -> InversionResult:
    """Run a complete inversion."""
    return InversionController(observed_lf, initial_model, physics, config).run()
