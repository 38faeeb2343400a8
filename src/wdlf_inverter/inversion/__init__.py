"""Monte Carlo inversion of white dwarf luminosity functions."""

from wdlf_inverter.inversion.controller import (
    InversionController,
    InversionResult,
    InversionState,
    IterationDiagnostics,
    IterationReport,
    TerminationState,
    evaluate_termination,
    invert,
)
from wdlf_inverter.inversion.convergence import (
    ConvergenceMonitor,
    ConvergenceState,
    ConvergenceStrategy,
)
from wdlf_inverter.inversion.forward import synthesize_luminosity_function
from wdlf_inverter.inversion.generator import (
    BinDrawStats,
    GenerationResult,
    ParticleGenerator,
)
from wdlf_inverter.inversion.rate_update import (
    RateBinUnconstrained,
    RateBinUpdated,
    RateUpdate,
    update_rate,
)
from wdlf_inverter.inversion.resampling import BootstrapSummary, bootstrap_inversion
from wdlf_inverter.inversion.reweighting import BinCorrection, ReweightSummary, scale_to_observed

__all__ = [
    "BinCorrection",
    "BinDrawStats",
    "BootstrapSummary",
    "ConvergenceMonitor",
    "ConvergenceState",
    "ConvergenceStrategy",
    "GenerationResult",
    "InversionController",
    "InversionResult",
    "InversionState",
    "IterationDiagnostics",
    "IterationReport",
    "ParticleGenerator",
    "RateBinUnconstrained",
    "RateBinUpdated",
    "RateUpdate",
    "ReweightSummary",
    "TerminationState",
    "bootstrap_inversion",
    "evaluate_termination",
    "invert",
    "scale_to_observed",
    "synthesize_luminosity_function",
    "update_rate",
]
