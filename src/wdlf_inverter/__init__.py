"""Monte Carlo inversion of white dwarf luminosity functions.

Recovers a star formation history (rate vs. lookback time) from an observed
white dwarf luminosity function by iterated forward simulation and
reweighting of a synthetic population.
"""

from __future__ import annotations

from wdlf_inverter.config import InversionConfig, ModellingParameters
from wdlf_inverter.domain.luminosity_function import (
    ModelLuminosityFunction,
    ObservedLuminosityFunction,
    parse_luminosity_function_text,
)
from wdlf_inverter.errors import (
    GenerationStalledError,
    InsufficientHistoryError,
    InvalidConfigurationError,
)
from wdlf_inverter.inversion.controller import InversionController, InversionResult, invert
from wdlf_inverter.inversion.forward import synthesize_luminosity_function
from wdlf_inverter.inversion.resampling import bootstrap_inversion
from wdlf_inverter.physics.reference import reference_physics
from wdlf_inverter.sfh.models import FormationRateModel

__version__ = "0.3.0"

__all__ = [
    "FormationRateModel",
    "GenerationStalledError",
    "InsufficientHistoryError",
    "InvalidConfigurationError",
    "InversionConfig",
    "InversionController",
    "InversionResult",
    "ModelLuminosityFunction",
    "ModellingParameters",
    "ObservedLuminosityFunction",
    "__version__",
    "bootstrap_inversion",
    "invert",
    "parse_luminosity_function_text",
    "reference_physics",
    "synthesize_luminosity_function",
]
