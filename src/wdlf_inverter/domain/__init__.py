"""Core data model: particles, histograms and luminosity functions."""

from wdlf_inverter.domain.histogram import (
    BinnedHistogram,
    HistogramBin,
    shared_edges,
    validate_bin_layout,
)
from wdlf_inverter.domain.luminosity_function import (
    EMPTY_BIN_SIGMA,
    ModelLuminosityFunction,
    ObservedLuminosityFunction,
    format_luminosity_function_text,
    parse_luminosity_function_text,
)
from wdlf_inverter.domain.particle import AtmosphereType, Particle, ParticleArena

__all__ = [
    "EMPTY_BIN_SIGMA",
    "AtmosphereType",
    "BinnedHistogram",
    "HistogramBin",
    "ModelLuminosityFunction",
    "ObservedLuminosityFunction",
    "Particle",
    "ParticleArena",
    "format_luminosity_function_text",
    "parse_luminosity_function_text",
    "shared_edges",
    "validate_bin_layout",
]
