"""Star formation history models."""

from wdlf_inverter.sfh.models import (
    BINNED_KINDS,
    FormationRateModel,
    SfhKind,
    constant,
    discretise,
    exponential_decay,
    fractal,
    freeform,
    initial_guess,
    single_burst,
)

__all__ = [
    "BINNED_KINDS",
    "FormationRateModel",
    "SfhKind",
    "constant",
    "discretise",
    "exponential_decay",
    "fractal",
    "freeform",
    "initial_guess",
    "single_burst",
]
