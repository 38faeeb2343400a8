"""Stellar physics contracts and analytic reference models."""

from wdlf_inverter.physics.contracts import (
    CoolingModel,
    CoolingResult,
    ImfSampler,
    InitialFinalMassRelation,
    PopulationPhysics,
    PreWdLifetimeModel,
)
from wdlf_inverter.physics.reference import (
    BOLOMETRIC_FILTER,
    LinearIfmr,
    MestelCooling,
    PowerLawImf,
    PowerLawLifetime,
    reference_physics,
)

__all__ = [
    "BOLOMETRIC_FILTER",
    "CoolingModel",
    "CoolingResult",
    "ImfSampler",
    "InitialFinalMassRelation",
    "LinearIfmr",
    "MestelCooling",
    "PopulationPhysics",
    "PowerLawImf",
    "PowerLawLifetime",
    "PreWdLifetimeModel",
    "reference_physics",
]
