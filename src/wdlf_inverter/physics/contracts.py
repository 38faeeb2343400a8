"""Contracts for the stellar physics the generator consumes.

The engine treats every piece of stellar physics as an injected, pure
function. Any object with the right method satisfies the contract; nothing
here is tied to a particular set of models or tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple, Protocol, runtime_checkable

if TYPE_CHECKING:
    import numpy as np

    from wdlf_inverter.domain.particle import AtmosphereType


class CoolingResult(NamedTuple):
    """Magnitude of a cooling white dwarf.

    ``extrapolated`` is True when the requested cooling age lies outside the
    range the cooling model covers.
    """

    magnitude: float
    extrapolated: bool


@runtime_checkable
class ImfSampler(Protocol):
    def draw_mass(self, rng: np.random.Generator) -> float:
        """Draw a main sequence mass [M_sun]."""
        ...


@runtime_checkable
class InitialFinalMassRelation(Protocol):
    def final_mass(self, initial_mass: float) -> float:
        """White dwarf mass [M_sun] for a progenitor mass [M_sun]."""
        ...


@runtime_checkable
class PreWdLifetimeModel(Protocol):
    def lifetime(self, metallicity: float, helium: float, mass: float) -> float:
        """Total pre-WD lifetime [yr]."""
        ...


@runtime_checkable
class CoolingModel(Protocol):
    def magnitude(
        self,
        cooling_age: float,
        mass: float,
        atmosphere: AtmosphereType,
        filter_name: str,
    ) -> CoolingResult: ...


@dataclass(frozen=True)
class PopulationPhysics:
    """The four collaborators needed to forward-model a white dwarf population."""

    imf: ImfSampler
    ifmr: InitialFinalMassRelation
    lifetime: PreWdLifetimeModel
    cooling: CoolingModel
