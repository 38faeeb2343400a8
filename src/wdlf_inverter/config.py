"""Inversion configuration.

Two frozen dataclasses hold everything a run needs besides the observed
luminosity function, the initial formation-rate model and the physics:

- ModellingParameters: how simulated stars are drawn and observed
- InversionConfig: how the iteration is driven

Both validate themselves with ``validate()``, which raises
InvalidConfigurationError. JSON configuration files are parsed through
``ConfigFile``, a pydantic model that rejects unknown keys.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wdlf_inverter.errors import InvalidConfigurationError


class ConvergenceStrategy(str, Enum):
    POWER_LAW = "power_law"
    SLIDING_LINEAR = "sliding_linear"


@dataclass(frozen=True)
class ModellingParameters:
    """
    Parameters of the simulated stellar population.

    Attributes
    ----------
    metallicity_mean, metallicity_sigma : float
        Gaussian distribution of the metallicity Z.
    helium_mean, helium_sigma : float
        Gaussian distribution of the helium content Y.
    w_h : float
        Fraction of white dwarfs with hydrogen atmospheres, in [0, 1].
    magnitude_sigma : float
        Standard deviation of the Gaussian observation noise added to
        simulated magnitudes.
    filter_name : str
        Passband requested from the cooling model.
    """

    metallicity_mean: float = 0.017
    metallicity_sigma: float = 0.001
    helium_mean: float = 0.279
    helium_sigma: float = 0.001
    w_h: float = 1.0
    magnitude_sigma: float = 0.1
    filter_name: str = "M_BOL"

    def validate(self) -> None:
        values = {
            "metallicity_mean": self.metallicity_mean,
            "metallicity_sigma": self.metallicity_sigma,
            "helium_mean": self.helium_mean,
            "helium_sigma": self.helium_sigma,
            "w_h": self.w_h,
            "magnitude_sigma": self.magnitude_sigma,
        }
        for name, value in values.items():
            if not math.isfinite(value):
                raise InvalidConfigurationError(f"{name} must be finite, got {value}")
        for name in ("metallicity_sigma", "helium_sigma", "magnitude_sigma"):
            if values[name] < 0:
                raise InvalidConfigurationError(f"{name} must be >= 0, got {values[name]}")
        if self.metallicity_mean <= 0 and self.metallicity_sigma == 0:
            raise InvalidConfigurationError(
                f"metallicity_mean must be positive, got {self.metallicity_mean}"
            )
        if self.helium_mean <= 0 and self.helium_sigma == 0:
            raise InvalidConfigurationError(f"helium_mean must be positive, got {self.helium_mean}")
        if not (0.0 <= self.w_h <= 1.0):
            raise InvalidConfigurationError(f"w_h must lie in [0, 1], got {self.w_h}")
        if not self.filter_name:
            raise InvalidConfigurationError("filter_name must not be empty")


@dataclass(frozen=True)
class InversionConfig:
    """
    Settings that drive the iteration.

    Attributes
    ----------
    wd_per_bin : int
        Simulated white dwarfs to realise in each lookback-time bin.
    min_iterations : int
        Iterations to run before convergence is tested.
    max_iterations : int
        Hard iteration limit.
    convergence_threshold : float
        Relative chi-square change below which the run has converged.
    strategy : ConvergenceStrategy
        Fit used to smooth the chi-square history.
    skip : int
        Leading chi-square values ignored by the convergence fit.
    max_draws_per_bin : int
        Progenitor draw budget per lookback-time bin and iteration.
    n_workers : int
        Worker threads used to generate lookback-time bins.
    seed : int | None
        Root seed; None draws fresh OS entropy.
    modelling : ModellingParameters
        Population parameters.
    """

    wd_per_bin: int = 2000
    min_iterations: int = 5
    max_iterations: int = 50
    convergence_threshold: float = 0.01
    strategy: ConvergenceStrategy = ConvergenceStrategy.SLIDING_LINEAR
    skip: int = 0
    max_draws_per_bin: int = 10_000_000
    n_workers: int = 1
    seed: int | None = None
    modelling: ModellingParameters = field(default_factory=ModellingParameters)

    def validate(self) -> None:
        if self.wd_per_bin < 1:
            raise InvalidConfigurationError(f"wd_per_bin must be >= 1, got {self.wd_per_bin}")
        if self.min_iterations < 1:
            raise InvalidConfigurationError(
                f"min_iterations must be >= 1, got {self.min_iterations}"
            )
        if self.max_iterations < self.min_iterations:
            raise InvalidConfigurationError(
                f"max_iterations ({self.max_iterations}) must be >= "
                f"min_iterations ({self.min_iterations})"
            )
        if not (math.isfinite(self.convergence_threshold) and self.convergence_threshold > 0):
            raise InvalidConfigurationError(
                f"convergence_threshold must be positive, got {self.convergence_threshold}"
            )
        if self.skip < 0:
            raise InvalidConfigurationError(f"skip must be >= 0, got {self.skip}")
        if self.max_draws_per_bin < self.wd_per_bin:
            raise InvalidConfigurationError(
                f"max_draws_per_bin ({self.max_draws_per_bin}) must be >= "
                f"wd_per_bin ({self.wd_per_bin})"
            )
        if self.n_workers < 1:
            raise InvalidConfigurationError(f"n_workers must be >= 1, got {self.n_workers}")
        if self.seed is not None and self.seed < 0:
            raise InvalidConfigurationError(f"seed must be non-negative, got {self.seed}")
        self.modelling.validate()


class ModellingSection(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    metallicity_mean: float = 0.017
    metallicity_sigma: float = 0.001
    helium_mean: float = 0.279
    helium_sigma: float = 0.001
    w_h: float = 1.0
    magnitude_sigma: float = 0.1
    filter_name: str = "M_BOL"


class InitialModelSection(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    t_min: float = 0.0
    t_max: float = 1.3e10
    n_bins: int = Field(default=20, ge=1)
    rate: float = Field(default=5e-12, ge=0.0)


class ConfigFile(BaseModel):
    """JSON configuration accepted by the ``wdlf`` CLI."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    wd_per_bin: int = 2000
    min_iterations: int = 5
    max_iterations: int = 50
    convergence_threshold: float = 0.01
    strategy: ConvergenceStrategy = ConvergenceStrategy.SLIDING_LINEAR
    skip: int = 0
    max_draws_per_bin: int = 10_000_000
    n_workers: int = 1
    seed: int | None = None
    modelling: ModellingSection = Field(default_factory=ModellingSection)
    initial_model: InitialModelSection = Field(default_factory=InitialModelSection)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ConfigFile:
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise InvalidConfigurationError(f"Invalid configuration: {exc}") from exc

    def to_inversion_config(self, **overrides: Any) -> InversionConfig:
        """Build a validated InversionConfig; non-None overrides win."""
        values = self.model_dump(exclude={"modelling", "initial_model"})
        values.update({k: v for k, v in overrides.items() if v is not None})
        config = InversionConfig(
            modelling=ModellingParameters(**self.modelling.model_dump()),
            **values,
        )
        config.validate()
        return config
