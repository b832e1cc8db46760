"""Algorithm and execution settings."""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, fields
from typing import Mapping, Optional

from .exceptions import ConfigurationError

# Option names used by the original analysis scripts.
_OPTION_ALIASES = {
    "impTotal": "imp_total",
    "maxDec": "max_dec",
    "n": "n",
    "level": "level",
    "tMax": "t_max",
}

# Heap node ids of leaves at this depth still fit in an int64.
MAX_LEVEL = 62


@dataclass(frozen=True)
class Settings:
    """Stopping and filtering thresholds for explanation-tree growth.

    Parameters
    ----------
    imp_total : float
        Cumulative importance fraction (0-1) covered by the candidate split
        predictors. Predictors are taken in decreasing importance until the
        running fraction reaches this value.
    max_dec : float
        Minimum decrease in normalised error a split must achieve.
    n : int
        Minimum node size. Smaller nodes are leaves and no child may hold
        fewer observations.
    level : int
        Maximum tree depth (root is depth 0), at most :data:`MAX_LEVEL`.
    t_max : int
        Maximum number of ranked candidate splits re-evaluated per node.
    """

    imp_total: float = 0.1
    max_dec: float = 1e-6
    n: int = 5
    level: int = 5
    t_max: int = 5

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if (
                isinstance(value, bool)
                or not isinstance(value, numbers.Real)
                or not math.isfinite(value)
            ):
                raise ConfigurationError(
                    f"{f.name} must be a finite number, got {value!r}"
                )
        if not 0.0 <= self.imp_total <= 1.0:
            raise ConfigurationError(
                f"imp_total must lie in [0, 1], got {self.imp_total!r}"
            )
        if self.max_dec < 0:
            raise ConfigurationError(
                f"max_dec must be non-negative, got {self.max_dec!r}"
            )
        if int(self.n) != self.n or self.n < 1:
            raise ConfigurationError(f"n must be an integer >= 1, got {self.n!r}")
        if int(self.level) != self.level or not 0 <= self.level <= MAX_LEVEL:
            raise ConfigurationError(
                f"level must be an integer in [0, {MAX_LEVEL}], got {self.level!r}"
            )
        if int(self.t_max) != self.t_max or self.t_max < 1:
            raise ConfigurationError(
                f"t_max must be an integer >= 1, got {self.t_max!r}"
            )

    @classmethod
    def from_dict(cls, options: Mapping[str, float]) -> Settings:
        """Build settings from a mapping.

        Accepts both the attribute names (``imp_total``) and the camel-case
        option names (``impTotal``, ``maxDec``, ``tMax``). Missing options
        keep their defaults.
        """
        kwargs: dict = {}
        valid = set(_OPTION_ALIASES.values())
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in valid:
                raise ConfigurationError(
                    f"Unknown setting {key!r}; expected one of "
                    f"{sorted(_OPTION_ALIASES)}"
                )
            kwargs[name] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class ParallelConfig:
    """Serial/parallel toggle for the dissimilarity computation.

    Parameters
    ----------
    active : bool
        Run per-tree work through joblib when True.
    n_jobs : int or None
        Worker count passed to joblib. ``None`` uses every core when
        *active*; negative values follow joblib's convention.
    """

    active: bool = False
    n_jobs: Optional[int] = None

    def __post_init__(self) -> None:
        if self.n_jobs is not None and self.n_jobs == 0:
            raise ConfigurationError("n_jobs must be non-zero (or None)")

    @property
    def effective_n_jobs(self) -> int:
        if not self.active:
            return 1
        return -1 if self.n_jobs is None else self.n_jobs
