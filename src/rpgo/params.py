"""Configuration values for the robust solver.

Every component receives the parameters it needs at construction time; there
are no module-level noise models or other shared mutable defaults.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Type, TypeVar

from scipy.stats import chi2

from .errors import UnsupportedConfigurationError

E = TypeVar("E", bound=Enum)


class PcmMode(Enum):
    """Pairwise consistency policy."""

    DISABLED = "disabled"
    SIMPLIFIED = "simplified"
    ORIGINAL = "original"


class GncMode(Enum):
    """Graduated non-convexity policy."""

    DISABLED = "disabled"
    ENABLED = "enabled"


class CliqueStrategy(Enum):
    """Maximum clique search strategy."""

    EXACT = "exact"
    HEURISTIC = "heuristic"
    RELAXATION = "relaxation"


class Verbosity(Enum):
    """Logging verbosity of the solver components."""

    QUIET = "quiet"
    VERBOSE = "verbose"

    @property
    def log_level(self) -> int:
        """Level used for progress messages."""
        return logging.INFO if self is Verbosity.VERBOSE else logging.DEBUG


def _coerce_enum(enum_type: Type[E], value: object, name: str) -> E:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).lower())
    except ValueError:
        options = ", ".join(m.value for m in enum_type)
        raise UnsupportedConfigurationError(
            f"Unsupported {name} '{value}' (options are: {options})"
        ) from None


def _check_threshold(value: Optional[float], name: str) -> float:
    if value is None:
        raise UnsupportedConfigurationError(f"{name} is required for this mode")
    value = float(value)
    if math.isnan(value) or value <= 0.0:
        raise UnsupportedConfigurationError(f"{name} must be positive, got {value}")
    if math.isinf(value):
        raise UnsupportedConfigurationError(
            f"{name} is infinite; use the DISABLED mode instead of saturating thresholds"
        )
    return value


@dataclass(frozen=True)
class PcmParams:
    """Pairwise consistency maximization settings.

    ``translation_threshold``/``rotation_threshold`` are used by the simplified
    check. ``odom_threshold``/``lc_threshold`` are Mahalanobis gates for the
    odometry leg and the loop-closure leg of the original check.
    """

    mode: PcmMode = PcmMode.DISABLED
    translation_threshold: Optional[float] = None
    rotation_threshold: Optional[float] = None
    odom_threshold: Optional[float] = None
    lc_threshold: Optional[float] = None

    def __post_init__(self) -> None:
        mode = _coerce_enum(PcmMode, self.mode, "PCM mode")
        object.__setattr__(self, "mode", mode)
        if mode is PcmMode.SIMPLIFIED:
            _check_threshold(self.translation_threshold, "translation_threshold")
            _check_threshold(self.rotation_threshold, "rotation_threshold")
        elif mode is PcmMode.ORIGINAL:
            _check_threshold(self.odom_threshold, "odom_threshold")
            _check_threshold(self.lc_threshold, "lc_threshold")

    @classmethod
    def disabled(cls) -> "PcmParams":
        return cls(mode=PcmMode.DISABLED)

    @classmethod
    def simple(cls, translation_threshold: float, rotation_threshold: float) -> "PcmParams":
        return cls(
            mode=PcmMode.SIMPLIFIED,
            translation_threshold=translation_threshold,
            rotation_threshold=rotation_threshold,
        )

    @classmethod
    def original(cls, odom_threshold: float, lc_threshold: float) -> "PcmParams":
        return cls(mode=PcmMode.ORIGINAL, odom_threshold=odom_threshold, lc_threshold=lc_threshold)

    @property
    def enabled(self) -> bool:
        return self.mode is not PcmMode.DISABLED


@dataclass(frozen=True)
class GncParams:
    """Graduated non-convexity settings (Geman-McClure surrogate).

    ``inlier_cost_threshold`` is ``barcsq``: the factor error above which a
    loop closure is considered an outlier.
    """

    mode: GncMode = GncMode.DISABLED
    inlier_cost_threshold: Optional[float] = None
    max_iterations: int = 100
    weight_tolerance: float = 1e-4
    mu_step: float = 1.4

    def __post_init__(self) -> None:
        mode = _coerce_enum(GncMode, self.mode, "GNC mode")
        object.__setattr__(self, "mode", mode)
        if mode is GncMode.ENABLED:
            _check_threshold(self.inlier_cost_threshold, "inlier_cost_threshold")
        if self.max_iterations < 1:
            raise UnsupportedConfigurationError("GNC max_iterations must be at least 1")
        if self.weight_tolerance <= 0.0:
            raise UnsupportedConfigurationError("GNC weight_tolerance must be positive")
        if self.mu_step <= 1.0:
            raise UnsupportedConfigurationError("GNC mu_step must be greater than 1")

    @classmethod
    def disabled(cls) -> "GncParams":
        return cls(mode=GncMode.DISABLED)

    @classmethod
    def enabled_with(cls, inlier_cost_threshold: float, **kwargs) -> "GncParams":
        return cls(mode=GncMode.ENABLED, inlier_cost_threshold=inlier_cost_threshold, **kwargs)

    @classmethod
    def from_probability(cls, alpha: float, dim: int, **kwargs) -> "GncParams":
        """Set ``barcsq`` from the chi-square quantile of a residual of size ``dim``.

        Args:
            alpha: Probability that an inlier residual falls below the threshold.
            dim: Degrees of freedom of the residual (3 for Pose2, 6 for Pose3).
        """
        if not 0.0 < alpha < 1.0:
            raise UnsupportedConfigurationError(f"alpha must be in (0, 1), got {alpha}")
        barcsq = 0.5 * float(chi2.ppf(alpha, dim))
        return cls.enabled_with(barcsq, **kwargs)

    @property
    def enabled(self) -> bool:
        return self.mode is GncMode.ENABLED


@dataclass(frozen=True)
class SolverParams:
    """Settings for the nonlinear least-squares collaborator."""

    method: str = "LevenbergMarquardt"
    max_iterations: int = 100
    relative_error_tol: float = 1e-5
    absolute_error_tol: float = 1e-5

    def __post_init__(self) -> None:
        if self.method not in ("LevenbergMarquardt", "GaussNewton"):
            raise UnsupportedConfigurationError(f"Unknown optimizer type: {self.method}")
        if self.max_iterations < 1:
            raise UnsupportedConfigurationError("Solver max_iterations must be at least 1")


@dataclass(frozen=True)
class RobustSolverParams:
    """Complete configuration of the incremental robust optimizer."""

    pcm: PcmParams = field(default_factory=PcmParams.disabled)
    gnc: GncParams = field(default_factory=GncParams.disabled)
    clique_strategy: CliqueStrategy = CliqueStrategy.EXACT
    clique_time_budget: Optional[float] = None  # seconds, heuristic/relaxation only
    verbosity: Verbosity = Verbosity.QUIET
    solver: SolverParams = field(default_factory=SolverParams)
    anchor_sigma: float = 1e2  # weak gauge prior

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "clique_strategy",
            _coerce_enum(CliqueStrategy, self.clique_strategy, "max clique method"),
        )
        object.__setattr__(self, "verbosity", _coerce_enum(Verbosity, self.verbosity, "verbosity"))
        if self.clique_time_budget is not None:
            if self.clique_strategy is CliqueStrategy.EXACT:
                raise UnsupportedConfigurationError(
                    "clique_time_budget only applies to heuristic or relaxation strategies"
                )
            if not self.clique_time_budget > 0.0:
                raise UnsupportedConfigurationError("clique_time_budget must be positive")
        if not (self.anchor_sigma > 0.0 and math.isfinite(self.anchor_sigma)):
            raise UnsupportedConfigurationError("anchor_sigma must be positive and finite")
