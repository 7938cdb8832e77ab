"""Relative pose measurements (pose graph edges)."""

from dataclasses import dataclass
from enum import Enum

import gtsam
import numpy as np
import numpy.typing as npt

from ..errors import MalformedMeasurementError
from ..utils.conversions import transform_to_gtsam_pose
from ..utils.geometry import Pose, PoseOps, PoseWithCovariance, ops_for
from .node import create_noise_model_gaussian


class MeasurementKind(Enum):
    """Type of edge constraint."""

    ODOMETRY = "odometry"  # trusted, connects consecutive poses
    LOOP_CLOSURE = "loop_closure"  # candidate for rejection


@dataclass(frozen=True, eq=False)
class Measurement:
    """A relative transform from ``from_key`` to ``to_key`` with its covariance.

    Measurements are immutable once created.
    """

    from_key: int
    to_key: int
    transform: Pose
    covariance: npt.NDArray[np.float64]
    kind: MeasurementKind = MeasurementKind.LOOP_CLOSURE

    def __post_init__(self) -> None:
        """Validate edge data."""
        try:
            ops = ops_for(self.transform)
        except TypeError as exc:
            raise MalformedMeasurementError(str(exc)) from None
        if self.from_key == self.to_key:
            raise MalformedMeasurementError(
                f"Measurement connects pose {self.from_key} to itself"
            )
        if not isinstance(self.kind, MeasurementKind):
            raise MalformedMeasurementError(f"Unknown measurement kind: {self.kind}")

        cov = np.array(self.covariance, dtype=np.float64)
        if cov.shape != (ops.dim, ops.dim):
            raise MalformedMeasurementError(
                f"Covariance must be {ops.dim}x{ops.dim}, got {cov.shape}"
            )
        if not np.all(np.isfinite(cov)) or not np.allclose(cov, cov.T, atol=1e-9):
            raise MalformedMeasurementError("Covariance must be finite and symmetric")
        try:
            np.linalg.cholesky(cov)
        except np.linalg.LinAlgError:
            raise MalformedMeasurementError("Covariance must be positive definite") from None

        cov.setflags(write=False)
        object.__setattr__(self, "from_key", int(self.from_key))
        object.__setattr__(self, "to_key", int(self.to_key))
        object.__setattr__(self, "covariance", cov)

    @property
    def ops(self) -> PoseOps:
        return ops_for(self.transform)

    @property
    def is_odometry(self) -> bool:
        return self.kind is MeasurementKind.ODOMETRY

    @property
    def information(self) -> npt.NDArray[np.float64]:
        return np.linalg.inv(self.covariance)

    def with_covariance(self) -> PoseWithCovariance:
        return PoseWithCovariance(self.transform, np.array(self.covariance), self.ops)

    def noise_model(self, weight: float = 1.0) -> gtsam.noiseModel.Gaussian:
        """Gaussian noise model with the information matrix scaled by ``weight``.

        Args:
            weight: Scale in (0, 1]; a factor built with weight ``w`` contributes
                ``w`` times its unweighted error.
        """
        if not weight > 0.0:
            raise ValueError(f"Noise model weight must be positive, got {weight}")
        if weight == 1.0:
            return create_noise_model_gaussian(self.covariance)
        information = np.array(weight * self.information, dtype=np.float64, order="C")
        return gtsam.noiseModel.Gaussian.Information(0.5 * (information + information.T))

    def to_factor(self, weight: float = 1.0):
        """Convert to a GTSAM between factor.

        Returns:
            ``BetweenFactorPose2`` or ``BetweenFactorPose3``.
        """
        return self.ops.between_factor(
            self.from_key, self.to_key, self.transform, self.noise_model(weight)
        )

    @staticmethod
    def from_transform(
        from_key: int,
        to_key: int,
        relative_transform: npt.NDArray[np.float64],
        information_matrix: npt.NDArray[np.float64],
        kind: MeasurementKind = MeasurementKind.LOOP_CLOSURE,
    ) -> "Measurement":
        """Create a measurement from a homogeneous matrix and information matrix.

        Args:
            from_key: Source pose key.
            to_key: Target pose key.
            relative_transform: 3x3 SE(2) or 4x4 SE(3) matrix.
            information_matrix: Inverse covariance (3x3 or 6x6).
            kind: Type of edge.

        Returns:
            Measurement instance.
        """
        try:
            pose = transform_to_gtsam_pose(relative_transform)
            covariance = np.linalg.inv(np.asarray(information_matrix, dtype=np.float64))
        except (ValueError, np.linalg.LinAlgError) as exc:
            raise MalformedMeasurementError(str(exc)) from None
        return Measurement(from_key, to_key, pose, covariance, kind)


def odometry(from_key: int, to_key: int, transform: Pose, covariance) -> Measurement:
    return Measurement(from_key, to_key, transform, covariance, MeasurementKind.ODOMETRY)


def loop_closure(from_key: int, to_key: int, transform: Pose, covariance) -> Measurement:
    return Measurement(from_key, to_key, transform, covariance, MeasurementKind.LOOP_CLOSURE)
