"""Pose capability set shared by the 2D and 3D algorithm code.

``PoseOps`` hides the differences between ``gtsam.Pose2`` and
``gtsam.Pose3`` (tangent layout, factor classes, ``Values`` accessors) so
that consistency checking, GNC, and the incremental optimizer are written
once. ``PoseWithCovariance`` carries first-order uncertainty through
composition using GTSAM's right-perturbation convention.
"""

from dataclasses import dataclass
from typing import Dict, Type, Union

import gtsam
import numpy as np
import numpy.typing as npt

Pose = Union[gtsam.Pose2, gtsam.Pose3]


class PoseOps:
    """Operations the back-end needs from a rigid transform type."""

    pose_type: Type = None
    dim: int = 0

    def identity(self) -> Pose:
        return self.pose_type()

    def compose(self, a: Pose, b: Pose) -> Pose:
        return a.compose(b)

    def inverse(self, a: Pose) -> Pose:
        return a.inverse()

    def logmap(self, a: Pose) -> npt.NDArray[np.float64]:
        return np.asarray(self.pose_type.Logmap(a), dtype=np.float64)

    def adjoint(self, a: Pose) -> npt.NDArray[np.float64]:
        return np.asarray(a.AdjointMap(), dtype=np.float64)

    def translation_norm(self, a: Pose) -> float:
        return float(np.linalg.norm(np.asarray(a.translation(), dtype=np.float64)))

    def rotation_angle(self, a: Pose) -> float:
        raise NotImplementedError

    def value_at(self, values: gtsam.Values, key: int) -> Pose:
        raise NotImplementedError

    def between_factor(self, key1: int, key2: int, measured: Pose, noise: gtsam.noiseModel.Base):
        raise NotImplementedError

    def prior_factor(self, key: int, prior: Pose, noise: gtsam.noiseModel.Base):
        raise NotImplementedError


class SE2Ops(PoseOps):
    """Planar poses, tangent ordered ``[x, y, theta]``."""

    pose_type = gtsam.Pose2
    dim = 3

    def rotation_angle(self, a: gtsam.Pose2) -> float:
        return abs(float(a.theta()))

    def value_at(self, values: gtsam.Values, key: int) -> gtsam.Pose2:
        return values.atPose2(key)

    def between_factor(self, key1, key2, measured, noise) -> gtsam.BetweenFactorPose2:
        return gtsam.BetweenFactorPose2(key1, key2, measured, noise)

    def prior_factor(self, key, prior, noise) -> gtsam.PriorFactorPose2:
        return gtsam.PriorFactorPose2(key, prior, noise)


class SE3Ops(PoseOps):
    """Spatial poses, tangent ordered ``[rx, ry, rz, x, y, z]``."""

    pose_type = gtsam.Pose3
    dim = 6

    def rotation_angle(self, a: gtsam.Pose3) -> float:
        return float(np.linalg.norm(gtsam.Rot3.Logmap(a.rotation())))

    def value_at(self, values: gtsam.Values, key: int) -> gtsam.Pose3:
        return values.atPose3(key)

    def between_factor(self, key1, key2, measured, noise) -> gtsam.BetweenFactorPose3:
        return gtsam.BetweenFactorPose3(key1, key2, measured, noise)

    def prior_factor(self, key, prior, noise) -> gtsam.PriorFactorPose3:
        return gtsam.PriorFactorPose3(key, prior, noise)


SE2 = SE2Ops()
SE3 = SE3Ops()

_OPS_BY_TYPE: Dict[Type, PoseOps] = {gtsam.Pose2: SE2, gtsam.Pose3: SE3}


def ops_for(pose: Pose) -> PoseOps:
    """Return the capability set matching a GTSAM pose instance.

    Args:
        pose: A ``gtsam.Pose2`` or ``gtsam.Pose3``.

    Returns:
        The shared ``PoseOps`` implementation for that type.
    """
    try:
        return _OPS_BY_TYPE[type(pose)]
    except KeyError:
        raise TypeError(f"Unsupported pose type: {type(pose).__name__}") from None


@dataclass(frozen=True)
class PoseWithCovariance:
    """A relative transform with a first-order covariance in its tangent space."""

    pose: Pose
    covariance: npt.NDArray[np.float64]
    ops: PoseOps

    @classmethod
    def identity(cls, ops: PoseOps) -> "PoseWithCovariance":
        return cls(ops.identity(), np.zeros((ops.dim, ops.dim)), ops)

    def compose(self, other: "PoseWithCovariance") -> "PoseWithCovariance":
        """Chain ``self`` then ``other``, treating both as independent.

        With right perturbations ``T = T1 * T2`` has Jacobian ``Ad(T2^-1)``
        with respect to ``T1`` and identity with respect to ``T2``.
        """
        H1 = self.ops.adjoint(self.ops.inverse(other.pose))
        covariance = H1 @ self.covariance @ H1.T + other.covariance
        return PoseWithCovariance(self.ops.compose(self.pose, other.pose), covariance, self.ops)

    def inverse(self) -> "PoseWithCovariance":
        Ad = self.ops.adjoint(self.pose)
        return PoseWithCovariance(self.ops.inverse(self.pose), Ad @ self.covariance @ Ad.T, self.ops)

    def between(self, other: "PoseWithCovariance") -> "PoseWithCovariance":
        return self.inverse().compose(other)

    def mahalanobis_norm(self) -> float:
        """Covariance-normalized distance of the transform from identity."""
        xi = self.ops.logmap(self.pose)
        cov = 0.5 * (self.covariance + self.covariance.T)
        return float(np.sqrt(max(xi @ np.linalg.solve(cov, xi), 0.0)))

    def translation_norm(self) -> float:
        return self.ops.translation_norm(self.pose)

    def rotation_angle(self) -> float:
        return self.ops.rotation_angle(self.pose)
