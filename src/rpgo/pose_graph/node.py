"""Pose node representation and GTSAM noise model helpers."""

from dataclasses import dataclass

import gtsam
import numpy as np
import numpy.typing as npt

from ..utils.geometry import Pose, PoseOps, ops_for


@dataclass(eq=False)
class PoseNode:
    """A pose in the graph.

    The key never changes once registered; ``value`` is the current estimate
    and is overwritten whenever a new solution is published.
    """

    key: int
    value: Pose

    def __post_init__(self) -> None:
        """Validate node data."""
        if not isinstance(self.key, (int, np.integer)) or isinstance(self.key, bool):
            raise ValueError("Pose key must be an integer")
        self.key = int(self.key)
        ops_for(self.value)

    @property
    def ops(self) -> PoseOps:
        return ops_for(self.value)


def create_noise_model_gaussian(
    covariance: npt.NDArray[np.float64],
) -> gtsam.noiseModel.Gaussian:
    """Create a Gaussian noise model from covariance.

    Args:
        covariance: Covariance matrix (3x3 for Pose2, 6x6 for Pose3).

    Returns:
        GTSAM Gaussian noise model.
    """
    cov = np.array(covariance, dtype=np.float64, order="C")
    return gtsam.noiseModel.Gaussian.Covariance(cov)


def create_noise_model_isotropic(dim: int, sigma: float) -> gtsam.noiseModel.Isotropic:
    """Create an isotropic noise model.

    Args:
        dim: Dimension of the noise model.
        sigma: Standard deviation (same for all dimensions).

    Returns:
        GTSAM isotropic noise model.
    """
    return gtsam.noiseModel.Isotropic.Sigma(dim, sigma)
