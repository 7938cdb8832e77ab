"""Tests for the pose capability set and covariance propagation."""

import gtsam
import numpy as np
import pytest

from rpgo.utils.geometry import SE2, SE3, PoseWithCovariance, ops_for


class TestPoseOps:
    """Test the SE(2)/SE(3) capability sets."""

    def test_ops_for(self) -> None:
        """Test dispatch on the GTSAM pose type."""
        assert ops_for(gtsam.Pose2()) is SE2
        assert ops_for(gtsam.Pose3()) is SE3
        assert SE2.dim == 3
        assert SE3.dim == 6

    def test_ops_for_unsupported(self) -> None:
        """Test that other objects are rejected."""
        with pytest.raises(TypeError, match="Unsupported pose type"):
            ops_for(np.eye(4))

    def test_se2_compose_inverse(self) -> None:
        """Test that composing with the inverse recovers the relative pose."""
        a = gtsam.Pose2(1.0, 2.0, 0.3)
        b = gtsam.Pose2(-0.5, 4.0, -1.2)

        relative = SE2.compose(SE2.inverse(a), b)

        assert SE2.compose(a, relative).equals(b, 1e-9)
        assert relative.equals(a.between(b), 1e-9)

    def test_se2_norms(self) -> None:
        """Test translation norm and rotation angle of a planar pose."""
        pose = gtsam.Pose2(3.0, 4.0, -0.25)

        assert SE2.translation_norm(pose) == pytest.approx(5.0)
        assert SE2.rotation_angle(pose) == pytest.approx(0.25)

    def test_se3_rotation_angle(self) -> None:
        """Test that the SE(3) rotation angle is the axis-angle magnitude."""
        pose = gtsam.Pose3(gtsam.Rot3.Rz(0.4), gtsam.Point3(1.0, 2.0, 2.0))

        assert SE3.rotation_angle(pose) == pytest.approx(0.4)
        assert SE3.translation_norm(pose) == pytest.approx(3.0)

    def test_value_at(self) -> None:
        """Test typed access to GTSAM values."""
        values = gtsam.Values()
        values.insert(0, gtsam.Pose2(1.0, 0.0, 0.0))
        values.insert(1, gtsam.Pose3())

        assert SE2.value_at(values, 0).equals(gtsam.Pose2(1.0, 0.0, 0.0), 1e-12)
        assert SE3.value_at(values, 1).equals(gtsam.Pose3(), 1e-12)

    def test_factors(self) -> None:
        """Test that factors of the right type are built."""
        noise = gtsam.noiseModel.Isotropic.Sigma(3, 1.0)

        assert isinstance(
            SE2.between_factor(0, 1, gtsam.Pose2(), noise), gtsam.BetweenFactorPose2
        )
        assert isinstance(SE2.prior_factor(0, gtsam.Pose2(), noise), gtsam.PriorFactorPose2)


class TestPoseWithCovariance:
    """Test first-order covariance propagation."""

    def test_identity(self) -> None:
        """Test the identity element."""
        ident = PoseWithCovariance.identity(SE2)

        assert ident.pose.equals(gtsam.Pose2(), 1e-12)
        assert np.allclose(ident.covariance, np.zeros((3, 3)))

    def test_compose_identity_rotations_adds_covariance(self) -> None:
        """Test that composing with an identity step just adds covariances."""
        a = PoseWithCovariance(gtsam.Pose2(1.0, 0.0, 0.0), np.eye(3) * 0.1, SE2)
        b = PoseWithCovariance(gtsam.Pose2(), np.eye(3) * 0.2, SE2)

        result = a.compose(b)

        assert result.pose.equals(gtsam.Pose2(1.0, 0.0, 0.0), 1e-12)
        assert np.allclose(result.covariance, np.eye(3) * 0.3)

    def test_rotation_uncertainty_grows_translation_uncertainty(self) -> None:
        """Test that heading uncertainty leaks into lateral position."""
        a = PoseWithCovariance(gtsam.Pose2(), np.diag([0.0, 0.0, 0.01]), SE2)
        b = PoseWithCovariance(gtsam.Pose2(10.0, 0.0, 0.0), np.zeros((3, 3)), SE2)

        result = a.compose(b)

        # Lateral variance is (10 m)^2 * heading variance
        assert result.covariance[1, 1] == pytest.approx(1.0)
        assert result.covariance[0, 0] == pytest.approx(0.0)

    def test_inverse_round_trip(self) -> None:
        """Test that composing with the inverse gives the identity pose."""
        a = PoseWithCovariance(gtsam.Pose2(1.0, -2.0, 0.7), np.diag([0.1, 0.2, 0.01]), SE2)

        result = a.compose(a.inverse())

        assert result.pose.equals(gtsam.Pose2(), 1e-9)
        assert np.all(np.linalg.eigvalsh(result.covariance) > 0.0)

    def test_mahalanobis_norm(self) -> None:
        """Test the covariance-normalized distance from identity."""
        residual = PoseWithCovariance(gtsam.Pose2(0.3, 0.4, 0.0), np.eye(3) * 0.25, SE2)

        assert residual.mahalanobis_norm() == pytest.approx(1.0)
        assert residual.translation_norm() == pytest.approx(0.5)
        assert residual.rotation_angle() == pytest.approx(0.0)

    def test_se3_compose(self) -> None:
        """Test propagation on Pose3 with the same code path."""
        a = PoseWithCovariance(gtsam.Pose3(), np.eye(6) * 0.01, SE3)
        b = PoseWithCovariance(
            gtsam.Pose3(gtsam.Rot3(), gtsam.Point3(1.0, 0.0, 0.0)), np.eye(6) * 0.01, SE3
        )

        result = a.compose(b)

        assert result.covariance.shape == (6, 6)
        assert np.allclose(result.covariance, result.covariance.T)
        assert result.translation_norm() == pytest.approx(1.0)
