"""Tests for conversion helpers and command-line configuration."""

import gtsam
import numpy as np
import pytest

from rpgo.errors import UnsupportedConfigurationError
from rpgo.params import CliqueStrategy, GncMode, PcmMode, Verbosity
from rpgo.utils.config import params_from_args, parse_args
from rpgo.utils.conversions import (
    rotation_matrix_to_yaw,
    trajectory_columns,
    transform_to_gtsam_pose,
    values_to_trajectory,
)
from rpgo.utils.geometry import SE2, SE3


class TestConversions:
    """Test conversion functions."""

    def test_rotation_matrix_to_yaw(self) -> None:
        """Test yaw extraction from 2x2 and 3x3 rotations."""
        R = gtsam.Rot3.Rz(0.7).matrix()

        assert rotation_matrix_to_yaw(R) == pytest.approx(0.7)
        assert rotation_matrix_to_yaw(R[:2, :2]) == pytest.approx(0.7)

    def test_invalid_rotation_shape(self) -> None:
        """Test that non-square rotations are rejected."""
        with pytest.raises(ValueError, match="2x2 or 3x3"):
            rotation_matrix_to_yaw(np.eye(4))

    def test_transform_to_pose2(self) -> None:
        """Test 3x3 matrices map to Pose2."""
        expected = gtsam.Pose2(4.0, 5.0, -1.0)
        pose = transform_to_gtsam_pose(expected.matrix())

        assert isinstance(pose, gtsam.Pose2)
        assert pose.equals(expected, 1e-12)

    def test_transform_to_pose3(self) -> None:
        """Test 4x4 matrices map to Pose3."""
        T = np.eye(4)
        T[:3, :3] = gtsam.Rot3.Rz(0.5).matrix()
        T[:3, 3] = [1.0, 2.0, 3.0]
        pose = transform_to_gtsam_pose(T)

        assert isinstance(pose, gtsam.Pose3)
        assert np.allclose(pose.matrix(), T)

    def test_invalid_transform(self) -> None:
        """Test that other shapes are rejected."""
        with pytest.raises(ValueError, match="3x3 SE\\(2\\) or 4x4 SE\\(3\\)"):
            transform_to_gtsam_pose(np.eye(2))

    def test_values_to_trajectory(self) -> None:
        """Test flattening planar poses into rows ordered by key."""
        values = gtsam.Values()
        values.insert(2, gtsam.Pose2(2.0, 0.0, 0.5))
        values.insert(0, gtsam.Pose2(0.0, 1.0, 0.0))

        rows = values_to_trajectory(values, SE2)

        assert [row["key"] for row in rows] == [0, 2]
        assert rows[1]["x"] == pytest.approx(2.0)
        assert rows[1]["yaw"] == pytest.approx(0.5)
        assert set(rows[0]) == set(trajectory_columns(SE2))

    def test_values_to_trajectory_pose3(self) -> None:
        """Test that spatial poses carry a unit quaternion."""
        values = gtsam.Values()
        values.insert(1, gtsam.Pose3(gtsam.Rot3.Rz(np.pi / 2), gtsam.Point3(1.0, 2.0, 3.0)))

        (row,) = values_to_trajectory(values, SE3)

        assert set(row) == set(trajectory_columns(SE3))
        assert [row["x"], row["y"], row["z"]] == pytest.approx([1.0, 2.0, 3.0])
        assert row["qw"] == pytest.approx(np.cos(np.pi / 4))
        assert row["qz"] == pytest.approx(np.sin(np.pi / 4))


class TestConfig:
    """Test command-line parsing."""

    def test_defaults(self) -> None:
        """Test that the defaults give simplified PCM with exact cliques."""
        args = parse_args(["graph.g2o"])
        params = params_from_args(args)

        assert args.g2o_file == "graph.g2o"
        assert args.trajectory_output is None
        assert params.pcm.mode is PcmMode.SIMPLIFIED
        assert params.gnc.mode is GncMode.DISABLED
        assert params.clique_strategy is CliqueStrategy.EXACT
        assert params.verbosity is Verbosity.QUIET

    def test_original_pcm_with_gnc(self) -> None:
        """Test the original PCM thresholds and GNC flags."""
        args = parse_args(
            [
                "graph.g2o",
                "--pcm",
                "PCM2dOrig",
                "--pcm-t",
                "3.0",
                "--pcm-r",
                "2.5",
                "--gnc",
                "--gnc-barcsq",
                "0.9",
                "--max-clique-method",
                "clipper",
                "-v",
            ]
        )
        params = params_from_args(args)

        assert params.pcm.mode is PcmMode.ORIGINAL
        assert params.pcm.odom_threshold == 3.0
        assert params.pcm.lc_threshold == 2.5
        assert params.gnc.inlier_cost_threshold == 0.9
        assert params.clique_strategy is CliqueStrategy.RELAXATION
        assert params.verbosity is Verbosity.VERBOSE

    def test_no_pcm(self) -> None:
        """Test that NoPCM selects the disabled mode instead of huge thresholds."""
        params = params_from_args(parse_args(["graph.g2o", "--pcm", "NoPCM"]))

        assert params.pcm.mode is PcmMode.DISABLED
        assert not params.pcm.enabled

    def test_time_budget_with_exact_search(self) -> None:
        """Test that a time budget is refused for the exact search."""
        args = parse_args(["graph.g2o", "--clique-time-budget", "0.5"])

        with pytest.raises(UnsupportedConfigurationError):
            params_from_args(args)

    def test_unknown_clique_method(self) -> None:
        """Test that argparse rejects unknown clique methods."""
        with pytest.raises(SystemExit):
            parse_args(["graph.g2o", "--max-clique-method", "greedy"])
