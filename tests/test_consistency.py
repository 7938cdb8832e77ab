"""Tests for pairwise consistency maximization."""

import gtsam
import numpy as np
import pytest
from helpers import LC_COV_2D, chain_poses, straight_chain, true_loop_closure

from rpgo.outlier_rejection import ConsistencyChecker, ConsistencyGraph
from rpgo.params import PcmParams
from rpgo.pose_graph import PoseGraph, loop_closure, odometry


def build_graph(odometry_edges, loop_closures=()):
    graph = PoseGraph()
    for edge in odometry_edges:
        graph.add_odometry(edge)
    ids = [graph.add_loop_closure(lc) for lc in loop_closures]
    return graph, ids


class TestConsistencyGraph:
    """Test the consistency graph container."""

    def test_version_tracks_mutations(self) -> None:
        """Test that only real changes bump the version."""
        graph = ConsistencyGraph()
        graph.add_loop_closure(0)
        graph.add_loop_closure(1)
        version = graph.version
        graph.connect(0, 1)
        graph.connect(1, 0)
        graph.add_loop_closure(0)

        assert graph.version == version + 1
        assert graph.num_edges == 1
        assert graph.vertices == [0, 1]

    def test_no_self_edges(self) -> None:
        """Test that a vertex cannot be connected to itself."""
        graph = ConsistencyGraph()
        graph.add_loop_closure(0)

        with pytest.raises(ValueError):
            graph.connect(0, 0)

    def test_is_clique(self) -> None:
        """Test the pairwise-connected predicate."""
        graph = ConsistencyGraph()
        for a, b in [(0, 1), (1, 2), (0, 2), (2, 3)]:
            graph.add_loop_closure(a)
            graph.add_loop_closure(b)
            graph.connect(a, b)

        assert graph.is_clique([0, 1, 2])
        assert not graph.is_clique([0, 1, 3])
        assert not graph.is_clique([0, 7])
        assert graph.is_clique([])


class TestConsistencyChecker:
    """Test incremental PCM checks."""

    def test_consistent_triangle(self, triangle_odometry, triangle_loop) -> None:
        """Test that a loop closure agreeing with odometry is admitted."""
        pose_graph, ids = build_graph(triangle_odometry, [triangle_loop])
        graph = ConsistencyGraph()
        checker = ConsistencyChecker(PcmParams.simple(0.1, 0.05))

        update = checker.update(pose_graph, graph, ids)

        assert update.admitted == [0]
        assert graph.vertices == [0]
        assert checker.rejected == set()

    def test_offset_loop_rejected(self, triangle_odometry, triangle_loop) -> None:
        """Test that a loop closure 2 m off never enters the consistency graph."""
        poses = chain_poses(triangle_odometry)
        bad = true_loop_closure(poses, 2, 0, offset=(2.0, 0.0, 0.0))
        pose_graph, ids = build_graph(triangle_odometry, [triangle_loop, bad])
        graph = ConsistencyGraph()
        checker = ConsistencyChecker(PcmParams.simple(0.1, 0.05))

        update = checker.update(pose_graph, graph, ids)

        assert update.admitted == [0]
        assert update.rejected == [1]
        assert 1 not in graph
        assert not graph.has_edge(0, 1)

    def test_pairwise_inconsistent(self) -> None:
        """Test two loop closures that each pass but disagree with each other."""
        odom = straight_chain(8)
        poses = chain_poses(odom)
        lc_a = true_loop_closure(poses, 5, 0, offset=(0.08, 0.0, 0.0))
        lc_b = true_loop_closure(poses, 6, 1, offset=(-0.08, 0.0, 0.0))
        lc_c = true_loop_closure(poses, 7, 2, offset=(0.05, 0.0, 0.0))
        pose_graph, ids = build_graph(odom, [lc_a, lc_b, lc_c])
        graph = ConsistencyGraph()
        checker = ConsistencyChecker(PcmParams.simple(0.1, 0.05))

        update = checker.update(pose_graph, graph, ids)

        assert update.admitted == [0, 1, 2]
        assert update.pairs_checked == 3
        assert not graph.has_edge(0, 1)
        assert graph.has_edge(0, 2)

    def test_incremental_checks_only_new_pairs(self) -> None:
        """Test that an update only checks pairs with new loop closures."""
        odom = straight_chain(8)
        poses = chain_poses(odom)
        pose_graph, ids = build_graph(
            odom, [true_loop_closure(poses, 5, 0), true_loop_closure(poses, 6, 1)]
        )
        graph = ConsistencyGraph()
        checker = ConsistencyChecker(PcmParams.simple(0.1, 0.05))
        checker.update(pose_graph, graph, ids)

        new_id = pose_graph.add_loop_closure(true_loop_closure(poses, 7, 2))
        update = checker.update(pose_graph, graph, [new_id])

        assert update.pairs_checked == 2
        assert graph.is_clique([0, 1, 2])

    def test_pending_until_odometry_connects(self) -> None:
        """Test that loop closures spanning disconnected chains are retried."""
        cov = np.diag([1e-4, 1e-4, 1e-5])
        step = gtsam.Pose2(1.0, 0.0, 0.0)
        pose_graph = PoseGraph()
        pose_graph.add_odometry(odometry(0, 1, step, cov))
        pose_graph.add_pose(2, gtsam.Pose2(2.0, 0.0, 0.0))
        pose_graph.add_odometry(odometry(2, 3, step, cov))
        loop_id = pose_graph.add_loop_closure(
            loop_closure(3, 0, gtsam.Pose2(-3.0, 0.0, 0.0), LC_COV_2D)
        )
        graph = ConsistencyGraph()
        checker = ConsistencyChecker(PcmParams.simple(0.1, 0.05))

        first = checker.update(pose_graph, graph, [loop_id])
        pose_graph.add_odometry(odometry(1, 2, step, cov))
        second = checker.update(pose_graph, graph, [])

        assert first.pending == [loop_id]
        assert checker.pending == []
        assert second.admitted == [loop_id]

    def test_original_mode(self, triangle_odometry, triangle_loop) -> None:
        """Test Mahalanobis gating with chi-square thresholds."""
        poses = chain_poses(triangle_odometry)
        bad = true_loop_closure(poses, 2, 0, offset=(2.0, 0.0, 0.0))
        pose_graph, ids = build_graph(triangle_odometry, [triangle_loop, bad])
        threshold = ConsistencyChecker.threshold_from_probability(0.99, 3)
        checker = ConsistencyChecker(PcmParams.original(threshold, threshold))
        graph = ConsistencyGraph()

        update = checker.update(pose_graph, graph, ids)

        assert update.admitted == [0]
        assert update.rejected == [1]

    def test_disabled_connects_everything(self, triangle_odometry, triangle_loop) -> None:
        """Test that disabled PCM admits and connects every loop closure."""
        poses = chain_poses(triangle_odometry)
        bad = true_loop_closure(poses, 2, 0, offset=(2.0, 0.0, 0.0))
        pose_graph, ids = build_graph(triangle_odometry, [triangle_loop, bad])
        graph = ConsistencyGraph()
        checker = ConsistencyChecker(PcmParams.disabled())

        checker.update(pose_graph, graph, ids)

        assert graph.is_clique([0, 1])

    def test_threshold_from_probability(self) -> None:
        """Test the chi-square Mahalanobis gate."""
        assert ConsistencyChecker.threshold_from_probability(0.95, 3) == pytest.approx(
            np.sqrt(7.8147), rel=1e-4
        )
        with pytest.raises(ValueError):
            ConsistencyChecker.threshold_from_probability(1.0, 3)
