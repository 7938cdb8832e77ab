"""The optimization problem handed to the nonlinear solver.

A problem is a plain value derived from the pose graph, the current inlier
set and the gauge anchor. Building it never mutates the pose graph, which
lets each stage of an update be exercised on its own.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set

import gtsam

from ..pose_graph import Measurement, PoseGraph, create_noise_model_isotropic
from ..utils.geometry import Pose, PoseOps


@dataclass(frozen=True)
class Anchor:
    """Weak prior fixing the gauge of the whole trajectory."""

    key: int
    value: Pose
    sigma: float

    def factor(self, ops: PoseOps):
        return ops.prior_factor(
            self.key, self.value, create_noise_model_isotropic(ops.dim, self.sigma)
        )


@dataclass
class OptimizationProblem:
    """Odometry, accepted loop closures and the anchor, ready to be solved."""

    ops: PoseOps
    odometry: List[Measurement] = field(default_factory=list)
    loop_closures: Dict[int, Measurement] = field(default_factory=dict)
    anchor: Optional[Anchor] = None

    @classmethod
    def from_graph(
        cls,
        pose_graph: PoseGraph,
        inliers: Iterable[int],
        anchor: Optional[Anchor] = None,
    ) -> "OptimizationProblem":
        """Select the factors the optimizer may use.

        Args:
            pose_graph: Source of odometry and loop closures.
            inliers: Identifiers of the loop closures currently trusted.
            anchor: Gauge prior; dropped if its pose has no measurement.
        """
        loop_closures = {i: pose_graph.loop_closures[i] for i in sorted(inliers)}
        problem = cls(
            ops=pose_graph.ops,
            odometry=list(pose_graph.odometry_edges),
            loop_closures=loop_closures,
        )
        if anchor is not None and anchor.key in problem.keys():
            problem.anchor = anchor
        return problem

    @property
    def loop_ids(self) -> List[int]:
        return list(self.loop_closures)

    @property
    def is_empty(self) -> bool:
        return not self.odometry and not self.loop_closures

    def keys(self) -> Set[int]:
        """Pose keys referenced by any odometry or accepted loop closure."""
        keys: Set[int] = set()
        for edge in self.odometry:
            keys.update((edge.from_key, edge.to_key))
        for edge in self.loop_closures.values():
            keys.update((edge.from_key, edge.to_key))
        return keys

    def fixed_graph(self) -> gtsam.NonlinearFactorGraph:
        """Factors that are always trusted: odometry and the anchor."""
        graph = gtsam.NonlinearFactorGraph()
        if self.anchor is not None:
            graph.add(self.anchor.factor(self.ops))
        for edge in self.odometry:
            graph.add(edge.to_factor())
        return graph

    def build_graph(
        self, weights: Optional[Mapping[int, float]] = None
    ) -> gtsam.NonlinearFactorGraph:
        """Full factor graph with loop closures scaled by ``weights``.

        Loop closures with weight zero are left out; missing weights count
        as one.
        """
        graph = self.fixed_graph()
        for loop_id, edge in self.loop_closures.items():
            weight = 1.0 if weights is None else float(weights.get(loop_id, 1.0))
            if weight > 0.0:
                graph.add(edge.to_factor(weight))
        return graph

    def loop_closure_errors(self, values: gtsam.Values) -> Dict[int, float]:
        """Unweighted factor error (half squared Mahalanobis residual) per loop closure."""
        return {
            loop_id: float(edge.to_factor().error(values))
            for loop_id, edge in self.loop_closures.items()
        }

    def fixed_error(self, values: gtsam.Values) -> float:
        return float(self.fixed_graph().error(values))

    def initial_values(
        self, pose_graph: PoseGraph, previous: Optional[gtsam.Values] = None
    ) -> gtsam.Values:
        """Initial guess for every key in the problem.

        Keys already in ``previous`` keep their last estimate. New keys are
        dead-reckoned through odometry from an already initialized
        predecessor, falling back to the pose graph's initial value.
        """
        values = gtsam.Values()
        for key in sorted(self.keys()):
            if previous is not None and previous.exists(key):
                values.insert(key, self.ops.value_at(previous, key))
                continue
            edge = pose_graph.odometry_to(key)
            if edge is not None and values.exists(edge.from_key):
                start = self.ops.value_at(values, edge.from_key)
                values.insert(key, self.ops.compose(start, edge.transform))
            else:
                values.insert(key, pose_graph.initial_value(key))
        return values

