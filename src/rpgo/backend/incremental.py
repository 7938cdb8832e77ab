"""Incremental robust pose graph optimizer.

Each call to ``update`` runs one synchronous cycle

    IDLE -> CONSISTENCY_UPDATE -> CLIQUE_SELECT -> [GNC_ITERATE] -> SOLVE -> PUBLISH

and leaves a single coherent published state (estimate, inlier set and
weights) behind. A failed solve publishes nothing: the previous state stays
current and the cycle is retried on the next update.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import gtsam

from ..errors import (
    CliqueSearchTimeout,
    MalformedMeasurementError,
    SolverConvergenceFailure,
    UnderconstrainedGraphWarning,
)
from ..outlier_rejection.consistency import ConsistencyChecker, ConsistencyGraph
from ..outlier_rejection.gnc import GncResult, GncWeighter
from ..outlier_rejection.max_clique import make_clique_solver
from ..params import RobustSolverParams
from ..pose_graph import Measurement, NonlinearSolver, PoseGraph
from ..utils.geometry import Pose
from ..utils.io import GraphData, save_g2o, save_inlier_table, save_trajectory
from .problem import Anchor, OptimizationProblem

logger = logging.getLogger("rpgo.optimizer")


class UpdateStage(Enum):
    """Stages of one update cycle."""

    IDLE = "idle"
    CONSISTENCY_UPDATE = "consistency_update"
    CLIQUE_SELECT = "clique_select"
    GNC_ITERATE = "gnc_iterate"
    SOLVE = "solve"
    PUBLISH = "publish"


class UpdateStatus(Enum):
    UNCHANGED = "unchanged"
    PUBLISHED = "published"
    FAILED = "failed"


@dataclass
class UpdateReport:
    """What an update did and the state it left published."""

    status: UpdateStatus
    stages: List[UpdateStage] = field(default_factory=lambda: [UpdateStage.IDLE])
    inliers: Tuple[int, ...] = ()
    rejected: Tuple[int, ...] = ()
    pending: Tuple[int, ...] = ()
    weights: Dict[int, float] = field(default_factory=dict)
    warnings: List[Warning] = field(default_factory=list)
    failure: Optional[SolverConvergenceFailure] = None
    gnc: Optional[GncResult] = None


class IncrementalOptimizer:
    """Owns the live optimization problem and the published estimate.

    Args:
        params: Complete solver configuration, validated at construction.
        solver: Nonlinear solver collaborator; built from ``params.solver``
            when omitted.
    """

    def __init__(
        self,
        params: RobustSolverParams = RobustSolverParams(),
        solver: Optional[NonlinearSolver] = None,
    ) -> None:
        self.params = params
        self._log_level = params.verbosity.log_level
        self.pose_graph = PoseGraph()
        self.consistency_graph = ConsistencyGraph()
        self.checker = ConsistencyChecker(params.pcm, params.verbosity)
        self.clique_solver = make_clique_solver(params.clique_strategy, params.clique_time_budget)
        self.solver = solver if solver is not None else NonlinearSolver(params.solver)
        self.gnc = GncWeighter(params.gnc, self.solver, params.verbosity)

        self._anchor: Optional[Anchor] = None
        self._estimate = gtsam.Values()
        self._inliers: Tuple[int, ...] = ()
        self._weights: Dict[int, float] = {}
        self._problem: Optional[OptimizationProblem] = None
        self._clique: Tuple[int, ...] = ()
        self._clique_version = -1
        self._dirty = False
        self._warned_isolated: set = set()

        logger.log(
            self._log_level,
            "Robust solver: PCM %s, GNC %s, max clique %s",
            params.pcm.mode.value,
            params.gnc.mode.value,
            params.clique_strategy.value,
        )

    def anchor(self, pose_key: int, prior_value: Pose) -> bool:
        """Add the weak gauge prior on ``pose_key``.

        The anchor is added at most once; later calls are ignored. The pose
        must be joined to the trajectory by odometry.

        Returns:
            ``True`` if the anchor was added by this call.

        Raises:
            MalformedMeasurementError: The pose is unknown or has no odometry.
        """
        if self._anchor is not None:
            logger.debug("Gauge already anchored at %d; ignoring %d", self._anchor.key, pose_key)
            return False
        if pose_key not in self.pose_graph:
            raise MalformedMeasurementError(f"Cannot anchor unknown pose {pose_key}")
        graph = self.pose_graph
        if graph.odometry_from(pose_key) is None and graph.odometry_to(pose_key) is None:
            raise MalformedMeasurementError(f"Cannot anchor pose {pose_key} without odometry")
        self._anchor = Anchor(pose_key, prior_value, self.params.anchor_sigma)
        self._dirty = True
        logger.log(self._log_level, "Anchored gauge at pose %d", pose_key)
        return True

    def update(
        self,
        odometry: Sequence[Measurement] = (),
        loop_closures: Sequence[Measurement] = (),
        poses: Optional[Mapping[int, Pose]] = None,
    ) -> UpdateReport:
        """Ingest new measurements, re-select inliers and re-solve.

        Args:
            odometry: New trusted odometry edges.
            loop_closures: New loop closure candidates.
            poses: Optional initial values for new poses.

        Returns:
            Report of the cycle.

        Raises:
            DuplicateKeyError, MalformedMeasurementError: The batch is invalid;
                nothing was ingested.
        """
        poses = dict(poses or {})
        odometry = list(odometry)
        loop_closures = list(loop_closures)
        report = UpdateReport(status=UpdateStatus.UNCHANGED)

        if not (poses or odometry or loop_closures or self._dirty):
            self._fill_published(report)
            return report

        self.pose_graph.check_batch(poses, odometry, loop_closures)
        for key, value in poses.items():
            self.pose_graph.add_pose(key, value)
        for edge in odometry:
            self.pose_graph.add_odometry(edge)
        new_ids = [self.pose_graph.add_loop_closure(edge) for edge in loop_closures]
        if self._anchor is None and self.pose_graph.first_key is not None:
            first = self.pose_graph.first_key
            self.anchor(first, self.pose_graph.initial_value(first))
        self._dirty = True

        report.stages.append(UpdateStage.CONSISTENCY_UPDATE)
        self.checker.update(self.pose_graph, self.consistency_graph, new_ids)

        report.stages.append(UpdateStage.CLIQUE_SELECT)
        inliers = self._select_inliers(report)

        problem = OptimizationProblem.from_graph(self.pose_graph, inliers, self._anchor)
        self._check_isolated(report)

        if problem.is_empty:
            estimate = gtsam.Values()
            gnc_result = None
        else:
            if self.params.gnc.enabled and problem.loop_closures:
                report.stages.append(UpdateStage.GNC_ITERATE)
            report.stages.append(UpdateStage.SOLVE)
            initial = problem.initial_values(self.pose_graph, self._estimate)
            try:
                gnc_result = self.gnc.run(problem, initial)
            except SolverConvergenceFailure as exc:
                logger.warning("Optimization failed, keeping previous estimate: %s", exc)
                report.status = UpdateStatus.FAILED
                report.failure = exc
                self._fill_published(report)
                return report
            estimate = gnc_result.estimate

        report.stages.append(UpdateStage.PUBLISH)
        self._publish(problem, inliers, estimate, gnc_result)
        report.status = UpdateStatus.PUBLISHED
        report.gnc = gnc_result
        self._fill_published(report)
        return report

    def load(self, data: GraphData) -> UpdateReport:
        """Ingest a whole graph from the loader in one update."""
        return self.update(data.odometry, data.loop_closures, poses=data.poses)

    def _select_inliers(self, report: UpdateReport) -> Tuple[int, ...]:
        if self.consistency_graph.version != self._clique_version:
            result = self.clique_solver.solve(self.consistency_graph)
            self._clique = result.members
            self._clique_version = self.consistency_graph.version
            if result.timed_out:
                warning = CliqueSearchTimeout(
                    f"{self.clique_solver.strategy.value} clique search exceeded "
                    f"{self.clique_solver.time_budget}s; using clique of size {len(result)}"
                )
                logger.warning("%s", warning)
                report.warnings.append(warning)
            logger.log(
                self._log_level,
                "Inlier set: %d of %d loop closures",
                len(self._clique),
                len(self.pose_graph.loop_closures),
            )
        return self._clique

    def _check_isolated(self, report: UpdateReport) -> None:
        for key in self.pose_graph.isolated_keys():
            warning = UnderconstrainedGraphWarning(
                f"Pose {key} has no measurements and is excluded from optimization"
            )
            report.warnings.append(warning)
            if key not in self._warned_isolated:
                logger.warning("%s", warning)
                self._warned_isolated.add(key)

    def _publish(
        self,
        problem: OptimizationProblem,
        inliers: Tuple[int, ...],
        solved: gtsam.Values,
        gnc_result: Optional[GncResult],
    ) -> None:
        estimate = gtsam.Values(solved)
        ops = self.pose_graph.ops
        for key, node in self.pose_graph.nodes.items():
            if not estimate.exists(key):
                estimate.insert(key, node.value)
            node.value = ops.value_at(estimate, key)

        self._estimate = estimate
        self._problem = problem
        self._inliers = tuple(inliers)
        self._weights = dict(gnc_result.weights) if gnc_result is not None else {}
        self._dirty = False

    def _fill_published(self, report: UpdateReport) -> None:
        report.inliers = self._inliers
        report.rejected = tuple(self.rejected_loop_closures())
        report.pending = tuple(self.checker.pending)
        report.weights = dict(self._weights)

    def current_estimate(self) -> gtsam.Values:
        """Copy of the latest published pose values."""
        return gtsam.Values(self._estimate)

    def get_pose(self, key: int) -> Optional[Pose]:
        if self._estimate.exists(key):
            return self.pose_graph.ops.value_at(self._estimate, key)
        return None

    def inlier_set(self) -> Tuple[int, ...]:
        """Loop closure identifiers used by the published estimate."""
        return self._inliers

    def rejected_loop_closures(self) -> List[int]:
        """Loop closures excluded by PCM (odometry check or clique selection)."""
        pending = set(self.checker.pending)
        accepted = set(self._inliers)
        return [
            i
            for i in self.pose_graph.loop_closures
            if i not in accepted and i not in pending
        ]

    def weights(self) -> Dict[int, float]:
        """GNC weights of the published inliers (1.0 everywhere when GNC is off)."""
        return dict(self._weights)

    def prior_factors(self) -> List[int]:
        """Keys of the unary (prior) factors in the published problem."""
        if self._problem is None:
            return []
        graph = self._problem.build_graph(self._weights)
        keys = []
        for i in range(graph.size()):
            factor_keys = list(graph.at(i).keys())
            if len(factor_keys) == 1:
                keys.append(int(factor_keys[0]))
        return keys

    def accepted_measurements(self) -> List[Measurement]:
        """Odometry plus the published inlier loop closures."""
        if self._problem is None:
            return []
        return list(self._problem.odometry) + list(self._problem.loop_closures.values())

    def save_result(self, output_path: Union[str, Path]) -> None:
        """Write the accepted measurements and published estimate as g2o."""
        save_g2o(output_path, self.accepted_measurements(), self._estimate)
        logger.log(self._log_level, "Saved result to %s", output_path)

    def save_trajectory(self, output_path: Union[str, Path]) -> None:
        """Write the published estimate as a CSV table of poses."""
        if self.pose_graph.ops is None:
            raise MalformedMeasurementError("No poses to save")
        save_trajectory(output_path, self._estimate, self.pose_graph.ops)
        logger.log(self._log_level, "Saved trajectory to %s", output_path)

    def save_inlier_set(self, output_path: Union[str, Path]) -> None:
        """Write one row per loop closure with its status and weight."""
        accepted = set(self._inliers)
        pending = set(self.checker.pending)
        rows = []
        for loop_id, edge in self.pose_graph.loop_closures.items():
            weight = self._weights.get(loop_id, 1.0 if loop_id in accepted else 0.0)
            if loop_id in pending:
                status = "pending"
            elif loop_id not in accepted:
                status = "rejected"
            elif weight < 0.5:
                status = "downweighted"
            else:
                status = "inlier"
            rows.append(
                {
                    "loop_id": loop_id,
                    "from_key": edge.from_key,
                    "to_key": edge.to_key,
                    "status": status,
                    "weight": weight,
                }
            )
        save_inlier_table(output_path, rows)
        logger.log(self._log_level, "Saved %d loop closure decisions to %s", len(rows), output_path)
