"""Pairwise consistency maximization (PCM) between loop closures.

Two loop closures ``a->b`` and ``c->d`` are consistent when the cycle

    T_ab * odom(b->d) * T_cd^-1 * odom(c->a)

is close to identity. Before a loop closure takes part in pairwise checks it
must also agree with the odometry chain on its own (``T_ab * odom(b->a)``).
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

import networkx as nx
import numpy as np
from scipy.stats import chi2

from ..params import PcmMode, PcmParams, Verbosity
from ..pose_graph import Measurement, PoseGraph
from ..utils.geometry import PoseWithCovariance

logger = logging.getLogger("rpgo.pcm")


class ConsistencyGraph:
    """Undirected graph over loop closure identifiers.

    An edge means the two loop closures passed the pairwise check. Odometry
    never appears here. ``version`` increases on every mutation so callers can
    tell whether a cached clique is stale.
    """

    def __init__(self) -> None:
        self.graph = nx.Graph()
        self.version = 0

    def __len__(self) -> int:
        return self.graph.number_of_nodes()

    def __contains__(self, loop_id: int) -> bool:
        return loop_id in self.graph

    @property
    def vertices(self) -> List[int]:
        return sorted(self.graph.nodes)

    @property
    def num_edges(self) -> int:
        return self.graph.number_of_edges()

    def add_loop_closure(self, loop_id: int) -> None:
        if loop_id not in self.graph:
            self.graph.add_node(loop_id)
            self.version += 1

    def connect(self, a: int, b: int) -> None:
        if a == b:
            raise ValueError("A loop closure cannot be connected to itself")
        if not self.graph.has_edge(a, b):
            self.graph.add_edge(a, b)
            self.version += 1

    def has_edge(self, a: int, b: int) -> bool:
        return self.graph.has_edge(a, b)

    def neighbors(self, loop_id: int) -> Set[int]:
        return set(self.graph.adj[loop_id])

    def is_clique(self, loop_ids: Iterable[int]) -> bool:
        """True if every pair in ``loop_ids`` is connected."""
        members = list(loop_ids)
        if any(v not in self.graph for v in members):
            return False
        return all(
            self.graph.has_edge(u, v)
            for i, u in enumerate(members)
            for v in members[i + 1 :]
        )


@dataclass
class ConsistencyUpdate:
    """Outcome of one incremental consistency pass."""

    admitted: List[int] = field(default_factory=list)
    rejected: List[int] = field(default_factory=list)
    pending: List[int] = field(default_factory=list)
    pairs_checked: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.admitted)


class ConsistencyChecker:
    """Maintains the consistency graph as loop closures arrive.

    Only pairs involving newly admitted loop closures are evaluated, so each
    update costs O(new * existing) pair checks.
    """

    def __init__(self, params: PcmParams, verbosity: Verbosity = Verbosity.QUIET) -> None:
        self.params = params
        self._log_level = verbosity.log_level
        self.rejected: Set[int] = set()
        self.pending: List[int] = []

    @staticmethod
    def threshold_from_probability(probability: float, dim: int) -> float:
        """Mahalanobis gate containing ``probability`` of inlier residuals.

        Args:
            probability: Confidence level in (0, 1).
            dim: Residual dimension (3 for Pose2, 6 for Pose3).
        """
        if not 0.0 < probability < 1.0:
            raise ValueError(f"probability must be in (0, 1), got {probability}")
        return float(np.sqrt(chi2.ppf(probability, dim)))

    def update(
        self,
        pose_graph: PoseGraph,
        graph: ConsistencyGraph,
        new_loop_ids: Iterable[int],
    ) -> ConsistencyUpdate:
        """Admit new loop closures into ``graph`` and connect consistent pairs.

        Loop closures whose odometry cycle cannot be closed yet are kept
        pending and retried on the next call.
        """
        result = ConsistencyUpdate()
        candidates = self.pending + [i for i in new_loop_ids if i not in self.pending]
        self.pending = []

        for loop_id in candidates:
            lc = pose_graph.loop_closures[loop_id]
            verdict = self.odometry_consistent(pose_graph, lc)
            if verdict is None:
                result.pending.append(loop_id)
                continue
            if not verdict:
                self.rejected.add(loop_id)
                result.rejected.append(loop_id)
                logger.log(
                    self._log_level,
                    "Loop closure %d (%d->%d) rejected by odometry check",
                    loop_id,
                    lc.from_key,
                    lc.to_key,
                )
                continue

            existing = graph.vertices
            graph.add_loop_closure(loop_id)
            result.admitted.append(loop_id)
            for other in existing:
                result.pairs_checked += 1
                if self.pairwise_consistent(pose_graph, pose_graph.loop_closures[other], lc):
                    graph.connect(other, loop_id)

        self.pending = result.pending
        logger.log(
            self._log_level,
            "PCM: %d admitted, %d rejected, %d pending, %d pairs checked",
            len(result.admitted),
            len(result.rejected),
            len(result.pending),
            result.pairs_checked,
        )
        return result

    def odometry_consistent(self, pose_graph: PoseGraph, lc: Measurement) -> Optional[bool]:
        """Check a loop closure against the odometry chain it spans.

        Returns:
            ``True``/``False``, or ``None`` if the odometry chain does not
            connect the loop closure's endpoints.
        """
        if self.params.mode is PcmMode.DISABLED:
            return True
        odom = pose_graph.odometry_between(lc.to_key, lc.from_key)
        if odom is None:
            return None
        residual = lc.with_covariance().compose(odom)
        return self._accept(residual, self.params.odom_threshold)

    def pairwise_consistent(
        self, pose_graph: PoseGraph, lc_i: Measurement, lc_j: Measurement
    ) -> bool:
        """Check whether two loop closures agree around their shared cycle."""
        if self.params.mode is PcmMode.DISABLED:
            return True
        odom_bd = pose_graph.odometry_between(lc_i.to_key, lc_j.to_key)
        odom_ca = pose_graph.odometry_between(lc_j.from_key, lc_i.from_key)
        if odom_bd is None or odom_ca is None:
            logger.debug(
                "No odometry path closes the cycle of %d->%d and %d->%d",
                lc_i.from_key,
                lc_i.to_key,
                lc_j.from_key,
                lc_j.to_key,
            )
            return False
        residual = (
            lc_i.with_covariance()
            .compose(odom_bd)
            .compose(lc_j.with_covariance().inverse())
            .compose(odom_ca)
        )
        return self._accept(residual, self.params.lc_threshold)

    def _accept(self, residual: PoseWithCovariance, mahalanobis_threshold: Optional[float]) -> bool:
        if self.params.mode is PcmMode.SIMPLIFIED:
            return (
                residual.translation_norm() < self.params.translation_threshold
                and residual.rotation_angle() < self.params.rotation_threshold
            )
        return residual.mahalanobis_norm() < mahalanobis_threshold
