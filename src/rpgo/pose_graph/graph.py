"""Pose graph data model: poses, trusted odometry and candidate loop closures."""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from ..errors import DuplicateKeyError, MalformedMeasurementError
from ..utils.geometry import Pose, PoseOps, PoseWithCovariance, ops_for
from .measurement import Measurement, MeasurementKind
from .node import PoseNode

logger = logging.getLogger("rpgo.pose_graph")


class PoseGraph:
    """Poses and relative measurements, partitioned by kind.

    Odometry edges are accepted unconditionally and form the chain used to
    close cycles during consistency checking. Loop closures are staged with a
    monotonically increasing identifier and are never trusted here; the
    outlier rejection stages decide which of them reach the optimizer.
    """

    def __init__(self) -> None:
        """Initialize an empty pose graph."""
        self.nodes: Dict[int, PoseNode] = {}
        self.odometry_edges: List[Measurement] = []
        self.loop_closures: Dict[int, Measurement] = {}
        self._odometry_from: Dict[int, Measurement] = {}
        self._odometry_to: Dict[int, Measurement] = {}
        self._connected: Set[int] = set()
        self._next_loop_id = 0
        self._ops: Optional[PoseOps] = None
        # First pose referenced by odometry; the gauge anchor goes here
        self.first_key: Optional[int] = None

    @property
    def ops(self) -> Optional[PoseOps]:
        """Capability set of the graph's pose type, ``None`` while empty."""
        return self._ops

    def __contains__(self, key: int) -> bool:
        return key in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def add_pose(self, key: int, initial_value: Pose) -> PoseNode:
        """Register a pose with its initial estimate.

        Args:
            key: Unique pose key.
            initial_value: Initial ``gtsam.Pose2``/``gtsam.Pose3``.

        Returns:
            The new node.

        Raises:
            DuplicateKeyError: If ``key`` is already registered.
        """
        if key in self.nodes:
            raise DuplicateKeyError(key)
        self._check_pose_type(ops_for(initial_value))
        node = PoseNode(key=key, value=initial_value)
        self.nodes[node.key] = node
        return node

    def add_odometry(self, edge: Measurement) -> None:
        """Add a trusted odometry edge, creating missing endpoint poses.

        Missing endpoints are initialized by dead reckoning from the known one.
        """
        self.check_odometry(edge)

        if edge.from_key not in self.nodes and edge.to_key not in self.nodes:
            logger.debug("Odometry %s->%s starts a new component", edge.from_key, edge.to_key)
            self.add_pose(edge.from_key, edge.ops.identity())
        if edge.to_key not in self.nodes:
            start = self.nodes[edge.from_key].value
            self.add_pose(edge.to_key, start.compose(edge.transform))
        elif edge.from_key not in self.nodes:
            end = self.nodes[edge.to_key].value
            self.add_pose(edge.from_key, end.compose(edge.transform.inverse()))

        if self.first_key is None:
            self.first_key = edge.from_key
        self.odometry_edges.append(edge)
        self._odometry_from[edge.from_key] = edge
        self._odometry_to[edge.to_key] = edge
        self._connected.update((edge.from_key, edge.to_key))

    def add_loop_closure(self, edge: Measurement) -> int:
        """Stage a loop closure; it is not trusted until selected as an inlier.

        Returns:
            The identifier assigned to the loop closure.
        """
        self.check_loop_closure(edge, self.nodes.keys())
        loop_id = self._next_loop_id
        self._next_loop_id += 1
        self.loop_closures[loop_id] = edge
        self._connected.update((edge.from_key, edge.to_key))
        return loop_id

    def check_odometry(self, edge: Measurement) -> None:
        """Raise if ``edge`` cannot be added as odometry."""
        if edge.kind is not MeasurementKind.ODOMETRY:
            raise MalformedMeasurementError(
                f"Expected odometry, got {edge.kind.value} {edge.from_key}->{edge.to_key}"
            )
        self._check_pose_type(edge.ops, register=False)
        if edge.from_key in self._odometry_from:
            raise DuplicateKeyError(edge.from_key, what="odometry source")
        if edge.to_key in self._odometry_to:
            raise DuplicateKeyError(edge.to_key, what="odometry target")

    def check_loop_closure(self, edge: Measurement, known_keys: Iterable[int]) -> None:
        """Raise if ``edge`` cannot be staged as a loop closure given ``known_keys``."""
        if edge.kind is not MeasurementKind.LOOP_CLOSURE:
            raise MalformedMeasurementError(
                f"Expected loop closure, got {edge.kind.value} {edge.from_key}->{edge.to_key}"
            )
        self._check_pose_type(edge.ops, register=False)
        known = known_keys if isinstance(known_keys, (set, frozenset)) else set(known_keys)
        missing = [k for k in (edge.from_key, edge.to_key) if k not in known]
        if missing:
            raise MalformedMeasurementError(
                f"Loop closure {edge.from_key}->{edge.to_key} references unknown poses {missing}"
            )

    def check_batch(
        self,
        poses: Mapping[int, Pose],
        odometry: Sequence[Measurement],
        loop_closures: Sequence[Measurement],
    ) -> None:
        """Validate a batch without mutating the graph.

        Poses are registered first, then odometry, then loop closures, which
        is the order ``IncrementalOptimizer.update`` ingests them in.
        """
        known = set(self.nodes)
        for key, value in poses.items():
            if key in known:
                raise DuplicateKeyError(key)
            self._check_pose_type(ops_for(value), register=False)
            known.add(key)

        sources: Set[int] = set()
        targets: Set[int] = set()
        for edge in odometry:
            self.check_odometry(edge)
            if edge.from_key in sources:
                raise DuplicateKeyError(edge.from_key, what="odometry source")
            if edge.to_key in targets:
                raise DuplicateKeyError(edge.to_key, what="odometry target")
            sources.add(edge.from_key)
            targets.add(edge.to_key)
            known.update((edge.from_key, edge.to_key))

        for edge in loop_closures:
            self.check_loop_closure(edge, known)

        kinds = {ops_for(v).pose_type for v in poses.values()}
        kinds.update(e.ops.pose_type for e in odometry)
        kinds.update(e.ops.pose_type for e in loop_closures)
        if len(kinds) > 1:
            raise MalformedMeasurementError("Cannot mix Pose2 and Pose3 measurements in one graph")

    def odometry_between(self, start: int, end: int) -> Optional[PoseWithCovariance]:
        """Compose odometry from ``start`` to ``end`` with propagated covariance.

        Returns:
            The relative transform, or ``None`` if the odometry chain does not
            connect the two keys (yet).
        """
        if start == end:
            return PoseWithCovariance.identity(self._ops)
        forward = self._walk(start, end)
        if forward is not None:
            return forward
        backward = self._walk(end, start)
        if backward is not None:
            return backward.inverse()
        return None

    def _walk(self, start: int, end: int) -> Optional[PoseWithCovariance]:
        result = None
        key = start
        visited = {start}
        while key != end:
            edge = self._odometry_from.get(key)
            if edge is None or edge.to_key in visited:
                return None
            step = edge.with_covariance()
            result = step if result is None else result.compose(step)
            key = edge.to_key
            visited.add(key)
        return result

    def initial_value(self, key: int) -> Pose:
        return self.nodes[key].value

    def isolated_keys(self) -> List[int]:
        """Keys of poses with no incident measurement (under-constrained)."""
        return sorted(k for k in self.nodes if k not in self._connected)

    def odometry_from(self, key: int) -> Optional[Measurement]:
        return self._odometry_from.get(key)

    def odometry_to(self, key: int) -> Optional[Measurement]:
        return self._odometry_to.get(key)

    def _check_pose_type(self, ops: PoseOps, register: bool = True) -> None:
        if self._ops is None:
            if register:
                self._ops = ops
            return
        if ops is not self._ops:
            raise MalformedMeasurementError(
                f"Cannot mix {ops.pose_type.__name__} with {self._ops.pose_type.__name__} poses"
            )
