"""Input/Output utilities for pose graph files and inlier reports."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Union

import gtsam
import numpy as np
import pandas as pd

from ..pose_graph.measurement import Measurement, MeasurementKind
from .conversions import trajectory_columns, values_to_trajectory
from .geometry import SE2, SE3, Pose, PoseOps

logger = logging.getLogger("rpgo.io")

INLIER_COLUMNS = ["loop_id", "from_key", "to_key", "status", "weight"]


@dataclass
class GraphData:
    """Poses and measurements read from a persisted pose graph."""

    poses: Dict[int, Pose] = field(default_factory=dict)
    odometry: List[Measurement] = field(default_factory=list)
    loop_closures: List[Measurement] = field(default_factory=list)


def load_g2o(filepath: Union[str, Path], is3d: bool = False) -> GraphData:
    """Load a g2o pose graph.

    Edges between consecutive keys are treated as odometry, every other
    edge as a loop closure candidate. Priors stored in the file are ignored;
    the optimizer anchors the gauge itself.

    Args:
        filepath: Path to a g2o file.
        is3d: Read ``VERTEX_SE3:QUAT``/``EDGE_SE3:QUAT`` instead of SE2 entries.

    Returns:
        Parsed graph data.
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Pose graph file not found: {filepath}")

    graph, initial = gtsam.readG2o(str(filepath), is3d)
    ops = SE3 if is3d else SE2

    data = GraphData()
    for key in sorted(initial.keys()):
        data.poses[int(key)] = ops.value_at(initial, key)

    for i in range(graph.size()):
        factor = graph.at(i)
        if factor is None:
            continue
        keys = list(factor.keys())
        if len(keys) != 2:
            logger.debug("Skipping %d-key factor in %s", len(keys), filepath)
            continue
        from_key, to_key = int(keys[0]), int(keys[1])
        covariance = np.asarray(factor.noiseModel().covariance(), dtype=np.float64)
        kind = (
            MeasurementKind.ODOMETRY if to_key == from_key + 1 else MeasurementKind.LOOP_CLOSURE
        )
        edge = Measurement(from_key, to_key, factor.measured(), covariance, kind)
        if kind is MeasurementKind.ODOMETRY:
            data.odometry.append(edge)
        else:
            data.loop_closures.append(edge)

    logger.info(
        "Loaded %s: %d poses, %d odometry, %d loop closures",
        filepath,
        len(data.poses),
        len(data.odometry),
        len(data.loop_closures),
    )
    return data


def save_g2o(
    filepath: Union[str, Path],
    measurements: Sequence[Measurement],
    estimate: gtsam.Values,
) -> None:
    """Write measurements and pose estimates to a g2o file.

    Args:
        filepath: Output file path.
        measurements: Edges to write (unweighted).
        estimate: Pose values to write as vertices.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    graph = gtsam.NonlinearFactorGraph()
    for edge in measurements:
        graph.add(edge.to_factor())
    gtsam.writeG2o(graph, estimate, str(filepath))


def save_inlier_table(filepath: Union[str, Path], rows: Sequence[dict]) -> pd.DataFrame:
    """Write the loop closure decisions as CSV.

    Args:
        filepath: Output file path.
        rows: Dicts with the keys of ``INLIER_COLUMNS``.

    Returns:
        The written table.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    table = pd.DataFrame(list(rows), columns=INLIER_COLUMNS)
    table.to_csv(filepath, index=False)
    return table


def save_trajectory(
    filepath: Union[str, Path], estimate: gtsam.Values, ops: PoseOps
) -> pd.DataFrame:
    """Write one CSV row per pose: key, translation and heading.

    Planar poses store ``yaw``, spatial poses a unit quaternion.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    table = pd.DataFrame(values_to_trajectory(estimate, ops), columns=trajectory_columns(ops))
    table.to_csv(filepath, index=False)
    return table


def load_inlier_table(filepath: Union[str, Path]) -> pd.DataFrame:
    """Read a table written by ``save_inlier_table``."""
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Inlier table not found: {filepath}")
    return pd.read_csv(filepath)
