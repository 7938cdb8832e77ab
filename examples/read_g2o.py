"""Robustly optimize a g2o pose graph.

This example demonstrates:
1. Loading a 2D or 3D g2o file
2. Rejecting inconsistent loop closures with PCM and maximum clique search
3. Optional GNC re-weighting of the accepted loop closures
4. Writing the optimized graph, the trajectory and the loop closure decisions

Usage:
    python examples/read_g2o.py data/intel.g2o --pcm PCM2dSimp --pcm-t 0.05 --pcm-r 0.005 \
        --gnc --gnc-barcsq 1.0 --max-clique-method pmc_heu --output result.g2o -v
"""

import logging

from rpgo import IncrementalOptimizer, UpdateStatus
from rpgo.utils.config import params_from_args, parse_args
from rpgo.utils.io import load_g2o


def main() -> None:
    """Run robust pose graph optimization on a g2o file."""
    args = parse_args()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    params = params_from_args(args)
    data = load_g2o(args.g2o_file, is3d=args.is3d)
    print(f"Loaded {len(data.poses)} poses, {len(data.odometry)} odometry edges, "
          f"{len(data.loop_closures)} loop closures")

    optimizer = IncrementalOptimizer(params)
    report = optimizer.load(data)
    if report.status is UpdateStatus.FAILED:
        print(f"Optimization failed: {report.failure}")
        return

    print(f"Inliers: {len(report.inliers)} / {len(data.loop_closures)} loop closures")
    if report.weights:
        down = [i for i, w in report.weights.items() if w < 0.5]
        print(f"GNC down-weighted {len(down)} loop closures")
    for warning in report.warnings:
        print(f"Warning: {warning}")

    optimizer.save_result(args.output)
    print(f"Saved optimized graph to {args.output}")
    if args.inliers_output:
        optimizer.save_inlier_set(args.inliers_output)
        print(f"Saved loop closure decisions to {args.inliers_output}")
    if args.trajectory_output:
        optimizer.save_trajectory(args.trajectory_output)
        print(f"Saved trajectory to {args.trajectory_output}")


if __name__ == "__main__":
    main()
