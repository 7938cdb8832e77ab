import argparse

from ..params import (
    CliqueStrategy,
    GncParams,
    PcmParams,
    RobustSolverParams,
    SolverParams,
    Verbosity,
)

PCM_MODES = {
    "NoPCM": "disabled",
    "PCM2dSimp": "simplified",
    "PCM3dSimp": "simplified",
    "PCM2dOrig": "original",
    "PCM3dOrig": "original",
}

CLIQUE_METHODS = {
    "pmc_exact": CliqueStrategy.EXACT,
    "pmc_heu": CliqueStrategy.HEURISTIC,
    "clipper": CliqueStrategy.RELAXATION,
}


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Robust pose graph optimization of a g2o file")

    # Input / output
    parser.add_argument("g2o_file", type=str, help="Path to the input g2o pose graph")
    parser.add_argument(
        "--output",
        type=str,
        default="result.g2o",
        help="Output g2o file with the optimized poses and accepted edges",
    )
    parser.add_argument(
        "--inliers-output",
        type=str,
        default=None,
        help="Optional CSV file listing the decision for every loop closure",
    )
    parser.add_argument(
        "--trajectory-output",
        type=str,
        default=None,
        help="Optional CSV file with one row per optimized pose",
    )
    parser.add_argument("--3d", dest="is3d", action="store_true", help="Read an SE3 g2o file")

    # Outlier rejection
    parser.add_argument(
        "--pcm",
        type=str,
        default="PCM2dSimp",
        choices=sorted(PCM_MODES),
        help="Pairwise consistency maximization mode",
    )
    parser.add_argument(
        "--pcm-t",
        type=float,
        default=0.05,
        help="Translation threshold (simplified PCM) or odometry Mahalanobis gate (original PCM)",
    )
    parser.add_argument(
        "--pcm-r",
        type=float,
        default=0.005,
        help="Rotation threshold in radians (simplified PCM) or loop closure Mahalanobis gate "
        "(original PCM)",
    )
    parser.add_argument("--gnc", action="store_true", help="Enable graduated non-convexity")
    parser.add_argument(
        "--gnc-barcsq",
        type=float,
        default=1.0,
        help="GNC inlier cost threshold (factor error above which an edge is an outlier)",
    )
    parser.add_argument(
        "--max-clique-method",
        type=str,
        default="pmc_exact",
        choices=sorted(CLIQUE_METHODS),
        help="Maximum clique search used to select the inlier set",
    )
    parser.add_argument(
        "--clique-time-budget",
        type=float,
        default=None,
        help="Seconds allowed for heuristic/relaxation clique search",
    )

    # Solver
    parser.add_argument(
        "--optimizer",
        type=str,
        default="LevenbergMarquardt",
        choices=["LevenbergMarquardt", "GaussNewton"],
        help="Nonlinear least-squares solver",
    )
    parser.add_argument(
        "--max-iterations", type=int, default=100, help="Maximum solver iterations"
    )

    # Verbose
    parser.add_argument("-v", "--verbose", action="store_true", help="Log solver progress")

    return parser.parse_args(argv)


def params_from_args(args) -> RobustSolverParams:
    """Build solver parameters from parsed command-line arguments."""
    mode = PCM_MODES[args.pcm]
    if mode == "simplified":
        pcm = PcmParams.simple(args.pcm_t, args.pcm_r)
    elif mode == "original":
        pcm = PcmParams.original(args.pcm_t, args.pcm_r)
    else:
        pcm = PcmParams.disabled()

    gnc = GncParams.enabled_with(args.gnc_barcsq) if args.gnc else GncParams.disabled()

    return RobustSolverParams(
        pcm=pcm,
        gnc=gnc,
        clique_strategy=CLIQUE_METHODS[args.max_clique_method],
        clique_time_budget=args.clique_time_budget,
        verbosity=Verbosity.VERBOSE if args.verbose else Verbosity.QUIET,
        solver=SolverParams(method=args.optimizer, max_iterations=args.max_iterations),
    )
