"""Loop closure outlier rejection: PCM, maximum clique search and GNC."""

from .consistency import ConsistencyChecker, ConsistencyGraph, ConsistencyUpdate
from .gnc import GncResult, GncWeighter, gm_weight, surrogate_cost
from .max_clique import (
    CliqueResult,
    CliqueSolver,
    ExactCliqueSolver,
    HeuristicCliqueSolver,
    RelaxationCliqueSolver,
    make_clique_solver,
)

__all__ = [
    "CliqueResult",
    "CliqueSolver",
    "ConsistencyChecker",
    "ConsistencyGraph",
    "ConsistencyUpdate",
    "ExactCliqueSolver",
    "GncResult",
    "GncWeighter",
    "HeuristicCliqueSolver",
    "RelaxationCliqueSolver",
    "gm_weight",
    "make_clique_solver",
    "surrogate_cost",
]
