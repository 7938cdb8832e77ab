"""Graduated non-convexity (GNC) re-weighting of loop closures.

The Geman-McClure cost is minimized through its surrogate

    J(x, w) = sum(fixed) + sum_i w_i e_i(x) + sum_i mu * barcsq * (sqrt(w_i) - 1)^2

where ``e_i`` is the GTSAM factor error of loop closure ``i``. For a fixed
``x`` the optimal weight is ``(mu * barcsq / (e_i + mu * barcsq))^2``; for
fixed weights ``x`` is re-solved. ``mu`` starts large (almost convex) and
shrinks towards 1 (the true robust cost). Each weight step, solve step and
``mu`` decrease can only lower ``J``, so the recorded costs never increase.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping

import gtsam
import numpy as np

from ..params import GncParams, Verbosity
from ..pose_graph import NonlinearSolver

logger = logging.getLogger("rpgo.gnc")


@dataclass
class GncResult:
    """Final weights and estimate of a GNC run."""

    weights: Dict[int, float]
    estimate: gtsam.Values
    costs: List[float] = field(default_factory=list)
    iterations: int = 0
    converged: bool = True
    mu: float = 1.0

    def outliers(self, threshold: float = 0.5) -> List[int]:
        """Loop closures whose weight ended below ``threshold``."""
        return sorted(i for i, w in self.weights.items() if w < threshold)


def gm_weight(error: float, mu: float, barcsq: float) -> float:
    """Geman-McClure weight of a residual with factor error ``error``."""
    if math.isinf(barcsq):
        return 1.0
    scale = mu * barcsq
    weight = (scale / (error + scale)) ** 2
    return float(min(max(weight, 0.0), 1.0))


def surrogate_cost(
    problem,
    values: gtsam.Values,
    weights: Mapping[int, float],
    mu: float,
    barcsq: float,
) -> float:
    """Weighted surrogate cost ``J`` of ``problem`` at ``values``."""
    cost = problem.fixed_error(values)
    for loop_id, error in problem.loop_closure_errors(values).items():
        w = weights.get(loop_id, 1.0)
        cost += w * error
        if math.isfinite(barcsq):
            cost += mu * barcsq * (np.sqrt(w) - 1.0) ** 2
    return float(cost)


class GncWeighter:
    """Runs GNC on top of whatever loop closures the problem contains.

    With GNC disabled this degenerates to one ordinary least-squares solve
    with every weight equal to one.
    """

    def __init__(
        self,
        params: GncParams,
        solver: NonlinearSolver,
        verbosity: Verbosity = Verbosity.QUIET,
    ) -> None:
        self.params = params
        self.solver = solver
        self._log_level = verbosity.log_level

    def initial_mu(self, errors: Mapping[int, float]) -> float:
        if not errors:
            return 1.0
        return max(1.0, 2.0 * max(errors.values()) / self.params.inlier_cost_threshold)

    def reweight(self, errors: Mapping[int, float], mu: float) -> Dict[int, float]:
        barcsq = self.params.inlier_cost_threshold
        return {i: gm_weight(e, mu, barcsq) for i, e in errors.items()}

    def run(self, problem, initial: gtsam.Values) -> GncResult:
        """Solve ``problem`` from ``initial``, re-weighting its loop closures.

        Args:
            problem: An ``OptimizationProblem``.
            initial: Initial values for every key of the problem.

        Raises:
            SolverConvergenceFailure: Propagated from the nonlinear solver.
        """
        weights = {i: 1.0 for i in problem.loop_ids}
        graph = problem.build_graph(weights)
        estimate = self.solver.solve(graph, initial)
        if not self.params.enabled or not weights:
            return GncResult(weights, estimate, [graph.error(estimate)])

        barcsq = self.params.inlier_cost_threshold
        errors = problem.loop_closure_errors(estimate)
        mu = self.initial_mu(errors)
        costs = [surrogate_cost(problem, estimate, weights, mu, barcsq)]
        logger.log(self._log_level, "GNC start: mu=%.4g, %d loop closures", mu, len(weights))

        converged = False
        iterations = 0
        while iterations < self.params.max_iterations:
            iterations += 1
            new_weights = self.reweight(errors, mu)
            change = max(abs(new_weights[i] - weights[i]) for i in weights)
            weights = new_weights
            estimate = self.solver.solve(problem.build_graph(weights), estimate)
            errors = problem.loop_closure_errors(estimate)
            costs.append(surrogate_cost(problem, estimate, weights, mu, barcsq))
            logger.debug(
                "GNC iteration %d: mu=%.4g cost=%.6g max weight change=%.3g",
                iterations,
                mu,
                costs[-1],
                change,
            )
            if mu <= 1.0 and change < self.params.weight_tolerance:
                converged = True
                break
            mu = max(1.0, mu / self.params.mu_step)

        if not converged:
            logger.warning(
                "GNC stopped after %d iterations without converging; using last weights",
                iterations,
            )
        result = GncResult(weights, estimate, costs, iterations, converged, mu)
        logger.log(
            self._log_level,
            "GNC finished after %d iterations, %d of %d loop closures down-weighted",
            iterations,
            len(result.outliers()),
            len(weights),
        )
        return result
