"""Nonlinear least-squares solver backed by GTSAM."""

import logging
import math

import gtsam

from ..errors import SolverConvergenceFailure
from ..params import SolverParams

logger = logging.getLogger("rpgo.solver")


class NonlinearSolver:
    """Solves a factor graph with Levenberg-Marquardt or Gauss-Newton.

    The solver is treated as a pure function: it never mutates the graph or
    the initial values it is given.
    """

    def __init__(self, params: SolverParams = SolverParams()) -> None:
        """Initialize solver.

        Args:
            params: Method, iteration cap and error tolerances.
        """
        self.params = params

    def _make_optimizer(self, graph: gtsam.NonlinearFactorGraph, initial: gtsam.Values):
        if self.params.method == "LevenbergMarquardt":
            params = gtsam.LevenbergMarquardtParams()
            params.setMaxIterations(self.params.max_iterations)
            params.setRelativeErrorTol(self.params.relative_error_tol)
            params.setAbsoluteErrorTol(self.params.absolute_error_tol)
            return gtsam.LevenbergMarquardtOptimizer(graph, initial, params)

        params = gtsam.GaussNewtonParams()
        params.setMaxIterations(self.params.max_iterations)
        params.setRelativeErrorTol(self.params.relative_error_tol)
        params.setAbsoluteErrorTol(self.params.absolute_error_tol)
        return gtsam.GaussNewtonOptimizer(graph, initial, params)

    def solve(self, graph: gtsam.NonlinearFactorGraph, initial: gtsam.Values) -> gtsam.Values:
        """Optimize ``graph`` starting from ``initial``.

        Args:
            graph: Factors to minimize.
            initial: Initial estimate for every key referenced by ``graph``.

        Returns:
            The optimized values.

        Raises:
            SolverConvergenceFailure: If GTSAM rejects the system (e.g. it is
                singular) or the result has a non-finite error.
        """
        try:
            optimizer = self._make_optimizer(graph, initial)
            result = optimizer.optimize()
        except (RuntimeError, IndexError) as exc:
            raise SolverConvergenceFailure(f"{self.params.method} failed: {exc}") from exc

        error = graph.error(result)
        if not math.isfinite(error):
            raise SolverConvergenceFailure(f"{self.params.method} produced non-finite error")
        if optimizer.iterations() >= self.params.max_iterations:
            logger.debug(
                "%s hit the iteration cap (%d), final error %.6g",
                self.params.method,
                self.params.max_iterations,
                error,
            )
        return result
