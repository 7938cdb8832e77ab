"""Maximum clique search over the consistency graph.

All strategies share one contract: they return a sorted tuple of loop closure
identifiers that are pairwise connected. Among equally large cliques the
lexicographically smallest one wins, so results do not depend on iteration
order. Bounded-time strategies return the best clique found when their
budget runs out.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

import networkx as nx
import numpy as np
import numpy.typing as npt

from ..params import CliqueStrategy
from .consistency import ConsistencyGraph

logger = logging.getLogger("rpgo.max_clique")

Clique = Tuple[int, ...]


@dataclass(frozen=True)
class CliqueResult:
    """Selected clique and whether the search budget was exhausted."""

    members: Clique
    timed_out: bool = False

    def __len__(self) -> int:
        return len(self.members)


def _better(candidate: Sequence[int], best: Clique) -> bool:
    candidate = tuple(sorted(candidate))
    if len(candidate) != len(best):
        return len(candidate) > len(best)
    return candidate < best


def _adjacency(graph: ConsistencyGraph) -> Dict[int, Set[int]]:
    return {v: set(graph.graph.adj[v]) for v in graph.graph.nodes}


class CliqueSolver:
    """Base class of the clique strategies."""

    strategy: CliqueStrategy = None

    def __init__(self, time_budget: Optional[float] = None) -> None:
        self.time_budget = time_budget

    def solve(self, graph: ConsistencyGraph) -> CliqueResult:
        """Return a maximum (or near-maximum) clique of ``graph``."""
        if len(graph) == 0:
            return CliqueResult(())
        start = time.monotonic()
        result = self._search(graph, self._deadline(start))
        if not graph.is_clique(result.members):
            raise RuntimeError(f"{type(self).__name__} returned a non-clique {result.members}")
        logger.debug(
            "%s clique of size %d from %d vertices in %.4fs%s",
            self.strategy.value,
            len(result),
            len(graph),
            time.monotonic() - start,
            " (budget exhausted)" if result.timed_out else "",
        )
        return result

    def _deadline(self, start: float) -> Optional[float]:
        return None if self.time_budget is None else start + self.time_budget

    @staticmethod
    def _expired(deadline: Optional[float]) -> bool:
        return deadline is not None and time.monotonic() > deadline

    def _search(self, graph: ConsistencyGraph, deadline: Optional[float]) -> CliqueResult:
        raise NotImplementedError


def _color_bound(vertices: Sequence[int], adj: Dict[int, Set[int]]) -> int:
    """Number of colors of a greedy coloring, an upper bound on the clique size."""
    classes: List[List[int]] = []
    for v in vertices:
        for members in classes:
            if not adj[v].intersection(members):
                members.append(v)
                break
        else:
            classes.append([v])
    return len(classes)


class ExactCliqueSolver(CliqueSolver):
    """Branch and bound with k-core and greedy-coloring pruning.

    Vertices are expanded in increasing identifier order, so the first clique
    of maximum size reached is also the lexicographically smallest.
    """

    strategy = CliqueStrategy.EXACT

    def _search(self, graph: ConsistencyGraph, deadline: Optional[float]) -> CliqueResult:
        adj = _adjacency(graph)
        core = nx.core_number(graph.graph)
        best: List[Clique] = [()]

        def expand(clique: List[int], candidates: List[int]) -> None:
            if len(clique) > len(best[0]):
                best[0] = tuple(clique)
            if not candidates:
                return
            if len(clique) + _color_bound(candidates, adj) <= len(best[0]):
                return
            for i, v in enumerate(candidates):
                if len(clique) + len(candidates) - i <= len(best[0]):
                    return
                if core[v] + 1 <= len(best[0]):
                    continue
                expand(clique + [v], [u for u in candidates[i + 1 :] if u in adj[v]])

        expand([], sorted(adj))
        return CliqueResult(best[0])


class HeuristicCliqueSolver(CliqueSolver):
    """Greedy clique growth seeded from every vertex in k-core order.

    Each seed grows by repeatedly adding the common neighbor with the largest
    core number; seeds whose core number cannot beat the incumbent are
    skipped.
    """

    strategy = CliqueStrategy.HEURISTIC

    def _search(self, graph: ConsistencyGraph, deadline: Optional[float]) -> CliqueResult:
        adj = _adjacency(graph)
        core = nx.core_number(graph.graph)
        best: Clique = ()
        timed_out = False

        for seed in sorted(adj, key=lambda v: (-core[v], v)):
            if best and self._expired(deadline):
                timed_out = True
                break
            if core[seed] + 1 < len(best):
                continue
            clique = [seed]
            candidates = {u for u in adj[seed] if core[u] + 1 >= len(best)}
            while candidates:
                pick = min(candidates, key=lambda u: (-core[u], u))
                clique.append(pick)
                candidates &= adj[pick]
            if _better(clique, best):
                best = tuple(sorted(clique))

        return CliqueResult(best, timed_out)


class RelaxationCliqueSolver(CliqueSolver):
    """Continuous relaxation solved by projected gradient ascent.

    Maximizes ``u^T (M - d * (1 - M)) u`` over the non-negative unit sphere,
    where ``M`` is the adjacency matrix with unit diagonal. The penalty ``d``
    on inconsistent pairs grows until the support of ``u`` is a clique. The
    final clique is rounded greedily in decreasing order of ``u``, which keeps
    the output a valid clique whenever the search stops.
    """

    strategy = CliqueStrategy.RELAXATION

    def __init__(
        self,
        time_budget: Optional[float] = None,
        max_outer_iterations: int = 30,
        max_inner_iterations: int = 500,
        tolerance: float = 1e-8,
        support_eps: float = 1e-6,
    ) -> None:
        super().__init__(time_budget)
        self.max_outer_iterations = max_outer_iterations
        self.max_inner_iterations = max_inner_iterations
        self.tolerance = tolerance
        self.support_eps = support_eps

    def _search(self, graph: ConsistencyGraph, deadline: Optional[float]) -> CliqueResult:
        order = graph.vertices
        n = len(order)
        M = nx.to_numpy_array(graph.graph, nodelist=order, weight=None) + np.eye(n)
        penalty_mask = 1.0 - M

        core = nx.core_number(graph.graph)
        u = np.array([core[v] + 1.0 for v in order])
        u /= np.linalg.norm(u)

        d = 0.0
        timed_out = False
        for _ in range(self.max_outer_iterations):
            u = self._ascend(M - d * penalty_mask, u, deadline)
            support = np.flatnonzero(u > self.support_eps)
            if not penalty_mask[np.ix_(support, support)].any():
                break
            if self._expired(deadline):
                timed_out = True
                break
            d = 1.0 if d == 0.0 else 2.0 * d

        return CliqueResult(self._round(u, order, graph), timed_out)

    def _ascend(
        self,
        Md: npt.NDArray[np.float64],
        u: npt.NDArray[np.float64],
        deadline: Optional[float],
    ) -> npt.NDArray[np.float64]:
        value = u @ Md @ u
        alpha = 1.0
        for _ in range(self.max_inner_iterations):
            grad = 2.0 * Md @ u
            while alpha > 1e-12:
                candidate = np.maximum(u + alpha * grad, 0.0)
                norm = np.linalg.norm(candidate)
                if norm > 0.0:
                    candidate /= norm
                    candidate_value = candidate @ Md @ candidate
                    if candidate_value >= value:
                        break
                alpha *= 0.5
            else:
                return u
            step = np.linalg.norm(candidate - u)
            u, value = candidate, candidate_value
            if step < self.tolerance or self._expired(deadline):
                break
            alpha = min(2.0 * alpha, 1e6)
        return u

    @staticmethod
    def _round(
        u: npt.NDArray[np.float64], order: List[int], graph: ConsistencyGraph
    ) -> Clique:
        ranked = sorted(range(len(order)), key=lambda i: (-round(float(u[i]), 9), order[i]))
        clique: List[int] = []
        for i in ranked:
            v = order[i]
            if all(graph.has_edge(v, w) for w in clique):
                clique.append(v)
        return tuple(sorted(clique))


_SOLVERS = {
    CliqueStrategy.EXACT: ExactCliqueSolver,
    CliqueStrategy.HEURISTIC: HeuristicCliqueSolver,
    CliqueStrategy.RELAXATION: RelaxationCliqueSolver,
}


def make_clique_solver(
    strategy: CliqueStrategy, time_budget: Optional[float] = None
) -> CliqueSolver:
    """Instantiate the solver for ``strategy``.

    Args:
        strategy: Which search to run.
        time_budget: Seconds allowed for heuristic/relaxation search; the
            exact search is never interrupted.
    """
    solver_cls = _SOLVERS[CliqueStrategy(strategy)]
    if solver_cls is ExactCliqueSolver:
        return solver_cls()
    return solver_cls(time_budget=time_budget)
