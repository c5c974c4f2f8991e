"""Cooperative refinement of a problem tree.

``RefiningStrategy`` repeatedly generates ranges and expands expandable
components until nothing changes, the top-level problem is fully refined, or
the pass limit is reached. Components inside a problem are visited in
dependency order. Dependencies that are not registered yet are added, top-level
elements to the top-level problem. A dependency registered in another problem
(a global) is refined where it lives before the component that reads it, so
refinement inside a subproblem reaches outside its boundary when it has to.
Each pass expands at most a fixed number of nesting levels deeper than the
last, so recursive chains are unrolled across passes.
"""
from __future__ import annotations

import logging
from typing import Any

import networkx as nx

from .component_class import ChainComponent, ExpandableComponent, MakeArrayComponent, ProblemComponent
from .errors import UnsupportedModelError
from .problem_class import Problem
from .registry import solver_default
from .utils import ordered

logger = logging.getLogger(__name__)


class RefiningStrategy:
    """Drive range generation and expansion over a problem and all its subproblems.

    Args:
        problem: Top-level problem to refine.
        num_values: Sample budget passed to ``generate_range``; defaults to
            ``max_num_samples_at_chain`` from the solver defaults.
        max_passes: Pass limit; defaults to ``max_refinement_passes``.
        depth_per_pass: How many nesting levels deeper each pass may expand;
            defaults to ``expansion_depth_per_pass``.
        verbose: Log pass summaries at INFO.

    Attributes:
        max_depth: Expandable components in problems at this depth or deeper
            are not expanded in the current pass. Grows by ``depth_per_pass``
            with every pass, so recursive models are unrolled a few levels at a
            time.
    """

    def __init__(
        self,
        problem: Problem,
        *,
        num_values: int | None = None,
        max_passes: int | None = None,
        depth_per_pass: int | None = None,
        verbose: bool = False,
    ) -> None:
        self.problem = problem
        self.num_values = num_values if num_values is not None else solver_default("max_num_samples_at_chain")
        self.max_passes = int(max_passes if max_passes is not None else solver_default("max_refinement_passes", 20))
        self.depth_per_pass = int(
            depth_per_pass if depth_per_pass is not None else solver_default("expansion_depth_per_pass", 4)
        )
        if self.depth_per_pass <= 0:
            raise ValueError(f"depth_per_pass must be positive, got {self.depth_per_pass}")
        self.max_depth = 0
        self.passes_run = 0
        base_logger = logger.getChild(self.__class__.__name__)
        base_logger.setLevel(logging.INFO if verbose else logging.WARNING)
        self._log = logging.LoggerAdapter(base_logger, {"problem_id": problem.id})

    def execute(self) -> int:
        """Run passes until the tree is stable or fully refined. Returns the number of passes run."""
        for pass_id in range(self.max_passes):
            before = self._snapshot()
            self.refine_pass()
            self.passes_run = pass_id + 1
            if self.problem.fully_refined:
                self._log.info("Fully refined after %d pass(es)", self.passes_run)
                break
            if self._snapshot() == before:
                self._log.info("Stable after %d pass(es)", self.passes_run)
                break
        else:
            self._log.info("Stopped at pass limit %d", self.max_passes)
        return self.passes_run

    def refine_pass(self) -> None:
        """Visit every reachable component once, expanding one more slice of nesting depth."""
        self.max_depth += self.depth_per_pass
        visited: set[ProblemComponent] = set()
        self._refine_problem(self.problem, visited)
        self._log.debug("Pass refined %d component(s)", len(visited))

    def _refine_problem(self, problem: Problem, visited: set[ProblemComponent]) -> None:
        for component in self.dependency_order(problem):
            self._refine_component(component, visited)

    def _refine_component(self, component: ProblemComponent, visited: set[ProblemComponent]) -> None:
        if component in visited:
            return
        visited.add(component)
        if component.fully_refined:
            return
        collection = component.collection
        for arg in component.element.args:
            if arg not in collection:
                # Top-level elements belong to the top-level problem; anything else stays local.
                home = self.problem if arg.context is None else component.problem
                home.add(arg)
            self._refine_component(collection[arg], visited)
        component.generate_range(self.num_values)
        if not isinstance(component, ExpandableComponent):
            return
        depth = component.problem.depth - self.problem.depth
        if depth >= self.max_depth:
            self._log.debug("Deferred expansion of %s at depth %d", component.element.name, depth)
            return

        component.expand()
        if isinstance(component, MakeArrayComponent):
            for index in range(component.max_expanded):
                item = component.make_array.item(index)
                if item in collection:
                    self._refine_component(collection[item], visited)
        elif isinstance(component, ChainComponent):
            for parent_value in ordered(component.subproblems):
                subproblem = component.subproblems[parent_value]
                self._refine_problem(subproblem, visited)
                # A global target lives outside the subproblem and is refined where it is registered.
                self._refine_component(collection[subproblem.target], visited)
        component.generate_range(self.num_values)

    @staticmethod
    def dependency_order(problem: Problem) -> list[ProblemComponent]:
        """Components of ``problem`` with dependencies before dependents.

        Raises:
            UnsupportedModelError: If the dependencies inside the problem form a cycle.
        """
        position = {component: idx for idx, component in enumerate(problem.components)}
        graph = nx.DiGraph()
        graph.add_nodes_from(position)
        for component in problem.components:
            for arg in component.element.args:
                dependency = problem.collection.components.get(arg)
                if dependency is not None and dependency in position:
                    graph.add_edge(dependency, component)
        try:
            return list(nx.lexicographical_topological_sort(graph, key=position.__getitem__))
        except nx.NetworkXUnfeasible as exc:
            raise UnsupportedModelError(f"Cyclic dependencies in problem {problem.id}") from exc

    def _snapshot(self) -> dict[Any, Any]:
        collection = self.problem.collection
        return {
            element: (
                component.range,
                len(getattr(component, "subproblems", ())),
                getattr(component, "max_expanded", None),
            )
            for element, component in collection.components.items()
        }


__all__ = ["RefiningStrategy"]
