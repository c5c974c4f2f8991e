"""Problems, nested problems and the component collection they share.

A ``Problem`` is a set of components to be solved together. Expanding a chain
creates a ``NestedProblem`` for one parent value; nested problems share the
single ``ComponentCollection`` of the whole tree, which maps elements and
variables to their components and memoizes expansions.
"""
from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Callable, Iterable

import numpy as np

from .component_class import ExpandableComponent, ProblemComponent, make_component
from .element_class import Continuous, Element
from .factor_class import Factor
from .registry import solver_default
from .valueset_class import ValueSet
from .variable_class import Variable

logger = logging.getLogger(__name__)

_PROBLEM_IDS = itertools.count()


class ComponentCollection:
    """Registry shared by every problem of one decomposition tree.

    Attributes:
        components: Element to component map.
        variable_to_component: Every variable ever assigned to a component,
            mapped to that component. Old variables are kept so that factors
            built earlier can still be mapped back.
        expansions: Nested problems keyed by (component, function, parent value).
        rng: Random generator used to sample continuous elements.
        lock: Re-entrant lock held while an expansion is created and while a
            component swaps its range and variable.
    """

    def __init__(self, *, seed: int | None = None) -> None:
        self.components: dict[Element, ProblemComponent] = {}
        self.variable_to_component: dict[Variable, ProblemComponent] = {}
        self.expansions: dict[tuple[Any, Callable[..., Any], Any], NestedProblem] = {}
        self.rng = np.random.default_rng(seed if seed is not None else solver_default("random_seed"))
        self._star_variables: dict[Element, Variable] = {}
        self._samples: dict[Element, list[float]] = {}
        self.lock = threading.RLock()

    def __contains__(self, element: object) -> bool:
        return element in self.components

    def __getitem__(self, element: Element) -> ProblemComponent:
        return self.components[element]

    def __len__(self) -> int:
        return len(self.components)

    def add(self, element: Element, problem: Problem) -> ProblemComponent:
        """Create and register the component of ``element`` owned by ``problem``."""
        assert element not in self.components, f"{element.name} is already registered"
        component = make_component(problem, element)
        self.components[element] = component
        return component

    def register_variable(self, variable: Variable, component: ProblemComponent) -> None:
        with self.lock:
            self.variable_to_component[variable] = component

    def expansion(self, component: ExpandableComponent, function: Callable[[Any], Element], parent_value: Any) -> NestedProblem:
        """Return the nested problem for a key, creating it on the first request.

        Repeated or concurrent requests for the same key get the same object.
        Nested problems are never evicted.
        """
        key = (component, function, parent_value)
        with self.lock:
            subproblem = self.expansions.get(key)
            if subproblem is None:
                target = component.expand_function(parent_value)
                subproblem = NestedProblem(self, target, parent=component.problem)
                self.expansions[key] = subproblem
                logger.debug("Created %r for %s = %r", subproblem, component.element.name, parent_value)
        return subproblem

    def star_variable(self, element: Element) -> Variable:
        """Stand-in variable for an element that is not registered."""
        variable = self._star_variables.get(element)
        if variable is None:
            variable = Variable(ValueSet.with_star())
            self._star_variables[element] = variable
        return variable

    def samples(self, element: Continuous, count: int) -> list[float]:
        """First ``count`` samples of ``element``; earlier samples are reused."""
        cached = self._samples.setdefault(element, [])
        while len(cached) < count:
            cached.append(element.sample(self.rng))
        return cached[:count]


class Problem:
    """A set of components to be solved together.

    Args:
        collection: Shared collection; a new one is created if omitted.
        targets: Elements whose components are added immediately.
        verbose: Log at INFO instead of WARNING.
    """

    def __init__(
        self,
        collection: ComponentCollection | None = None,
        targets: Iterable[Element] = (),
        *,
        parent: Problem | None = None,
        verbose: bool = False,
    ) -> None:
        self.collection = collection if collection is not None else ComponentCollection()
        self.parent = parent
        self.depth = 0 if parent is None else parent.depth + 1
        self.id = next(_PROBLEM_IDS)
        self.targets: list[Element] = list(targets)
        self.components: list[ProblemComponent] = []
        self._members: set[ProblemComponent] = set()
        self.solved = False
        self.solution: list[Factor] = []

        base_logger = logger.getChild(self.__class__.__name__)
        base_logger.setLevel(logging.INFO if verbose else logging.WARNING)
        self._log = logging.LoggerAdapter(base_logger, {"problem_id": self.id, "depth": self.depth})

        for target in self.targets:
            self.add(target)

    def add(self, element: Element) -> ProblemComponent:
        """Add ``element`` to this problem unless it is already in the collection.

        Returns:
            The element's component, which belongs to another problem if the
            element was registered there first.
        """
        component = self.collection.components.get(element)
        if component is not None:
            if component.problem is not self:
                self._log.debug("%s already belongs to problem %s", element.name, component.problem.id)
            return component
        component = self.collection.add(element, self)
        self.components.append(component)
        self._members.add(component)
        self._log.debug("Added %s to problem %s", element.name, self.id)
        return component

    def owns(self, component: ProblemComponent) -> bool:
        return component in self._members

    def is_global(self, variable: Variable) -> bool:
        """True if ``variable`` does not belong to a component of this problem."""
        component = self.collection.variable_to_component.get(variable)
        return component is None or not self.owns(component)

    @property
    def fully_refined(self) -> bool:
        return all(component.fully_refined for component in self.components)

    def record_solution(self, factors: Iterable[Factor]) -> None:
        """Store the factors an external solver produced for this problem."""
        self.solution = list(factors)
        self.solved = True
        self._log.info("Problem %s solved with %d factor(s)", self.id, len(self.solution))

    def __repr__(self) -> str:
        return f"{type(self).__name__}#{self.id}(components={len(self.components)})"


class NestedProblem(Problem):
    """A problem reachable through one value of an expandable component's parent.

    The target is added to this problem unless it is already registered, in
    which case it is global to the nested problem.
    """

    def __init__(self, collection: ComponentCollection, target: Element, *, parent: Problem | None = None) -> None:
        super().__init__(collection, parent=parent)
        self.target = target
        self.targets = [target]
        if target not in collection:
            self.add(target)


__all__ = ["ComponentCollection", "NestedProblem", "Problem"]
