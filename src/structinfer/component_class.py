"""Problem components: one per model element inside one problem.

A component owns the current range of its element and the variable that
represents it in factors. Ranges only grow; every change replaces the range and
the variable together and registers the new variable with the component
collection.

Expandable components (chains and arrays) additionally create structure that
depends on the value of a governing parent element:

- a ``ChainComponent`` creates one nested problem per parent value and decides,
  per value, whether the outcome variable is shared with the enclosing scope or
  private to the branch,
- a ``MakeArrayComponent`` adds the array's item elements to its own problem up
  to the largest count the parent may take.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from . import factory
from .element_class import Apply, Chain, Element, MakeArray
from .factor_class import Bounds, Factor
from .range_util import compute_range
from .utils import ordered
from .valueset_class import ValueSet
from .variable_class import Variable

if TYPE_CHECKING:
    from .problem_class import NestedProblem, Problem

logger = logging.getLogger(__name__)


class ProblemComponent:
    """A component of a problem, created for a specific element.

    Attributes:
        problem: Owning problem (back-reference; the problem owns the component).
        element: The model element this component represents.
        range: Current range of the element. Only grows.
        fully_enumerated: True once the range is complete. Never true while the
            range contains star, and never true for sampled elements.
        fully_refined: True once further refinement cannot change the range or
            factors. Requires ``fully_enumerated``; expandable components also
            require every subproblem to be present and fully refined.
    """

    def __init__(self, problem: Problem, element: Element) -> None:
        self.problem = problem
        self.element = element
        self.range: ValueSet = ValueSet.with_star()
        self.fully_enumerated = False
        self.fully_refined = False
        self._variable: Variable | None = None
        self.set_variable(Variable(self.range))

    @property
    def variable(self) -> Variable:
        """Current variable representing this component in factors."""
        return self._variable

    @property
    def collection(self):
        return self.problem.collection

    def range_and_variable(self) -> tuple[ValueSet, Variable]:
        """Current range and variable, read as one consistent pair."""
        with self.collection.lock:
            return self.range, self._variable

    def set_variable(self, variable: Variable) -> None:
        self._variable = variable
        self.problem.collection.register_variable(variable, self)

    def constraint_factors(self, bounds: Bounds = Bounds.LOWER) -> list[Factor]:
        """Evidence factors; the upper bound gives the unknown value full weight."""
        return factory.make_constraint_factors(self.collection, self.element, bounds is Bounds.UPPER)

    def non_constraint_factors(self, parameterized: bool = False) -> list[Factor]:
        """Factors relating the element to its dependencies, with repeated variables collapsed.

        For a chain this does not include subproblem factors. With
        ``parameterized`` the point estimate of parameter arguments is used.
        """
        return [f.de_duplicate() for f in factory.make_factors(self.collection, self.element, parameterized)]

    def generate_range(self, num_values: int | None = None) -> None:
        """Recompute the range and, if it changed, the variable.

        Dependencies that are not in the collection are treated as star. This
        does not touch any other component and does not expand anything.

        Args:
            num_values: Sample budget for continuous elements.
        """
        new_range = compute_range(self, num_values)
        if new_range.differs_from(self.range):
            assert self.range.regular_values <= new_range.regular_values, (
                f"range of {self.element.name} lost values: "
                f"{set(self.range.regular_values - new_range.regular_values)!r}"
            )
            logger.debug("Range of %s changed: %r -> %r", self.element.name, self.range, new_range)
            variable = Variable(new_range)
            with self.collection.lock:
                self.range = new_range
                self.set_variable(variable)
        self._update_status()

    def _dependencies(self) -> list[ProblemComponent | None]:
        return [self.collection.components.get(arg) for arg in self.element.args]

    def _enumeration_complete(self) -> bool:
        if not self.element.enumerable:
            return False
        return all(dep is not None and dep.fully_enumerated for dep in self._dependencies())

    def _refinement_complete(self) -> bool:
        return all(dep is not None and dep.fully_refined for dep in self._dependencies())

    def _update_status(self) -> None:
        if not self.fully_enumerated and not self.range.has_star and self._enumeration_complete():
            self.fully_enumerated = True
            logger.debug("%s fully enumerated", self.element.name)
        if self.fully_enumerated and not self.fully_refined and self._refinement_complete():
            self.fully_refined = True
            logger.debug("%s fully refined", self.element.name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.element.name}, range={self.range!r})"


class ApplyComponent(ProblemComponent):
    """Component for an Apply; caches function results across range and factor passes."""

    def __init__(self, problem: Problem, element: Apply) -> None:
        super().__init__(problem, element)
        self._apply_map: dict[tuple[Any, ...], Any] = {}

    def get_map(self) -> dict[tuple[Any, ...], Any]:
        return self._apply_map

    def set_map(self, mapping: dict[tuple[Any, ...], Any]) -> None:
        self._apply_map = mapping


class ExpandableComponent(ProblemComponent):
    """A component whose structure depends on the value of a governing parent.

    Args:
        problem: Owning problem.
        parent: Element according to whose values this component is expanded.
        element: Element this component corresponds to.
    """

    def __init__(self, problem: Problem, parent: Element, element: Element) -> None:
        super().__init__(problem, element)
        self.parent = parent
        self.subproblems: dict[Any, NestedProblem] = {}

    @property
    def expand_function(self) -> Callable[[Any], Element]:
        raise NotImplementedError

    def parent_range(self) -> ValueSet | None:
        """Current range of the parent, or None if the parent is not registered."""
        component = self.collection.components.get(self.parent)
        return None if component is None else component.range

    def expand(self) -> None:
        """Expand every parent value in the parent's current range that is not yet expanded."""
        parent_range = self.parent_range()
        if parent_range is None:
            return
        unexpanded = [value for value in ordered(parent_range.regular_values) if value not in self.subproblems]
        for parent_value in unexpanded:
            self.expand_value(parent_value)

    def expand_value(self, parent_value: Any) -> None:
        """Expand for a single parent value."""
        raise NotImplementedError

    def _refinement_complete(self) -> bool:
        return super()._refinement_complete() and all(sub.fully_refined for sub in self.subproblems.values())


class ChainComponent(ExpandableComponent):
    """A component for a chain element.

    Attributes:
        chain: The chain element.
        elements_created: Context elements of the chain already placed in a
            subproblem; each is added to exactly one subproblem.
        actual_subproblem_variables: Per parent value, the variable that stands
            for the branch outcome in this problem's factors.
    """

    def __init__(self, problem: Problem, chain: Chain) -> None:
        super().__init__(problem, chain.parent, chain)
        self.chain = chain
        self.elements_created: set[Element] = set(chain.universe.context_contents(chain))
        self.actual_subproblem_variables: dict[Any, Variable] = {}

    @property
    def expand_function(self) -> Callable[[Any], Element]:
        return self.chain.get

    def generate_range(self, num_values: int | None = None) -> None:
        """Generate the range as usual, then the actual variables of every subproblem.

        Subproblems are described with formal variables. A target defined
        inside the chain is a different quantity in every branch, so it gets a
        fresh variable with the same range. A target that is global to the
        subproblem is the same quantity every time, so its own variable is used.
        """
        super().generate_range(num_values)
        actual: dict[Any, Variable] = {}
        for parent_value, subproblem in self.subproblems.items():
            formal = factory.get_variable(self.collection, subproblem.target)
            if subproblem.is_global(formal):
                actual[parent_value] = formal
            else:
                actual[parent_value] = factory.make_variable(self.collection, formal.value_set)
        self.actual_subproblem_variables = actual

    def expand_value(self, parent_value: Any) -> None:
        """Create, or fetch, the subproblem for ``parent_value``.

        Chain context elements that have not been placed in any subproblem yet
        are added to this one.
        """
        parent_range = self.parent_range()
        assert parent_range is None or parent_value in parent_range.regular_values, (
            f"{parent_value!r} is not in the current range of {self.parent.name}"
        )
        subproblem = self.collection.expansion(self, self.chain.chain_function, parent_value)
        remaining = [el for el in self.chain.universe.context_contents(self.chain) if el not in self.elements_created]
        for element in remaining:
            subproblem.add(element)
        self.elements_created.update(remaining)
        self.subproblems[parent_value] = subproblem
        logger.debug(
            "Expanded %s for %r: %d new context element(s)", self.element.name, parent_value, len(remaining)
        )

    @property
    def all_subproblems_eliminated_completely(self) -> bool:
        """True if every subproblem is solved, its target is not global, and its solution uses no globals.

        When this holds, the caller can combine the subproblem solutions with a
        dedicated chain factor instead of raising them into this problem.
        """
        for subproblem in self.subproblems.values():
            if not subproblem.solved:
                return False
            if self.collection[subproblem.target].problem is not subproblem:
                return False
            for factor in subproblem.solution:
                for variable in factor.variables:
                    component = self.collection.variable_to_component.get(variable)
                    if component is None or not subproblem.owns(component):
                        return False
        return True

    def _enumeration_complete(self) -> bool:
        parent_range = self.parent_range()
        if parent_range is None or parent_range.has_star:
            return False
        if any(value not in self.subproblems for value in parent_range.regular_values):
            return False
        targets = [self.collection.components.get(sub.target) for sub in self.subproblems.values()]
        return super()._enumeration_complete() and all(t is not None and t.fully_enumerated for t in targets)

    def _refinement_complete(self) -> bool:
        targets = [self.collection.components.get(sub.target) for sub in self.subproblems.values()]
        return super()._refinement_complete() and all(t is not None and t.fully_refined for t in targets)


class MakeArrayComponent(ExpandableComponent):
    """A component for a MakeArray element.

    Items live directly in the array's own problem; there is no nested problem
    per item, so ``subproblems`` stays empty.

    Attributes:
        make_array: The MakeArray element.
        max_expanded: Number of items expanded so far. Never decreases.
    """

    def __init__(self, problem: Problem, make_array: MakeArray) -> None:
        super().__init__(problem, make_array.num_items, make_array)
        self.make_array = make_array
        self.max_expanded = 0

    @property
    def expand_function(self) -> Callable[[int], Element]:
        return self.make_array.item

    def expand_value(self, parent_value: int) -> None:
        """Ensure the first ``parent_value`` items are in the collection.

        Newly needed items are added to this component's problem.
        """
        for index in range(self.max_expanded, parent_value):
            item = self.make_array.item(index)
            if item not in self.collection:
                self.problem.add(item)
        if parent_value > self.max_expanded:
            logger.debug("Expanded %s from %d to %d items", self.element.name, self.max_expanded, parent_value)
        self.max_expanded = max(self.max_expanded, parent_value)

    def expand(self) -> None:
        """Expand up to the largest count in the range of the number of items."""
        parent_range = self.parent_range()
        if parent_range is not None and parent_range.regular_values:
            self.expand_value(max(parent_range.regular_values))

    def _enumeration_complete(self) -> bool:
        parent_range = self.parent_range()
        if parent_range is None or parent_range.has_star:
            return False
        needed = max(parent_range.regular_values, default=0)
        return self.max_expanded >= needed and super()._enumeration_complete()


def make_component(problem: Problem, element: Element) -> ProblemComponent:
    """Create the component kind matching ``element``."""
    if isinstance(element, Chain):
        return ChainComponent(problem, element)
    if isinstance(element, MakeArray):
        return MakeArrayComponent(problem, element)
    if isinstance(element, Apply):
        return ApplyComponent(problem, element)
    return ProblemComponent(problem, element)


__all__ = [
    "ApplyComponent",
    "ChainComponent",
    "ExpandableComponent",
    "MakeArrayComponent",
    "ProblemComponent",
    "make_component",
]
