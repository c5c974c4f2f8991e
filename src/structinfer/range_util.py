"""Range computation for problem components.

``compute_range`` derives a candidate ``ValueSet`` for a component from its
element kind and the current ranges of its dependencies. A dependency that is
not registered in the component collection contributes only the unknown value
``*``; it is never an error.
"""
from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING, Any, Sequence

from .element_class import Apply, Atomic, Chain, Continuous, Element, MakeArray
from .errors import UnsupportedModelError
from .registry import solver_default
from .valueset_class import ValueSet

if TYPE_CHECKING:
    from .component_class import ProblemComponent
    from .problem_class import ComponentCollection

logger = logging.getLogger(__name__)


def argument_range(collection: ComponentCollection, element: Element) -> ValueSet:
    """Current range of a dependency, or star-only if it is not registered."""
    if element in collection:
        return collection[element].range
    return ValueSet.with_star()


def apply_value(collection: ComponentCollection, element: Apply, values: Sequence[Any]) -> Any:
    """Evaluate an Apply on regular argument values, reusing its component's apply map."""
    key = tuple(values)
    component = collection.components.get(element)
    cache = component.get_map() if component is not None and hasattr(component, "get_map") else None
    if cache is not None and key in cache:
        return cache[key]
    result = element.fn(*key)
    if cache is not None:
        cache[key] = result
    return result


def sample_budget(num_values: int | None) -> int:
    """Resolve the number of samples to draw for a continuous element."""
    budget = num_values if num_values is not None else solver_default("num_samples_from_atomics")
    if budget is None or int(budget) <= 0:
        raise UnsupportedModelError(
            "Continuous elements need a positive sample budget; "
            f"got {budget!r} and no usable 'num_samples_from_atomics' default"
        )
    return int(budget)


def compute_range(component: ProblemComponent, num_values: int | None = None) -> ValueSet:
    """Compute a candidate range for ``component``.

    Args:
        component: The component whose element's range is wanted.
        num_values: Sample budget for continuous atomic elements. Ignored for
            every other kind.

    Returns:
        The candidate ValueSet. The component itself is not modified.

    Raises:
        UnsupportedModelError: For continuous elements without a positive
            sample budget, and for element kinds with no range rule.
    """
    element = component.element
    collection = component.problem.collection

    if isinstance(element, Chain):
        return _chain_range(component, collection)
    if isinstance(element, MakeArray):
        return _make_array_range(component, collection)
    if isinstance(element, Apply):
        return _apply_range(element, collection)
    if isinstance(element, Continuous):
        samples = collection.samples(element, sample_budget(num_values))
        # Values sampled earlier stay in the range even if the budget shrinks.
        return ValueSet.without_star(component.range.regular_values.union(samples))
    if isinstance(element, Atomic):
        return ValueSet.without_star(element.support)
    raise UnsupportedModelError(f"No range rule for element kind {type(element).__name__} ({element.name})")


def _apply_range(element: Apply, collection: ComponentCollection) -> ValueSet:
    arg_ranges = [argument_range(collection, arg) for arg in element.args]
    has_star = any(r.has_star for r in arg_ranges)
    values = {
        apply_value(collection, element, combo)
        for combo in itertools.product(*(r.regular_values for r in arg_ranges))
    }
    return ValueSet(frozenset(values), has_star)


def _chain_range(component: ProblemComponent, collection: ComponentCollection) -> ValueSet:
    # Unexpanded parent values contribute star; expanded ones contribute their target's range.
    parent_range = argument_range(collection, component.element.parent)
    has_star = parent_range.has_star
    values: set[Any] = set()
    for parent_value in parent_range.regular_values:
        subproblem = component.subproblems.get(parent_value)
        if subproblem is None:
            has_star = True
            continue
        target_range = argument_range(collection, subproblem.target)
        values |= target_range.regular_values
        has_star = has_star or target_range.has_star
    return ValueSet(frozenset(values), has_star)


def _make_array_range(component: ProblemComponent, collection: ComponentCollection) -> ValueSet:
    make_array = component.element
    count_range = argument_range(collection, make_array.num_items)
    has_star = count_range.has_star
    values = set()
    for count in count_range.regular_values:
        if count <= component.max_expanded:
            values.add(make_array.array(count))
        else:
            has_star = True
    return ValueSet(frozenset(values), has_star)


__all__ = ["apply_value", "argument_range", "compute_range", "sample_budget"]
