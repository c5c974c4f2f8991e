"""Factor and variable construction for problem components.

The factory turns an element and the current variables of the components it
touches into structural factors:

- constraint factors carry the element's evidence; the unknown value gets
  weight 1 for an upper bound and 0 for a lower bound,
- non-constraint factors express the element's relationship to its
  dependencies (atomic distributions, deterministic functions, chain
  selection, array sizes).
"""
from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

from .element_class import Apply, Atomic, Chain, Continuous, Element, Flip, MakeArray, Parameter
from .errors import UnsupportedModelError
from .factor_class import Factor
from .range_util import apply_value
from .valueset_class import STAR, ValueSet
from .variable_class import Variable

if TYPE_CHECKING:
    from .problem_class import ComponentCollection


def make_variable(collection: ComponentCollection, value_set: ValueSet) -> Variable:
    """Mint a fresh variable over ``value_set``. It is not registered to any component."""
    return Variable(value_set)


def get_variable(collection: ComponentCollection, element: Element) -> Variable:
    """Current variable of ``element``, or a star-only stand-in if it is not registered."""
    if element in collection:
        return collection[element].variable
    return collection.star_variable(element)


def replace_variable(factor: Factor, old: Variable, new: Variable) -> Factor:
    return factor.replace_variable(old, new)


def make_constraint_factors(collection: ComponentCollection, element: Element, upper: bool = False) -> list[Factor]:
    """Evidence factors for ``element``; empty when it carries no evidence."""
    if not element.has_evidence:
        return []
    variable = get_variable(collection, element)
    factor = Factor((variable,))
    for idx, value in enumerate(variable.range):
        if value is STAR:
            factor.set((idx,), 1.0 if upper else 0.0)
        else:
            factor.set((idx,), element.constraint_weight(value))
    return [factor]


def make_factors(collection: ComponentCollection, element: Element, parameterized: bool = False) -> list[Factor]:
    """Non-constraint factors for ``element``.

    Args:
        collection: Component collection holding the current variables.
        element: Element to build factors for.
        parameterized: Use the point estimate of parameter arguments instead of
            enumerating their range.

    Raises:
        UnsupportedModelError: For element kinds with no factor rule.
    """
    if isinstance(element, Chain):
        return _chain_factors(collection, element)
    if isinstance(element, MakeArray):
        return _make_array_factors(collection, element)
    if isinstance(element, Apply):
        return _apply_factors(collection, element)
    if isinstance(element, Flip) and isinstance(element.p, Element):
        return _compound_flip_factors(collection, element, parameterized)
    if isinstance(element, Atomic):
        return _atomic_factors(collection, element)
    raise UnsupportedModelError(f"No factor rule for element kind {type(element).__name__} ({element.name})")


def _atomic_factors(collection: ComponentCollection, element: Atomic) -> list[Factor]:
    variable = get_variable(collection, element)
    factor = Factor((variable,))
    regular = [(idx, value) for idx, value in enumerate(variable.range) if value is not STAR]
    for idx, value in regular:
        if isinstance(element, Continuous):
            # Sampled values stand in for the density with equal weight.
            factor.set((idx,), 1.0 / len(regular))
        else:
            factor.set((idx,), element.probability(value))
    return [factor]


def _compound_flip_factors(collection: ComponentCollection, element: Flip, parameterized: bool) -> list[Factor]:
    flip_var = get_variable(collection, element)
    true_idx = flip_var.index_of(True)
    false_idx = flip_var.index_of(False)
    if parameterized and isinstance(element.p, Parameter):
        factor = Factor((flip_var,))
        estimate = element.p.map_value
        if true_idx is not None:
            factor.set((true_idx,), estimate)
        if false_idx is not None:
            factor.set((false_idx,), 1.0 - estimate)
        return [factor]

    prob_var = get_variable(collection, element.p)
    factor = Factor((prob_var, flip_var))
    for p_idx, p_value in enumerate(prob_var.range):
        if p_value is STAR:
            continue
        if true_idx is not None:
            factor.set((p_idx, true_idx), float(p_value))
        if false_idx is not None:
            factor.set((p_idx, false_idx), 1.0 - float(p_value))
    return [factor]


def _apply_factors(collection: ComponentCollection, element: Apply) -> list[Factor]:
    arg_vars = [get_variable(collection, arg) for arg in element.args]
    result_var = get_variable(collection, element)
    star_idx = result_var.index_of(STAR)
    factor = Factor(tuple(arg_vars) + (result_var,))
    for combo in itertools.product(*(tuple(enumerate(var.range)) for var in arg_vars)):
        indices = tuple(idx for idx, _ in combo)
        values = [value for _, value in combo]
        if any(value is STAR for value in values):
            result_idx = star_idx
        else:
            result_idx = result_var.index_of(apply_value(collection, element, values))
            if result_idx is None:
                # The result range is behind the argument ranges.
                result_idx = star_idx
        if result_idx is not None:
            factor.set(indices + (result_idx,), 1.0)
    return [factor]


def _chain_factors(collection: ComponentCollection, element: Chain) -> list[Factor]:
    """One selector factor per parent value.

    When the parent takes the selector's value, the chain must equal the
    branch's actual outcome variable (or be star if the branch is not expanded);
    otherwise the factor places no restriction.
    """
    if element not in collection:
        return []
    component = collection[element]
    parent_var = get_variable(collection, element.parent)
    chain_var = component.variable
    factors: list[Factor] = []
    for p_idx, p_value in enumerate(parent_var.range):
        actual = None if p_value is STAR else component.actual_subproblem_variables.get(p_value)
        if actual is None:
            factor = Factor((parent_var, chain_var))
            for other_idx, c_idx in itertools.product(range(parent_var.size), range(chain_var.size)):
                if other_idx != p_idx or chain_var.range[c_idx] is STAR:
                    factor.set((other_idx, c_idx), 1.0)
        else:
            factor = Factor((parent_var, actual, chain_var))
            for other_idx, a_idx, c_idx in itertools.product(
                range(parent_var.size), range(actual.size), range(chain_var.size)
            ):
                if other_idx != p_idx or actual.range[a_idx] == chain_var.range[c_idx]:
                    factor.set((other_idx, a_idx, c_idx), 1.0)
        factors.append(factor)
    return factors


def _make_array_factors(collection: ComponentCollection, element: MakeArray) -> list[Factor]:
    count_var = get_variable(collection, element.num_items)
    array_var = get_variable(collection, element)
    array_star = array_var.index_of(STAR)
    factor = Factor((count_var, array_var))
    for n_idx, count in enumerate(count_var.range):
        matched = False
        if count is not STAR:
            for a_idx, array in enumerate(array_var.range):
                if array is not STAR and len(array) == count:
                    factor.set((n_idx, a_idx), 1.0)
                    matched = True
        if not matched and array_star is not None:
            factor.set((n_idx, array_star), 1.0)
    return [factor]


__all__ = [
    "get_variable",
    "make_constraint_factors",
    "make_factors",
    "make_variable",
    "replace_variable",
]
