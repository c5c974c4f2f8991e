import math
import threading

import pytest

from structinfer import (
    STAR,
    Apply,
    ApplyComponent,
    Beta,
    Bounds,
    Flip,
    Normal,
    Problem,
    Select,
    UnsupportedModelError,
    ValueSet,
)


def _registered(problem: Problem, *elements):
    components = [problem.add(element) for element in elements]
    for component in components:
        component.generate_range()
    return components


def test_new_component_has_star_only_range(universe) -> None:
    element = Select({"a": 0.5, "b": 0.5})
    component = Problem(targets=[element]).collection[element]

    assert component.range == ValueSet.with_star()
    assert component.variable.value_set == component.range
    assert not component.fully_enumerated
    assert not component.fully_refined


def test_generate_range_swaps_range_and_variable_together(universe) -> None:
    element = Select({"a": 0.5, "b": 0.5})
    problem = Problem(targets=[element])
    component = problem.collection[element]
    old_variable = component.variable

    component.generate_range()

    assert component.range == ValueSet.without_star({"a", "b"})
    assert component.variable is not old_variable
    assert component.variable.value_set == component.range
    assert problem.collection.variable_to_component[component.variable] is component
    assert problem.collection.variable_to_component[old_variable] is component
    assert component.fully_enumerated
    assert component.fully_refined


def test_unchanged_range_keeps_variable_identity(universe) -> None:
    element = Select({1: 0.2, 2: 0.8})
    problem = Problem(targets=[element])
    component = problem.collection[element]
    component.generate_range()
    variable = component.variable

    component.generate_range()
    component.generate_range()

    assert component.variable is variable


def test_range_and_variable_swap_waits_for_the_collection_lock(universe) -> None:
    element = Select({"a": 0.5, "b": 0.5})
    problem = Problem(targets=[element])
    component = problem.collection[element]
    old_variable = component.variable

    with problem.collection.lock:
        worker = threading.Thread(target=component.generate_range)
        worker.start()
        worker.join(timeout=0.2)
        assert component.range_and_variable() == (ValueSet.with_star(), old_variable)
    worker.join()

    current_range, current_variable = component.range_and_variable()
    assert current_range == ValueSet.without_star({"a", "b"})
    assert current_variable is not old_variable
    assert current_variable.value_set == current_range


def test_unregistered_dependency_is_treated_as_star(universe) -> None:
    base = Select({1: 0.5, 2: 0.5})
    doubled = Apply(lambda v: v * 2, base)
    problem = Problem(targets=[doubled])
    component = problem.collection[doubled]

    component.generate_range()
    assert component.range == ValueSet.with_star()
    assert not component.fully_enumerated

    _registered(problem, base)
    component.generate_range()
    assert component.range == ValueSet.without_star({2, 4})
    assert component.fully_enumerated


def test_range_growth_is_monotone(universe) -> None:
    base = Normal(0.0, 1.0)
    shifted = Apply(lambda v: v + 1.0, base)
    problem = Problem(targets=[base, shifted])
    base_comp = problem.collection[base]
    shifted_comp = problem.collection[shifted]

    history = []
    for budget in (2, 5, 3, 5):
        base_comp.generate_range(budget)
        shifted_comp.generate_range()
        history.append(shifted_comp.range)

    for earlier, later in zip(history, history[1:]):
        assert earlier.regular_values <= later.regular_values
    assert len(base_comp.range.regular_values) == 5
    assert not base_comp.range.has_star
    assert not base_comp.fully_enumerated


def test_continuous_element_without_budget_is_unsupported(universe) -> None:
    element = Normal(1.0, 2.0)
    component = Problem(targets=[element]).collection[element]

    with pytest.raises(UnsupportedModelError):
        component.generate_range(0)
    assert component.range == ValueSet.with_star()


def test_apply_component_caches_function_results(universe) -> None:
    calls = []

    def square(v):
        calls.append(v)
        return v * v

    base = Select({-1: 0.5, 1: 0.5, 2: 0.0})
    squared = Apply(square, base)
    problem = Problem(targets=[base, squared])
    base_comp, squared_comp = _registered(problem, base, squared)

    assert isinstance(squared_comp, ApplyComponent)
    assert squared_comp.range == ValueSet.without_star({1, 4})
    squared_comp.non_constraint_factors()
    squared_comp.generate_range()
    assert sorted(calls) == [-1, 1, 2]
    assert squared_comp.get_map() == {(-1,): 1, (1,): 1, (2,): 4}


def test_constraint_factors_bound_the_unknown_value(universe) -> None:
    base = Select({1: 0.5, 2: 0.5})
    shifted = Apply(lambda v: v + 1, base)
    shifted.add_constraint(lambda v: 0.5 if v == 2 else 1.0)
    problem = Problem(targets=[shifted])
    component = problem.collection[shifted]
    component.generate_range()

    (lower,) = component.constraint_factors()
    (upper,) = component.constraint_factors(Bounds.UPPER)

    assert lower.get_values((STAR,)) == 0.0
    assert upper.get_values((STAR,)) == 1.0


def test_observation_zeroes_other_values(universe) -> None:
    element = Select({"a": 0.5, "b": 0.5})
    element.observe("a")
    (component,) = _registered(Problem(), element)

    (factor,) = component.constraint_factors(Bounds.LOWER)

    assert factor.get_values(("a",)) == 1.0
    assert factor.get_values(("b",)) == 0.0


def test_no_evidence_means_no_constraint_factors(universe) -> None:
    element = Select({"a": 0.5, "b": 0.5})
    (component,) = _registered(Problem(), element)
    assert component.constraint_factors() == []
    assert component.constraint_factors(Bounds.UPPER) == []


def test_atomic_factor_carries_probabilities(universe) -> None:
    element = Select({"a": 0.25, "b": 0.75})
    (component,) = _registered(Problem(), element)

    (factor,) = component.non_constraint_factors()

    assert factor.variables == (component.variable,)
    assert math.isclose(factor.get_values(("a",)), 0.25)
    assert math.isclose(factor.get_values(("b",)), 0.75)


def test_apply_factor_drops_rows_where_repeated_argument_disagrees(universe) -> None:
    base = Select({1: 0.5, 2: 0.5})
    total = Apply(lambda x, y: x + y, base, base)
    problem = Problem()
    base_comp, total_comp = _registered(problem, base, total)

    (factor,) = total_comp.non_constraint_factors()

    assert total_comp.range == ValueSet.without_star({2, 3, 4})
    assert factor.variables == (base_comp.variable, total_comp.variable)
    assert dict(factor.items()) == {(1, 2): 1.0, (2, 4): 1.0}


def test_parameterized_flip_uses_point_estimate(universe) -> None:
    weight = Beta(3.0, 2.0)
    coin = Flip(weight)
    problem = Problem()
    weight_comp = problem.add(weight)
    coin_comp = problem.add(coin)
    weight_comp.generate_range(4)
    coin_comp.generate_range()

    (estimated,) = coin_comp.non_constraint_factors(parameterized=True)
    (enumerated,) = coin_comp.non_constraint_factors(parameterized=False)

    assert estimated.variables == (coin_comp.variable,)
    assert math.isclose(estimated.get_values((True,)), 2.0 / 3.0)
    assert enumerated.variables == (weight_comp.variable, coin_comp.variable)
    assert len(enumerated.rows) == 8
    for (p_value, outcome), value in enumerated.items():
        expected = p_value if outcome else 1.0 - p_value
        assert math.isclose(value, expected)
