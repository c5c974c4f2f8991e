import pytest

from structinfer import (
    Apply,
    Chain,
    ChainComponent,
    Constant,
    Factor,
    Flip,
    Normal,
    Problem,
    Select,
    ValueSet,
)


def _refine_subproblems(component: ChainComponent) -> None:
    for subproblem in component.subproblems.values():
        for inner in subproblem.components:
            inner.generate_range()
        component.collection[subproblem.target].generate_range()
    component.generate_range()


def _local_chain():
    coin = Flip(0.5, "coin")

    def branch(heads):
        base = Select({1: 0.5, 2: 0.5})
        return Apply(lambda v: v * 10 if heads else -v, base)

    return coin, Chain(coin, branch, "chain")


def _expanded(coin, chain, *extra):
    problem = Problem(targets=[coin, *extra, chain])
    for element in (coin, *extra):
        problem.collection[element].generate_range()
    component = problem.collection[chain]
    component.generate_range()
    component.expand()
    _refine_subproblems(component)
    return problem, component


def test_chain_range_is_star_until_expanded(universe) -> None:
    coin, chain = _local_chain()
    problem = Problem(targets=[coin, chain])
    problem.collection[coin].generate_range()
    component = problem.collection[chain]

    component.generate_range()
    assert component.range == ValueSet.with_star()
    assert component.subproblems == {}

    component.expand()
    _refine_subproblems(component)
    assert component.range == ValueSet.without_star({10, 20, -1, -2})
    assert component.fully_enumerated


def test_expand_is_idempotent(universe) -> None:
    coin, chain = _local_chain()
    problem, component = _expanded(coin, chain)
    first = dict(component.subproblems)

    component.expand()

    assert component.subproblems.keys() == first.keys() == {False, True}
    for key, subproblem in first.items():
        assert component.subproblems[key] is subproblem


def test_expansion_is_memoized_per_parent_value(universe) -> None:
    coin, chain = _local_chain()
    problem, component = _expanded(coin, chain)
    collection = problem.collection

    again = collection.expansion(component, chain.chain_function, True)
    other = collection.expansion(component, chain.chain_function, False)

    assert again is component.subproblems[True]
    assert other is component.subproblems[False]
    assert again is not other


def test_context_elements_are_added_to_exactly_one_subproblem(universe) -> None:
    coin, chain = _local_chain()
    problem, component = _expanded(coin, chain)
    contents = universe.context_contents(chain)

    assert len(contents) == 4
    assert component.elements_created == set(contents)
    for element in contents:
        owners = [sub for sub in component.subproblems.values() if sub.owns(problem.collection[element])]
        assert len(owners) == 1
    for subproblem in component.subproblems.values():
        assert len(subproblem.components) == 2

    component.expand_value(True)
    assert sum(len(sub.components) for sub in component.subproblems.values()) == 4


def test_existing_context_elements_are_not_re_added(universe) -> None:
    coin, chain = _local_chain()
    chain.get(True)
    problem = Problem(targets=[coin, chain])
    problem.collection[coin].generate_range()
    component = problem.collection[chain]

    assert component.elements_created == set(universe.context_contents(chain))
    component.expand()

    # The target is still placed in its subproblem even though it existed beforehand.
    assert len(component.subproblems[True].components) == 1
    assert len(component.subproblems[False].components) == 2


def test_expand_after_parent_growth_adds_only_new_values(universe) -> None:
    noise = Normal(0.0, 1.0, "noise")
    chain = Chain(noise, lambda x: Constant(x > 0))
    problem = Problem(targets=[noise, chain])
    parent = problem.collection[noise]
    component = problem.collection[chain]

    parent.generate_range(2)
    component.expand()
    first = dict(component.subproblems)

    parent.generate_range(5)
    component.expand()

    assert len(first) == 2
    assert len(component.subproblems) == 5
    assert set(first) < set(component.subproblems)
    for parent_value, subproblem in first.items():
        assert component.subproblems[parent_value] is subproblem
    assert set(component.subproblems) == parent.range.regular_values


def test_expanding_a_value_outside_the_parent_range_is_a_defect(universe) -> None:
    coin, chain = _local_chain()
    problem = Problem(targets=[coin, chain])
    problem.collection[coin].generate_range()

    with pytest.raises(AssertionError):
        problem.collection[chain].expand_value("sideways")


def test_global_target_shares_the_outer_variable(universe) -> None:
    outside = Select({"a": 0.5, "b": 0.5}, "outside")
    coin = Flip(0.5, "coin")
    chain = Chain(coin, lambda heads: outside if heads else Constant("c"))
    problem, component = _expanded(coin, chain, outside)
    collection = problem.collection

    shared = component.actual_subproblem_variables[True]
    private = component.actual_subproblem_variables[False]
    local_target = collection[chain.get(False)]

    assert shared is collection[outside].variable
    assert component.subproblems[True].components == []
    assert private is not local_target.variable
    assert private.value_set == local_target.variable.value_set
    assert component.range == ValueSet.without_star({"a", "b", "c"})


def test_private_variables_are_fresh_for_each_branch(universe) -> None:
    coin, chain = _local_chain()
    problem, component = _expanded(coin, chain)

    variables = component.actual_subproblem_variables
    assert variables[True] is not variables[False]
    for parent_value, subproblem in component.subproblems.items():
        formal = problem.collection[subproblem.target].variable
        assert variables[parent_value] is not formal
        assert variables[parent_value].value_set == formal.value_set


def test_chain_factors_select_the_branch_outcome(universe) -> None:
    coin, chain = _local_chain()
    problem, component = _expanded(coin, chain)
    coin_var = problem.collection[coin].variable

    factors = component.non_constraint_factors()

    assert len(factors) == 2
    heads = component.actual_subproblem_variables[True]
    (heads_factor,) = [f for f in factors if heads in f.variables]
    assert heads_factor.variables == (coin_var, heads, component.variable)
    assert heads_factor.get_values((True, 10, 10)) == 1.0
    assert heads_factor.get_values((True, 10, 20)) == 0.0
    assert heads_factor.get_values((False, 10, -1)) == 1.0


def test_elimination_check_requires_solved_subproblems(universe) -> None:
    coin, chain = _local_chain()
    problem, component = _expanded(coin, chain)

    assert not component.all_subproblems_eliminated_completely

    component.subproblems[False].record_solution(
        problem.collection[component.subproblems[False].target].non_constraint_factors()
    )
    assert not component.all_subproblems_eliminated_completely


def test_elimination_check_rejects_solutions_with_globals(universe) -> None:
    outside = Select({1: 0.5, 2: 0.5}, "outside")
    coin, chain = _local_chain()
    problem, component = _expanded(coin, chain, outside)
    outside_var = problem.collection[outside].variable

    for subproblem in component.subproblems.values():
        target_var = problem.collection[subproblem.target].variable
        subproblem.record_solution([Factor((target_var,), {(0,): 1.0})])
    assert component.all_subproblems_eliminated_completely

    heads = component.subproblems[True]
    heads_target = problem.collection[heads.target].variable
    heads.record_solution([Factor((heads_target, outside_var), {(0, 0): 1.0})])
    assert not component.all_subproblems_eliminated_completely


def test_elimination_check_rejects_global_targets(universe) -> None:
    outside = Select({"a": 0.5, "b": 0.5}, "outside")
    coin = Flip(0.5, "coin")
    chain = Chain(coin, lambda heads: outside if heads else Constant("c"))
    problem, component = _expanded(coin, chain, outside)

    component.subproblems[True].record_solution([])
    tails = component.subproblems[False]
    tails.record_solution(problem.collection[tails.target].non_constraint_factors())

    assert not component.all_subproblems_eliminated_completely
