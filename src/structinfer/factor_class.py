"""Structural factor representation.

Factors here are sparse tables over variables: each row is a tuple of indices
into the variables' ranges, mapped to a weight. Rows that are absent have weight
zero. Only structural operations are provided; combining factors numerically is
the solver's business.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from .variable_class import Variable


class Bounds(Enum):
    """Which side of a bound constraint factors should take for the unknown value."""

    LOWER = "lower"
    UPPER = "upper"


@dataclass(eq=False)
class Factor:
    """Sparse factor over an ordered tuple of variables.

    Attributes:
        variables: Variables of the factor; a variable may appear more than once
            until ``de_duplicate`` is called.
        rows: Map from index tuples (one index per variable) to weights.
    """

    variables: tuple[Variable, ...]
    rows: dict[tuple[int, ...], float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.variables = tuple(self.variables)

    def set(self, indices: tuple[int, ...], weight: float) -> None:
        assert len(indices) == len(self.variables), "row arity must match the factor's variables"
        self.rows[tuple(indices)] = float(weight)

    def get(self, indices: tuple[int, ...]) -> float:
        return self.rows.get(tuple(indices), 0.0)

    def get_values(self, values: tuple[Any, ...]) -> float:
        """Weight of a row given by extended values rather than indices."""
        indices = []
        for variable, value in zip(self.variables, values):
            idx = variable.index_of(value)
            if idx is None:
                return 0.0
            indices.append(idx)
        return self.get(tuple(indices))

    def items(self) -> Iterator[tuple[tuple[Any, ...], float]]:
        """Yield (extended values, weight) for every stored row."""
        for indices, weight in self.rows.items():
            yield tuple(var.range[idx] for var, idx in zip(self.variables, indices)), weight

    def de_duplicate(self) -> Factor:
        """Collapse repeated variables into one, dropping rows where the copies disagree."""
        positions: dict[Variable, list[int]] = {}
        for pos, variable in enumerate(self.variables):
            positions.setdefault(variable, []).append(pos)
        if len(positions) == len(self.variables):
            return self
        groups = list(positions.values())
        rows: dict[tuple[int, ...], float] = {}
        for indices, weight in self.rows.items():
            if any(len({indices[p] for p in group}) > 1 for group in groups):
                continue
            rows[tuple(indices[group[0]] for group in groups)] = weight
        return Factor(tuple(positions), rows)

    def replace_variable(self, old: Variable, new: Variable) -> Factor:
        """Return a copy with ``old`` substituted by ``new`` wherever it occurs."""
        if old not in self.variables:
            return self
        assert old.range == new.range, "replacement variable must have the same range"
        variables = tuple(new if var is old else var for var in self.variables)
        return Factor(variables, dict(self.rows))

    def __repr__(self) -> str:
        names = ", ".join(f"#{var.id}" for var in self.variables)
        return f"Factor([{names}], rows={len(self.rows)})"


__all__ = ["Bounds", "Factor"]
