"""Immutable range snapshots with an optional unknown-value marker.

A ``ValueSet`` holds the regular values enumerated so far for an element plus a
flag saying whether some further, unenumerated value may exist. The unknown
value is written ``*`` and represented by the ``STAR`` sentinel when a range is
laid out as a sequence of extended values.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from .utils import ordered


class _Star:
    """Singleton standing for any value not otherwise enumerated."""

    _instance: _Star | None = None

    def __new__(cls) -> _Star:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "*"

    def __reduce__(self) -> str:
        return "STAR"


STAR = _Star()


@dataclass(frozen=True)
class ValueSet:
    """Immutable domain snapshot.

    Attributes:
        regular_values: Concrete values enumerated so far.
        has_star: True if an additional, unenumerated value may exist.
    """

    regular_values: frozenset = frozenset()
    has_star: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.regular_values, frozenset):
            object.__setattr__(self, "regular_values", frozenset(self.regular_values))
        if STAR in self.regular_values:
            raise ValueError("STAR cannot be a regular value; use has_star instead")

    @classmethod
    def with_star(cls, values: Iterable[Any] = ()) -> ValueSet:
        return cls(frozenset(values), True)

    @classmethod
    def without_star(cls, values: Iterable[Any] = ()) -> ValueSet:
        return cls(frozenset(values), False)

    @property
    def xvalues(self) -> tuple[Any, ...]:
        """Extended values: regular values in stable order, then STAR if present."""
        values = tuple(ordered(self.regular_values))
        return values + (STAR,) if self.has_star else values

    def union(self, other: ValueSet) -> ValueSet:
        return ValueSet(self.regular_values | other.regular_values, self.has_star or other.has_star)

    def add_star(self) -> ValueSet:
        return self if self.has_star else ValueSet(self.regular_values, True)

    def differs_from(self, other: ValueSet) -> bool:
        return self.has_star != other.has_star or self.regular_values != other.regular_values

    def __contains__(self, value: object) -> bool:
        if value is STAR:
            return self.has_star
        return value in self.regular_values

    def __iter__(self) -> Iterator[Any]:
        return iter(self.xvalues)

    def __len__(self) -> int:
        return len(self.regular_values) + (1 if self.has_star else 0)

    def __repr__(self) -> str:
        inner = ", ".join(repr(v) for v in self.xvalues)
        return f"ValueSet({{{inner}}})"


__all__ = ["STAR", "ValueSet"]
