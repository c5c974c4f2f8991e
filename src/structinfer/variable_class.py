"""Identity-bearing variables used as the unit of factor composition."""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any

from .valueset_class import ValueSet

_VARIABLE_IDS = itertools.count()


@dataclass(eq=False)
class Variable:
    """Handle over a ValueSet.

    Two variables with equal value sets are still different variables unless
    the very same object is shared. Equality and hashing are by identity.

    Attributes:
        value_set: The domain this variable ranges over.
        id: Monotonic identifier, only used for display.
    """

    value_set: ValueSet
    id: int = field(default_factory=lambda: next(_VARIABLE_IDS))
    _range: tuple[Any, ...] = field(init=False, repr=False)
    _indices: dict[Any, int] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        # The value set is frozen, so the index layout is computed once.
        self._range = self.value_set.xvalues
        self._indices = {value: idx for idx, value in enumerate(self._range)}

    @property
    def range(self) -> tuple[Any, ...]:
        """Extended values in index order (regular values, then STAR)."""
        return self._range

    @property
    def size(self) -> int:
        return len(self._range)

    def index_of(self, value: object) -> int | None:
        """Return the index of an extended value, or None if it is outside the range."""
        try:
            return self._indices.get(value)
        except TypeError:
            return None

    def __repr__(self) -> str:
        return f"Variable#{self.id}({self.value_set!r})"


__all__ = ["Variable"]
