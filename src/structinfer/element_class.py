"""Minimal declarative modeling layer.

Elements are nodes of a probabilistic model graph. The decomposition core only
needs a few things from them: their dependency elements (``args``), whether
their support can be enumerated, their evidence, and for chains and arrays the
functions that build their conditional sub-structure.

Elements are created inside a ``Universe``. While a chain runs its function for
a parent value, the chain is the active *context*, so every element created by
that function is recorded as part of the chain's context contents.
"""
from __future__ import annotations

import itertools
import math
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Hashable, Iterator, Mapping

import numpy as np

_ELEMENT_IDS = itertools.count()
_NO_OBSERVATION = object()


class Universe:
    """Registry of elements and of the context each one was created in.

    Use as a context manager to make a universe the active one::

        with Universe() as universe:
            coin = Flip(0.5)
    """

    _active: ClassVar[list[Universe]] = []
    _default: ClassVar[Universe | None] = None

    def __init__(self) -> None:
        self.elements: list[Element] = []
        self._context_stack: list[Element] = []
        self._context_contents: dict[Element, list[Element]] = {}

    @classmethod
    def active(cls) -> Universe:
        """Return the innermost active universe, creating a default one if needed."""
        if cls._active:
            return cls._active[-1]
        if cls._default is None:
            cls._default = Universe()
        return cls._default

    def __enter__(self) -> Universe:
        Universe._active.append(self)
        return self

    def __exit__(self, *exc_info: object) -> None:
        Universe._active.remove(self)

    def register(self, element: Element) -> None:
        self.elements.append(element)
        if self._context_stack:
            owner = self._context_stack[-1]
            element.context = owner
            self._context_contents.setdefault(owner, []).append(element)

    def push_context(self, element: Element) -> None:
        self._context_stack.append(element)

    def pop_context(self, element: Element) -> None:
        popped = self._context_stack.pop()
        assert popped is element, f"context stack corrupted: expected {element!r}, got {popped!r}"

    def context_contents(self, element: Element) -> tuple[Element, ...]:
        """Elements created while ``element`` was the active context, in creation order."""
        return tuple(self._context_contents.get(element, ()))


class Element:
    """Base class of all model elements.

    Elements hash and compare by identity. Evidence is attached with
    ``observe`` (hard evidence) or ``add_constraint`` (soft weights).
    """

    enumerable: ClassVar[bool] = True

    def __init__(self, name: str | None = None, *, universe: Universe | None = None) -> None:
        self.universe = universe if universe is not None else Universe.active()
        self.name = name or f"{type(self).__name__.lower()}_{next(_ELEMENT_IDS)}"
        self.context: Element | None = None
        self.observation: object = _NO_OBSERVATION
        self.constraints: list[Callable[[Any], float]] = []
        self.universe.register(self)

    @property
    def args(self) -> tuple[Element, ...]:
        """Elements this element directly depends on."""
        return ()

    @property
    def has_evidence(self) -> bool:
        return self.observation is not _NO_OBSERVATION or bool(self.constraints)

    def observe(self, value: object) -> None:
        self.observation = value

    def unobserve(self) -> None:
        self.observation = _NO_OBSERVATION

    def add_constraint(self, fn: Callable[[Any], float]) -> None:
        self.constraints.append(fn)

    def constraint_weight(self, value: object) -> float:
        """Combined evidence weight of a regular value."""
        if self.observation is not _NO_OBSERVATION and value != self.observation:
            return 0.0
        weight = 1.0
        for fn in self.constraints:
            weight *= float(fn(value))
        return weight

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


class Atomic(Element):
    """Element whose support is known without looking at other ranges."""

    @property
    def support(self) -> tuple[Any, ...]:
        raise NotImplementedError

    def probability(self, value: object) -> float:
        raise NotImplementedError


class Constant(Atomic):
    def __init__(self, value: Hashable, name: str | None = None, **kwargs: Any) -> None:
        self.value = value
        super().__init__(name, **kwargs)

    @property
    def support(self) -> tuple[Any, ...]:
        return (self.value,)

    def probability(self, value: object) -> float:
        return 1.0 if value == self.value else 0.0


class Select(Atomic):
    """Discrete choice among outcomes with fixed probabilities."""

    def __init__(self, outcomes: Mapping[Hashable, float], name: str | None = None, **kwargs: Any) -> None:
        if not outcomes:
            raise ValueError("Select needs at least one outcome")
        total = float(sum(outcomes.values()))
        if not math.isfinite(total) or total <= 0.0:
            raise ValueError("Select probabilities must sum to a positive finite number")
        self.outcomes = {value: float(p) / total for value, p in outcomes.items()}
        super().__init__(name, **kwargs)

    @property
    def support(self) -> tuple[Any, ...]:
        return tuple(self.outcomes)

    def probability(self, value: object) -> float:
        return self.outcomes.get(value, 0.0)


class Flip(Atomic):
    """Boolean element; the probability may itself be an element."""

    def __init__(self, probability: float | Element, name: str | None = None, **kwargs: Any) -> None:
        if not isinstance(probability, Element):
            probability = float(probability)
            if not 0.0 <= probability <= 1.0:
                raise ValueError(f"Flip probability must be in [0, 1]; got {probability}")
        self.p = probability
        super().__init__(name, **kwargs)

    @property
    def args(self) -> tuple[Element, ...]:
        return (self.p,) if isinstance(self.p, Element) else ()

    @property
    def support(self) -> tuple[Any, ...]:
        return (False, True)

    def probability(self, value: object) -> float:
        if isinstance(self.p, Element):
            raise TypeError(f"{self!r} has an element probability; use its factor instead")
        return self.p if value is True else 1.0 - self.p


class Continuous(Atomic):
    """Atomic element with infinite support, handled by sampling."""

    enumerable: ClassVar[bool] = False

    def sample(self, rng: np.random.Generator) -> float:
        raise NotImplementedError


class Normal(Continuous):
    def __init__(self, mean: float, sd: float, name: str | None = None, **kwargs: Any) -> None:
        if sd <= 0:
            raise ValueError("Normal sd must be positive")
        self.mean = float(mean)
        self.sd = float(sd)
        super().__init__(name, **kwargs)

    def sample(self, rng: np.random.Generator) -> float:
        return float(rng.normal(self.mean, self.sd))


class Parameter(Continuous):
    """Continuous element that can stand in for itself with a point estimate."""

    @property
    def map_value(self) -> float:
        raise NotImplementedError


class Beta(Parameter):
    def __init__(self, alpha: float, beta: float, name: str | None = None, **kwargs: Any) -> None:
        if alpha <= 0 or beta <= 0:
            raise ValueError("Beta shape parameters must be positive")
        self.alpha = float(alpha)
        self.beta = float(beta)
        super().__init__(name, **kwargs)

    def sample(self, rng: np.random.Generator) -> float:
        return float(rng.beta(self.alpha, self.beta))

    @property
    def map_value(self) -> float:
        # Mode of the distribution, falling back to the mean when it is not unique.
        if self.alpha > 1 and self.beta > 1:
            return (self.alpha - 1) / (self.alpha + self.beta - 2)
        return self.alpha / (self.alpha + self.beta)


class Apply(Element):
    """Deterministic function of other elements."""

    def __init__(self, fn: Callable[..., Hashable], *arguments: Element, name: str | None = None, **kwargs: Any) -> None:
        if not arguments:
            raise ValueError("Apply needs at least one argument element")
        self.fn = fn
        self.arguments = tuple(arguments)
        super().__init__(name, **kwargs)

    @property
    def args(self) -> tuple[Element, ...]:
        return self.arguments


class Chain(Element):
    """Element whose generating element is selected by a parent's value.

    ``chain_function`` maps a parent value to the element representing that
    branch. ``get`` runs it at most once per parent value, inside this chain's
    context.
    """

    def __init__(self, parent: Element, fn: Callable[[Any], Element], name: str | None = None, **kwargs: Any) -> None:
        self.parent = parent
        self.chain_function = fn
        self._cache: dict[Any, Element] = {}
        super().__init__(name, **kwargs)

    @property
    def args(self) -> tuple[Element, ...]:
        return (self.parent,)

    def get(self, parent_value: Any) -> Element:
        result = self._cache.get(parent_value)
        if result is None:
            self.universe.push_context(self)
            try:
                result = self.chain_function(parent_value)
            finally:
                self.universe.pop_context(self)
            if not isinstance(result, Element):
                raise TypeError(f"{self!r} function returned {type(result).__name__}, expected an Element")
            self._cache[parent_value] = result
        return result


@dataclass(frozen=True)
class ItemArray:
    """Value of a MakeArray: the first ``size`` item elements."""

    size: int
    items: tuple[Element, ...]

    def __len__(self) -> int:
        return self.size

    def __getitem__(self, index: int) -> Element:
        return self.items[index]

    def __iter__(self) -> Iterator[Element]:
        return iter(self.items)

    def __lt__(self, other: ItemArray) -> bool:
        return self.size < other.size


class MakeArray(Element):
    """Variable-length collection of item elements.

    ``num_items`` is an integer-valued element; item ``i`` is created on first
    access by ``item_function(i)`` and reused afterwards.
    """

    def __init__(self, num_items: Element, item_function: Callable[[int], Element], name: str | None = None, **kwargs: Any) -> None:
        self.num_items = num_items
        self.item_function = item_function
        self._items: list[Element] = []
        super().__init__(name, **kwargs)

    @property
    def args(self) -> tuple[Element, ...]:
        return (self.num_items,)

    def item(self, index: int) -> Element:
        if index < 0:
            raise IndexError(f"{self!r} item index must be non-negative; got {index}")
        while len(self._items) <= index:
            created = self.item_function(len(self._items))
            if not isinstance(created, Element):
                raise TypeError(f"{self!r} item function returned {type(created).__name__}, expected an Element")
            self._items.append(created)
        return self._items[index]

    def array(self, size: int) -> ItemArray:
        return ItemArray(size, tuple(self.item(i) for i in range(size)))


__all__ = [
    "Apply",
    "Atomic",
    "Beta",
    "Chain",
    "Constant",
    "Continuous",
    "Element",
    "Flip",
    "ItemArray",
    "MakeArray",
    "Normal",
    "Parameter",
    "Select",
    "Universe",
]
