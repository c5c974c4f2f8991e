"""Exceptions raised by the structinfer collaborators."""
from __future__ import annotations


class UnsupportedModelError(ValueError):
    """A model construct the range or factor services cannot handle.

    Raised, for example, for a continuous element when no positive sample
    budget is available, or for an element kind with no range or factor rule.
    The decomposition core lets it propagate unchanged.
    """
