"""Shared helpers for the structinfer package.

This module provides common utility functions for:
- YAML file loading
- Deterministic ordering of arbitrary hashable values
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import yaml


def load_yaml(path: Path | str) -> dict:
    """Load and parse a YAML file into a dictionary.

    Args:
        path: Path to YAML file.

    Returns:
        Dictionary containing parsed YAML content.
        Returns empty dict if file is empty or contains only None.

    Raises:
        FileNotFoundError: If path doesn't exist.
        yaml.YAMLError: If YAML parsing fails.
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def ordered(values: Iterable[Any]) -> list[Any]:
    """Return values in a stable order.

    Values that support ``<`` among themselves are sorted naturally; mixed or
    unorderable values fall back to ordering by type name and ``repr``.

    Example:
        >>> ordered({3, 1, 2})
        [1, 2, 3]
        >>> ordered({"b", 1})
        [1, 'b']
    """
    items = list(values)
    try:
        return sorted(items)
    except TypeError:
        return sorted(items, key=lambda item: (type(item).__name__, repr(item)))
