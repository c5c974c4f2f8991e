"""Registry module for solver defaults."""
from __future__ import annotations

from pathlib import Path
from typing import Any

from ..utils import load_yaml

# Registry paths
REGISTRY_PATH = Path(__file__).resolve().parent
SOLVER_DEFAULTS_PATH = REGISTRY_PATH / "solver_defaults.yaml"

# Private caches
_SOLVER_DEFAULTS: dict[str, Any] | None = None


def load_solver_defaults() -> dict[str, Any]:
    """Load solver defaults. Args: none. Returns: dict."""
    global _SOLVER_DEFAULTS
    if _SOLVER_DEFAULTS is None:
        _SOLVER_DEFAULTS = load_yaml(SOLVER_DEFAULTS_PATH)
    return _SOLVER_DEFAULTS


def solver_default(name: str, fallback: Any = None) -> Any:
    """Return a single solver default. Args: name, fallback. Returns: value or fallback."""
    return load_solver_defaults().get(name, fallback)
