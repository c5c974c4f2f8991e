from .valueset_class import STAR, ValueSet
from .variable_class import Variable
from .factor_class import Bounds, Factor
from .errors import UnsupportedModelError
from .element_class import (
    Apply,
    Beta,
    Chain,
    Constant,
    Element,
    Flip,
    ItemArray,
    MakeArray,
    Normal,
    Select,
    Universe,
)
from .component_class import (
    ApplyComponent,
    ChainComponent,
    ExpandableComponent,
    MakeArrayComponent,
    ProblemComponent,
)
from .problem_class import ComponentCollection, NestedProblem, Problem
from .strategy import RefiningStrategy

__all__ = [
    "STAR",
    "Apply",
    "ApplyComponent",
    "Beta",
    "Bounds",
    "Chain",
    "ChainComponent",
    "ComponentCollection",
    "Constant",
    "Element",
    "ExpandableComponent",
    "Factor",
    "Flip",
    "ItemArray",
    "MakeArray",
    "MakeArrayComponent",
    "NestedProblem",
    "Normal",
    "Problem",
    "ProblemComponent",
    "RefiningStrategy",
    "Select",
    "UnsupportedModelError",
    "Universe",
    "ValueSet",
    "Variable",
]
