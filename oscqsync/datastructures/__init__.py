"""
oscqsync datastructures.

- Parameter tree: the OSCQuery namespace as a closed branch/leaf union
- Flattening: namespace tree -> flat OSC address to value mapping
"""

from __future__ import annotations

from .parameter_tree import (
    ParameterAccess,
    ParameterBranch,
    ParameterLeaf,
    ParameterNode,
    find_node,
    flatten_parameters,
    parse_parameter_tree,
)

__all__ = [
    "ParameterAccess",
    "ParameterBranch",
    "ParameterLeaf",
    "ParameterNode",
    "find_node",
    "flatten_parameters",
    "parse_parameter_tree",
]
