"""
OSCQuery namespace tree.

An OSCQuery namespace is a recursive JSON document where every node carries a
``FULL_PATH`` plus optional metadata (``ACCESS``, ``TYPE``, ``DESCRIPTION``,
``RANGE``, ...). Container nodes hold their children in ``CONTENTS``; endpoint
nodes hold their current arguments in ``VALUE``.

Here a node is exactly one of two variants:

- ``ParameterBranch``: has children, never a value
- ``ParameterLeaf``: has a value tuple (possibly empty), never children

The same types describe both the tree this process serves and the trees parsed
from peers, so serving and flattening share one model.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Any, TypeAlias

from .type_aliases import (
    JsonDict,
    NodeName,
    OscAddress,
    ParameterValue,
    TypeTag,
)

FULL_PATH_KEY = "FULL_PATH"
CONTENTS_KEY = "CONTENTS"
VALUE_KEY = "VALUE"
ACCESS_KEY = "ACCESS"
TYPE_KEY = "TYPE"
DESCRIPTION_KEY = "DESCRIPTION"

_KNOWN_KEYS = frozenset(
    {FULL_PATH_KEY, CONTENTS_KEY, VALUE_KEY, ACCESS_KEY, TYPE_KEY, DESCRIPTION_KEY}
)

ROOT_PATH: OscAddress = "/"


class ParameterAccess(IntEnum):
    """OSCQuery ACCESS attribute values."""

    NONE = 0
    READ = 1
    WRITE = 2
    READ_WRITE = 3


def _freeze(extra: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(extra or {}))


@dataclass(frozen=True, slots=True)
class ParameterLeaf:
    """Endpoint node carrying the current OSC arguments."""

    full_path: OscAddress
    value: tuple[ParameterValue, ...] = ()
    access: ParameterAccess | int | None = None
    type_tag: TypeTag | None = None
    description: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", tuple(self.value))
        object.__setattr__(self, "extra", _freeze(self.extra))

    @property
    def first_value(self) -> ParameterValue:
        return self.value[0] if self.value else None

    def to_dict(self) -> JsonDict:
        document = _metadata_dict(self)
        if self.value:
            document[VALUE_KEY] = list(self.value)
        return document


@dataclass(frozen=True, slots=True)
class ParameterBranch:
    """Container node; its children are keyed by their local name."""

    full_path: OscAddress
    children: Mapping[NodeName, ParameterNode] = field(default_factory=dict)
    access: ParameterAccess | int | None = None
    type_tag: TypeTag | None = None
    description: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "children", MappingProxyType(dict(self.children)))
        object.__setattr__(self, "extra", _freeze(self.extra))

    def child(self, name: NodeName) -> ParameterNode | None:
        return self.children.get(name)

    def to_dict(self) -> JsonDict:
        document = _metadata_dict(self)
        document[CONTENTS_KEY] = {
            name: node.to_dict() for name, node in self.children.items()
        }
        return document


ParameterNode: TypeAlias = ParameterBranch | ParameterLeaf


def _metadata_dict(node: ParameterNode) -> JsonDict:
    document: JsonDict = {}
    if node.description is not None:
        document[DESCRIPTION_KEY] = node.description
    document[FULL_PATH_KEY] = node.full_path
    if node.access is not None:
        document[ACCESS_KEY] = int(node.access)
    if node.type_tag is not None:
        document[TYPE_KEY] = node.type_tag
    document.update(node.extra)
    return document


def _child_path(parent_path: OscAddress, name: NodeName) -> OscAddress:
    return f"{parent_path.rstrip('/')}/{name}"


def _parse_access(raw: Any) -> ParameterAccess | int | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"ACCESS must be an integer, got {raw!r}")
    try:
        return ParameterAccess(raw)
    except ValueError:
        return raw


def _parse_value(raw: Any) -> tuple[ParameterValue, ...]:
    if raw is None:
        return ()
    if isinstance(raw, list | tuple):
        return tuple(raw)
    return (raw,)


def parse_parameter_tree(
    document: Any,
    *,
    default_path: OscAddress = ROOT_PATH,
) -> ParameterNode:
    """Build a node (and its subtree) from a decoded OSCQuery JSON document.

    Nodes with a ``CONTENTS`` mapping become branches; everything else becomes
    a leaf. A node without ``FULL_PATH`` takes ``default_path``, which for
    children is derived from the parent path and the child's name.

    Raises:
        ValueError: a node or its ``CONTENTS`` is not a JSON object, or
            ``FULL_PATH``/``ACCESS`` have the wrong type.
    """
    if not isinstance(document, Mapping):
        raise ValueError(
            f"Namespace node at {default_path} is not an object: "
            f"{type(document).__name__}"
        )

    full_path = document.get(FULL_PATH_KEY, default_path)
    if not isinstance(full_path, str):
        raise ValueError(f"FULL_PATH must be a string, got {full_path!r}")

    type_tag = document.get(TYPE_KEY)
    description = document.get(DESCRIPTION_KEY)
    metadata = {
        "access": _parse_access(document.get(ACCESS_KEY)),
        "type_tag": type_tag if isinstance(type_tag, str) else None,
        "description": description if isinstance(description, str) else None,
        "extra": {
            key: value for key, value in document.items() if key not in _KNOWN_KEYS
        },
    }

    contents = document.get(CONTENTS_KEY)
    if contents is None:
        return ParameterLeaf(
            full_path=full_path,
            value=_parse_value(document.get(VALUE_KEY)),
            **metadata,
        )

    if not isinstance(contents, Mapping):
        raise ValueError(f"CONTENTS of {full_path} is not an object")

    children = {
        str(name): parse_parameter_tree(
            child, default_path=_child_path(full_path, str(name))
        )
        for name, child in contents.items()
    }
    return ParameterBranch(full_path=full_path, children=children, **metadata)


def find_node(root: ParameterNode, path: Sequence[NodeName]) -> ParameterNode | None:
    """Walk ``path`` (child names) down from ``root``; ``None`` if it is absent."""
    node: ParameterNode = root
    for name in path:
        if not isinstance(node, ParameterBranch):
            return None
        child = node.child(name)
        if child is None:
            return None
        node = child
    return node


def iter_leaves(node: ParameterNode) -> Iterator[ParameterLeaf]:
    """Depth-first traversal yielding every leaf below (or at) ``node``."""
    if isinstance(node, ParameterLeaf):
        yield node
        return
    for child in node.children.values():
        yield from iter_leaves(child)


def flatten_parameters(node: ParameterNode) -> dict[OscAddress, ParameterValue]:
    """Flatten a subtree into ``{full_path: first value}``.

    Leaves without a value map to ``None``.

    Raises:
        ValueError: two leaves share the same full path.
    """
    flat: dict[OscAddress, ParameterValue] = {}
    for leaf in iter_leaves(node):
        if leaf.full_path in flat:
            raise ValueError(f"Duplicate parameter path in namespace: {leaf.full_path}")
        flat[leaf.full_path] = leaf.first_value
    return flat
