from __future__ import annotations
import itertools
import logging
import uuid
from typing import Iterator, List, Optional, Tuple

from .models import Node, NodeSpec, ValidationResult

logger = logging.getLogger(__name__)

_PREFIX = uuid.uuid4().hex[:8]
_COUNTER = itertools.count(1)


def new_uid() -> str:
    # never digit-shaped, so a uid can't be mistaken for an address
    return f"uid_{_PREFIX}_{next(_COUNTER)}"


def node_from_spec(spec: NodeSpec) -> Node:
    return Node(uid=new_uid(), **spec.model_dump())


def build_node(layout: str = "paragraph", *, title=None, text=None, children=None, **meta) -> Node:
    return Node(
        uid=new_uid(),
        layout=layout,
        title=title,
        text=text,
        meta=meta,
        children=children or [],
    )


def clone_tree(tree: List[Node]) -> List[Node]:
    return [n.model_copy(deep=True) for n in tree]


def iter_nodes(tree: List[Node]) -> Iterator[Node]:
    """Depth-first, pre-order."""
    stack = list(reversed(tree))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def find_node(tree: List[Node], uid: str) -> Optional[Node]:
    for node in iter_nodes(tree):
        if node.uid == uid:
            return node
    return None


def find_parent(tree: List[Node], uid: str) -> Tuple[Optional[Node], int]:
    """Return (parent, index). parent is None for top-level nodes; index is -1 if absent."""
    for i, node in enumerate(tree):
        if node.uid == uid:
            return None, i
    for node in iter_nodes(tree):
        for i, child in enumerate(node.children):
            if child.uid == uid:
                return node, i
    return None, -1


def siblings_of(tree: List[Node], parent: Optional[Node]) -> List[Node]:
    return tree if parent is None else parent.children


def is_descendant(tree: List[Node], ancestor_uid: str, uid: str) -> bool:
    ancestor = find_node(tree, ancestor_uid)
    if ancestor is None:
        return False
    return any(n.uid == uid for n in iter_nodes(ancestor.children))


def validate_tree(tree: List[Node]) -> ValidationResult:
    res = ValidationResult()
    seen: set[str] = set()
    for node in iter_nodes(tree):
        if not node.uid:
            res.errors.append("Node without uid")
            continue
        if node.uid in seen:
            res.errors.append(f"Duplicate uid: {node.uid}")
        seen.add(node.uid)

        if node.layout == "container" or node.layout == "grid":
            if not node.children:
                res.warnings.append(f"Empty {node.layout}: {node.uid}")
        elif not (node.title or node.text):
            res.warnings.append(f"Node without content: {node.uid}")
        if node.layout == "key-value" and not (node.title and node.text):
            res.warnings.append(f"Key-value node missing key or value: {node.uid}")
        if node.layout == "list-item" and node.text and "\n\n" in node.text:
            res.warnings.append(f"List item holds several paragraphs: {node.uid}")

    for node in tree:
        level = node.style.get("level")
        if node.layout == "heading" and isinstance(level, int) and level > 2:
            res.warnings.append(f"Top-level heading with level {level}: {node.uid}")

    res.valid = not res.errors
    return res
