from __future__ import annotations
import re
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .models import Node

# dotted, 0-based: "0", "2.1.3"
ADDRESS_RE = re.compile(r"^\d+(?:\.\d+)*$")


def is_address(ref: str) -> bool:
    return bool(ADDRESS_RE.match(ref or ""))


def parent_address(address: str) -> Optional[str]:
    """'2.1.3' -> '2.1'; top-level addresses have no parent."""
    if "." not in address:
        return None
    return address.rsplit(".", 1)[0]


def child_address(parent: Optional[str], index: int) -> str:
    return str(index) if parent is None else f"{parent}.{index}"


def address_depth(address: str) -> int:
    return address.count(".") + 1


def _walk(nodes: List[Node], prefix: Optional[str], out: Dict[str, Node]) -> None:
    for i, node in enumerate(nodes):
        addr = child_address(prefix, i)
        out[addr] = node
        if node.children:
            _walk(node.children, addr, out)


class AddressMap:
    """
    address -> node index over one tree snapshot.

    The map keeps its own reference to the tree it was built from; callers
    that mutate a tree get a fresh map from the session, never a patched one.
    """

    def __init__(self, tree: Optional[List[Node]] = None):
        self._by_address: Dict[str, Node] = {}
        self._by_uid: Dict[str, str] = {}
        self.rebuild(tree or [])

    def rebuild(self, tree: List[Node]) -> None:
        by_address: Dict[str, Node] = {}
        _walk(tree, None, by_address)
        self._by_address = by_address
        self._by_uid = {n.uid: a for a, n in by_address.items()}

    def get(self, address: str) -> Optional[Node]:
        return self._by_address.get(address)

    def has(self, address: str) -> bool:
        return address in self._by_address

    def address_of(self, uid: str) -> Optional[str]:
        return self._by_uid.get(uid)

    def addresses(self) -> List[str]:
        # dicts keep insertion order, which is the depth-first walk order
        return list(self._by_address)

    def __len__(self) -> int:
        return len(self._by_address)

    def parent_address(self, address: str) -> Optional[str]:
        return parent_address(address)

    def parent(self, address: str) -> Optional[Node]:
        pa = parent_address(address)
        return self._by_address.get(pa) if pa is not None else None

    def children_addresses(self, address: str) -> List[str]:
        depth = address_depth(address) + 1
        prefix = address + "."
        return [
            a
            for a in self._by_address
            if a.startswith(prefix) and address_depth(a) == depth
        ]

    def sibling_addresses(self, address: str) -> List[str]:
        pa = parent_address(address)
        if pa is None:
            pool = [a for a in self._by_address if "." not in a]
        else:
            pool = self.children_addresses(pa)
        return [a for a in pool if a != address]


class Numbering(BaseModel):
    """Bidirectional address <-> uid index, cheap enough to snapshot with every history entry."""

    addr_to_uid: Dict[str, str] = Field(default_factory=dict)
    uid_to_addr: Dict[str, str] = Field(default_factory=dict)

    def resolve(self, address: str) -> Optional[str]:
        return self.addr_to_uid.get(address)

    def address_of(self, uid: str) -> Optional[str]:
        return self.uid_to_addr.get(uid)


def compute_numbering(tree: List[Node]) -> Numbering:
    addr_to_uid: Dict[str, str] = {}
    uid_to_addr: Dict[str, str] = {}

    def walk(nodes: List[Node], prefix: Optional[str]) -> None:
        for i, node in enumerate(nodes):
            addr = child_address(prefix, i)
            addr_to_uid[addr] = node.uid
            uid_to_addr[node.uid] = addr
            walk(node.children, addr)

    walk(tree, None)
    return Numbering(addr_to_uid=addr_to_uid, uid_to_addr=uid_to_addr)


def _label(node: Node) -> str:
    if node.title:
        return node.title.strip()
    if node.text:
        return node.text.strip().splitlines()[0] if node.text.strip() else "(untitled)"
    return "(untitled)"


def serialize_outline(tree: List[Node]) -> str:
    """Numbered outline handed to the chat service as document context."""
    lines: List[str] = []

    def walk(nodes: List[Node], prefix: Optional[str], depth: int) -> None:
        for i, node in enumerate(nodes):
            addr = child_address(prefix, i)
            lines.append(f"{'  ' * depth}{addr} [{node.layout}] {_label(node)}")
            walk(node.children, addr, depth + 1)

    walk(tree, None, 0)
    return "\n".join(lines)
