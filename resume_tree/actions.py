from __future__ import annotations
import logging
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from .errors import CycleRejected, InvalidAction, InvalidPermutation, InvalidPosition, NotFound
from .models import Node, NodeSpec
from .tree import clone_tree, find_node, find_parent, is_descendant, node_from_spec, siblings_of

logger = logging.getLogger(__name__)

# parent reference meaning "the top-level list"
ROOT = "0"

_UPDATABLE = {"layout", "title", "text", "meta", "style"}
_MERGED = {"meta", "style"}


class _Action(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    description: Optional[str] = None


class UpdateAction(_Action):
    action: Literal["update"] = "update"
    id: str
    changes: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("changes", "fields", "updates")
    )


class ReplaceTextAction(_Action):
    action: Literal["replaceText"] = "replaceText"
    id: str
    text: str


class RemoveAction(_Action):
    action: Literal["remove"] = "remove"
    id: str


class MoveAction(_Action):
    action: Literal["move"] = "move"
    id: str
    new_parent: str = Field(
        default=ROOT, validation_alias=AliasChoices("newParent", "new_parent", "newParentId", "parent")
    )
    position: Optional[int] = None


class AppendChildAction(_Action):
    action: Literal["appendChild"] = "appendChild"
    parent: str = ROOT
    node: NodeSpec


class InsertSiblingAction(_Action):
    action: Literal["insertSibling"] = "insertSibling"
    after: str = Field(validation_alias=AliasChoices("after", "afterId", "id"))
    node: NodeSpec


class ReorderAction(_Action):
    action: Literal["reorder"] = "reorder"
    id: str = Field(default=ROOT, validation_alias=AliasChoices("id", "parent", "parentId"))
    order: List[str] = Field(validation_alias=AliasChoices("order", "newOrder", "children"))


EditAction = Annotated[
    Union[
        UpdateAction,
        ReplaceTextAction,
        RemoveAction,
        MoveAction,
        AppendChildAction,
        InsertSiblingAction,
        ReorderAction,
    ],
    Field(discriminator="action"),
]

_ACTION_ADAPTER = TypeAdapter(EditAction)


def parse_action(data: dict | _Action):
    if isinstance(data, _Action):
        return data
    try:
        return _ACTION_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise InvalidAction(f"Malformed action: {e.error_count()} error(s)", payload=data) from e


def describe(action) -> str:
    if action.description:
        return action.description
    match action:
        case UpdateAction(id=uid):
            return f"Updated {uid}"
        case ReplaceTextAction(id=uid):
            return f"Replaced text of {uid}"
        case RemoveAction(id=uid):
            return f"Removed {uid}"
        case MoveAction(id=uid, new_parent=parent):
            return f"Moved {uid} under {parent}"
        case AppendChildAction(parent=parent, node=spec):
            return f"Added {spec.layout} under {parent}"
        case InsertSiblingAction(after=after, node=spec):
            return f"Inserted {spec.layout} after {after}"
        case ReorderAction(id=parent):
            return f"Reordered children of {parent}"
    return "Edited document"


# --- helpers (all operate on a working copy) ---


def _require(tree: List[Node], uid: str) -> Node:
    node = find_node(tree, uid)
    if node is None:
        raise NotFound(f"Node not found: {uid}", id=uid)
    return node


def _children_of(tree: List[Node], parent_ref: str) -> List[Node]:
    if parent_ref == ROOT:
        return tree
    return _require(tree, parent_ref).children


def _update(tree: List[Node], uid: str, changes: dict[str, Any]) -> None:
    node = _require(tree, uid)
    updated = node.model_dump(exclude={"children"})
    for key, value in changes.items():
        if key not in _UPDATABLE:
            logger.warning("Ignoring non-updatable field %r on %s", key, uid)
            continue
        if key in _MERGED:
            updated[key] = {**updated[key], **(value or {})}
        else:
            updated[key] = value
    try:
        checked = NodeSpec.model_validate(updated)
    except ValidationError as e:
        raise InvalidAction(f"Invalid update for {uid}", id=uid) from e
    for key in _UPDATABLE:
        setattr(node, key, getattr(checked, key))


def _remove(tree: List[Node], uid: str) -> Node:
    parent, idx = find_parent(tree, uid)
    if idx < 0:
        raise NotFound(f"Node not found: {uid}", id=uid)
    return siblings_of(tree, parent).pop(idx)


def _move(tree: List[Node], uid: str, new_parent: str, position: Optional[int]) -> None:
    _require(tree, uid)
    if new_parent != ROOT:
        _require(tree, new_parent)
        if new_parent == uid or is_descendant(tree, uid, new_parent):
            raise CycleRejected(
                f"Cannot move {uid} into its own subtree", id=uid, new_parent=new_parent
            )
    # validate the slot against the target list as it will be after detaching
    target_len = len(_children_of(tree, new_parent))
    old_parent, _ = find_parent(tree, uid)
    same_list = (old_parent is None and new_parent == ROOT) or (
        old_parent is not None and old_parent.uid == new_parent
    )
    if same_list:
        target_len -= 1
    if position is not None and not 0 <= position <= target_len:
        raise InvalidPosition(
            f"Position {position} out of range 0..{target_len}", id=uid, position=position
        )

    node = _remove(tree, uid)
    target = _children_of(tree, new_parent)
    target.insert(len(target) if position is None else position, node)


def _insert_sibling(tree: List[Node], after: str, spec: NodeSpec) -> Node:
    parent, idx = find_parent(tree, after)
    if idx < 0:
        raise NotFound(f"Node not found: {after}", id=after)
    node = node_from_spec(spec)
    siblings_of(tree, parent).insert(idx + 1, node)
    return node


def _reorder(tree: List[Node], parent_ref: str, order: List[str]) -> None:
    children = _children_of(tree, parent_ref)
    current = [c.uid for c in children]
    if len(order) != len(current) or sorted(order) != sorted(current):
        raise InvalidPermutation(
            f"Order is not a permutation of the children of {parent_ref}",
            id=parent_ref,
            expected=current,
            got=order,
        )
    by_uid = {c.uid: c for c in children}
    children[:] = [by_uid[u] for u in order]


def apply_action(tree: List[Node], action) -> List[Node]:
    """
    Apply one edit action and return the new tree.

    The input tree is never touched: work happens on a clone, so a raised
    structural error leaves the caller's tree exactly as it was.
    """
    action = parse_action(action)
    work = clone_tree(tree)

    match action:
        case UpdateAction(id=uid, changes=changes):
            _update(work, uid, changes)
        case ReplaceTextAction(id=uid, text=text):
            _require(work, uid).text = text
        case RemoveAction(id=uid):
            _remove(work, uid)
        case MoveAction(id=uid, new_parent=parent, position=position):
            _move(work, uid, parent, position)
        case AppendChildAction(parent=parent, node=spec):
            _children_of(work, parent).append(node_from_spec(spec))
        case InsertSiblingAction(after=after, node=spec):
            _insert_sibling(work, after, spec)
        case ReorderAction(id=parent, order=order):
            _reorder(work, parent, order)
        case _:
            raise TypeError(f"Unsupported action: {type(action).__name__}")

    logger.info("Action OK: %s", action.action)
    return work
