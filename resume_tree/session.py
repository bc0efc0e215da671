from __future__ import annotations
import json
import logging
from typing import Any, Callable, Iterable, List, Optional, Union

from . import ingest, llm
from .actions import (
    ROOT,
    AppendChildAction,
    InsertSiblingAction,
    MoveAction,
    ReorderAction,
    apply_action,
    describe,
    parse_action,
)
from .addressing import AddressMap, Numbering, compute_numbering, is_address, serialize_outline
from .errors import (
    InitializationFailed,
    InvalidTree,
    NotFound,
    PatchParseError,
    ServiceError,
    UnreadableDocument,
)
from .history import HISTORY_MAX_SIZE, HistoryStack, make_entry
from .merge import MergeResult, apply_patch
from .models import Node, Resume
from .normalizer import parse_patch
from .patch import CanonicalPatch
from .refine import ClassifierConfig, refine_patch
from .sections import resume_from_text, tree_from_resume
from .tree import find_node, validate_tree

logger = logging.getLogger(__name__)

Listener = Callable[["DocumentSession"], None]


class DocumentSession:
    """
    One open document: presentation tree, Resume Record and their history.

    Every mutation builds the new tree/record off to the side and swaps it in
    together with a fresh AddressMap and Numbering, then pushes one history
    entry. Lookups never see a stale index.
    """

    def __init__(
        self,
        tree: Optional[List[Node]] = None,
        title: str = "",
        resume: Optional[Resume] = None,
        *,
        max_history: int = HISTORY_MAX_SIZE,
        classifier: Optional[ClassifierConfig] = None,
    ):
        tree = list(tree or [])
        check = validate_tree(tree)
        if not check.valid:
            raise InvalidTree("; ".join(check.errors), errors=check.errors)
        for w in check.warnings:
            logger.debug("Tree warning: %s", w)

        self.tree: List[Node] = tree
        self.title = title
        self.resume: Resume = resume or Resume()
        self.classifier = classifier
        self.history = HistoryStack(max_history)
        self._listeners: List[Listener] = []
        self._reindex()
        self.history.reset(self._entry("Loaded document"))

    # --- construction -----------------------------------------------------

    @classmethod
    def from_resume(cls, resume: Resume, **kwargs) -> "DocumentSession":
        tree, title = tree_from_resume(resume)
        return cls(tree, title, resume, **kwargs)

    # --- indexes ----------------------------------------------------------

    def _reindex(self) -> None:
        self.address_map = AddressMap(self.tree)
        self.numbering: Numbering = compute_numbering(self.tree)

    def _entry(self, description: str, action: Optional[dict] = None):
        return make_entry(
            self.tree,
            self.numbering,
            description,
            resume=self.resume,
            title=self.title,
            action=action,
        )

    def _commit(
        self,
        tree: List[Node],
        resume: Resume,
        description: str,
        action: Optional[dict] = None,
    ) -> None:
        self.tree = tree
        self.resume = resume
        self._reindex()
        self.history.apply(self._entry(description, action))
        self._notify()

    # --- listeners --------------------------------------------------------

    def add_listener(self, fn: Listener) -> None:
        self._listeners.append(fn)

    def _notify(self) -> None:
        for fn in list(self._listeners):
            try:
                fn(self)
            except Exception:
                # listeners are best-effort (refresh scheduling); the mutation stands
                logger.exception("Session listener failed")

    # --- lookup -----------------------------------------------------------

    def resolve(self, ref: str) -> str:
        """uid for a node reference that may be a uid or a dotted address."""
        if is_address(ref):
            uid = self.numbering.resolve(ref)
            if uid is None:
                raise NotFound(f"No node at address {ref}", address=ref)
            return uid
        return ref

    def _resolve_parent(self, ref: str) -> str:
        return ROOT if ref == ROOT else self.resolve(ref)

    def get_node(self, ref: str) -> Optional[Node]:
        if is_address(ref):
            return self.address_map.get(ref)
        return find_node(self.tree, ref)

    def address_of(self, uid: str) -> Optional[str]:
        return self.numbering.address_of(uid)

    def outline(self) -> str:
        return serialize_outline(self.tree)

    def chat_context(self) -> str:
        resume = self.resume.model_dump(by_alias=True, exclude={"experiences": {"__all__": {"id"}}})
        return f"{self.outline()}\n\nRESUME_JSON:\n{json.dumps(resume, ensure_ascii=False)}"

    # --- structural edits -------------------------------------------------

    def _resolved(self, action):
        action = parse_action(action)
        updates: dict[str, Any] = {}
        match action:
            case MoveAction():
                updates = {"id": self.resolve(action.id), "new_parent": self._resolve_parent(action.new_parent)}
            case AppendChildAction():
                updates = {"parent": self._resolve_parent(action.parent)}
            case InsertSiblingAction():
                updates = {"after": self.resolve(action.after)}
            case ReorderAction():
                updates = {
                    "id": self._resolve_parent(action.id),
                    "order": [self.resolve(r) for r in action.order],
                }
            case _:
                updates = {"id": self.resolve(action.id)}
        return action.model_copy(update=updates)

    def apply_action(self, action: Union[dict, Any], description: Optional[str] = None) -> List[Node]:
        """
        Validate and apply one action, push one history entry.
        Structural errors propagate and leave the session untouched.
        """
        resolved = self._resolved(action)
        new_tree = apply_action(self.tree, resolved)
        desc = description or describe(resolved)
        self._commit(new_tree, self.resume, desc, resolved.model_dump(by_alias=True))
        logger.info("Applied action %s (%s)", resolved.action, desc)
        return self.tree

    def apply_actions(self, actions: Iterable[Union[dict, Any]], description: Optional[str] = None) -> List[Node]:
        """All-or-nothing batch recorded as a single history entry."""
        saved_tree, saved_numbering = self.tree, self.numbering
        done = []
        try:
            for action in actions:
                resolved = self._resolved(action)
                self.tree = apply_action(self.tree, resolved)
                self.numbering = compute_numbering(self.tree)
                done.append(resolved.model_dump(by_alias=True))
        except Exception:
            self.tree, self.numbering = saved_tree, saved_numbering
            raise
        if not done:
            return self.tree
        desc = description or f"Applied {len(done)} editing actions"
        self._commit(self.tree, self.resume, desc, {"batch": done})
        return self.tree

    # --- data-level patches -----------------------------------------------

    def apply_patch(self, patch: CanonicalPatch, description: Optional[str] = None) -> MergeResult:
        result = apply_patch(self.resume, patch)
        if result.changed:
            desc = description or f"Applied resume {patch.operation.value}"
            self._commit(self.tree, result.resume, desc, {"patch": patch.model_dump(by_alias=True, exclude_defaults=True)})
        else:
            logger.info("Patch %s changed nothing", patch.operation.value)
        return result

    def apply_raw_patch(self, raw: Union[str, dict], description: Optional[str] = None) -> Union[MergeResult, PatchParseError]:
        """normalize -> classify fresh content -> merge. Parse failures are returned, not raised."""
        parsed = parse_patch(raw)
        if isinstance(parsed, PatchParseError):
            logger.warning("Patch could not be parsed: %s", parsed.reason)
            return parsed
        result = self.apply_patch(refine_patch(parsed, self.classifier), description)
        result.notes.extend(parsed.warnings)
        return result

    def regenerate_tree(self, description: str = "Regenerated layout from resume data") -> List[Node]:
        tree, title = tree_from_resume(self.resume)
        self.title = title or self.title
        self._commit(tree, self.resume, description)
        return self.tree

    # --- history ----------------------------------------------------------

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    def _restore(self, entry) -> bool:
        if entry is None:
            return False
        self.tree, self.resume = entry.restore()
        self.title = entry.title
        self._reindex()
        self._notify()
        return True

    def undo(self) -> bool:
        return self._restore(self.history.undo())

    def redo(self) -> bool:
        return self._restore(self.history.redo())

    # --- views ------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "state": "ready",
            "title": self.title,
            "tree": [n.model_dump(by_alias=True) for n in self.tree],
            "outline": self.outline(),
            "resume": self.resume.model_dump(by_alias=True),
            "canUndo": self.can_undo(),
            "canRedo": self.can_redo(),
            "history": self.history.descriptions(),
            "historyIndex": self.history.index,
        }


def initialize_session(path: str, **kwargs) -> DocumentSession:
    """
    Extract -> structure -> new session. Every collaborator failure collapses
    into InitializationFailed; the caller goes back to the upload step.
    """
    try:
        text = ingest.extract_text(path)
        tree, title = llm.structure_resume(text)
        return DocumentSession(tree, title, resume_from_text(text), **kwargs)
    except UnreadableDocument as e:
        raise InitializationFailed(
            "We couldn't read enough text from this file. Try another PDF or DOCX.",
            cause=type(e).__name__,
        ) from e
    except (ServiceError, InvalidTree) as e:
        raise InitializationFailed(
            "We couldn't build your document right now. Please try again.",
            cause=type(e).__name__,
        ) from e
    except ValueError as e:
        raise InitializationFailed(str(e), cause=type(e).__name__) from e
