from __future__ import annotations
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .addressing import Numbering
from .models import Node, Resume
from .tree import clone_tree

logger = logging.getLogger(__name__)

HISTORY_MAX_SIZE = int(os.getenv("HISTORY_MAX_SIZE", "50"))


class HistoryEntry(BaseModel):
    """Frozen snapshot. The stack owns it; the live document only ever sees clones."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    tree: List[Node]
    numbering: Numbering
    resume: Optional[Resume] = None
    title: str = ""
    description: str
    action: Optional[dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def restore(self) -> tuple[List[Node], Optional[Resume]]:
        resume = self.resume.model_copy(deep=True) if self.resume is not None else None
        return clone_tree(self.tree), resume


def make_entry(
    tree: List[Node],
    numbering: Numbering,
    description: str,
    *,
    resume: Optional[Resume] = None,
    title: str = "",
    action: Optional[dict[str, Any]] = None,
) -> HistoryEntry:
    return HistoryEntry(
        tree=clone_tree(tree),
        numbering=numbering.model_copy(deep=True),
        resume=resume.model_copy(deep=True) if resume is not None else None,
        title=title,
        description=description,
        action=action,
    )


class HistoryStack:
    """
    Linear undo/redo log.

    `index` points at the entry currently shown. Pushing after an undo drops
    the redo branch; going over `max_size` evicts the oldest entries.
    """

    def __init__(self, max_size: int = HISTORY_MAX_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.entries: List[HistoryEntry] = []
        self.index = -1

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def current(self) -> Optional[HistoryEntry]:
        if 0 <= self.index < len(self.entries):
            return self.entries[self.index]
        return None

    def can_undo(self) -> bool:
        return self.index > 0

    def can_redo(self) -> bool:
        return self.index < len(self.entries) - 1

    def apply(self, entry: HistoryEntry) -> None:
        entries = self.entries[: self.index + 1]
        entries.append(entry)
        if len(entries) > self.max_size:
            evicted = len(entries) - self.max_size
            entries = entries[evicted:]
            logger.debug("History full, evicted %d entr%s", evicted, "y" if evicted == 1 else "ies")
        self.entries = entries
        self.index = len(entries) - 1

    def undo(self) -> Optional[HistoryEntry]:
        if not self.can_undo():
            return None
        self.index -= 1
        return self.entries[self.index]

    def redo(self) -> Optional[HistoryEntry]:
        if not self.can_redo():
            return None
        self.index += 1
        return self.entries[self.index]

    def reset(self, entry: Optional[HistoryEntry] = None) -> None:
        self.entries = [entry] if entry is not None else []
        self.index = len(self.entries) - 1

    def descriptions(self) -> List[str]:
        return [e.description for e in self.entries]
