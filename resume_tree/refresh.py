from __future__ import annotations
import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from . import llm
from .models import Node
from .tree import clone_tree

logger = logging.getLogger(__name__)

REFRESH_DELAY = float(os.getenv("REFRESH_DELAY", "0.1"))

Renderer = Callable[[List[Node], str, str], dict]


class RefreshScheduler:
    """
    Debounced, cancellable design refresh.

    Each schedule() bumps a generation counter. A job renders only if it is
    still the newest after the delay, and publishes only if nothing newer
    was scheduled while it rendered. A failed render keeps the last good artifact.
    """

    def __init__(
        self,
        session,
        render: Optional[Renderer] = None,
        *,
        template: str = "classic",
        delay: float = REFRESH_DELAY,
    ):
        self.session = session
        self.template = template
        self.delay = delay
        self._render = render
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="design-refresh")
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._generation = 0
        self._pending: Optional[Future] = None
        self.artifact: Optional[dict] = None
        self.last_error: Optional[str] = None

    def attach(self) -> "RefreshScheduler":
        self.session.add_listener(lambda _session: self.schedule())
        return self

    @property
    def generation(self) -> int:
        return self._generation

    def schedule(self) -> Future:
        with self._lock:
            self._generation += 1
            gen = self._generation
            if self._pending is not None and self._pending.cancel():
                logger.debug("Refresh %d superseded before it started", gen - 1)
            self._pending = self._executor.submit(self._run, gen)
            return self._pending

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            if self._pending is not None:
                self._pending.cancel()
            self._pending = None

    def shutdown(self, wait: bool = True) -> None:
        self._stop.set()
        self.cancel()
        self._executor.shutdown(wait=wait)

    def _current(self, gen: int) -> bool:
        return gen == self._generation and not self._stop.is_set()

    def _run(self, gen: int) -> Optional[dict]:
        if self.delay > 0:
            self._stop.wait(self.delay)
        if not self._current(gen):
            return None

        render = self._render or llm.render_design
        tree = clone_tree(self.session.tree)
        title = self.session.title
        try:
            artifact = render(tree, title, self.template)
        except Exception as e:
            logger.warning("Design refresh failed: %s", e)
            self.last_error = str(e) or type(e).__name__
            return None

        with self._lock:
            if not self._current(gen):
                logger.debug("Discarding stale design refresh %d", gen)
                return None
            self.artifact = artifact
            self.last_error = None
        logger.info("Design refreshed (generation %d)", gen)
        return artifact
