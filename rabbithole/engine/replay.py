"""Paced, cancelable application of BFS replay steps to a live store."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from rabbithole.engine.core import GraphStore
from rabbithole.engine.seeder import BFSSeeder, SeedStep

logger = logging.getLogger(__name__)


def apply_step(step: SeedStep, store: GraphStore) -> None:
    """Restore a step's node verbatim, then its satisfied edges.

    Edges to nodes removed from the store since they were replayed are skipped.
    """
    with store.batch():
        store.add_node(step.node)
        for edge in step.edges:
            if not (store.has_node(edge.source_id) and store.has_node(edge.target_id)):
                logger.debug("Skipping edge %s: endpoint was removed", edge.id)
                continue
            store.add_edge_if_absent(edge.source_id, edge.target_id)


def replay_all(seeder: BFSSeeder, store: GraphStore) -> int:
    """Apply every step at once. Returns the number of steps applied."""
    count = 0
    with store.batch():
        for step in seeder:
            apply_step(step, store)
            count += 1
    return count


class ReplayScheduler:
    """Pulls steps from a BFSSeeder on a worker thread with a fixed delay between them.

    Starting a new replay cancels the one in flight: once cancelled, a replay
    applies no further steps, even if it was mid-sleep.

    Args:
        interval: Seconds to wait between steps
        on_step: Optional callback invoked after each applied step
    """

    def __init__(
        self,
        interval: float = 0.2,
        on_step: Callable[[SeedStep], None] | None = None,
    ):
        self.interval = interval
        self.on_step = on_step
        self._lock = threading.RLock()
        self._thread: threading.Thread | None = None
        self._cancel: threading.Event | None = None
        self.applied = 0

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self, seeder: BFSSeeder, store: GraphStore) -> None:
        """Begin replaying seeder into store, superseding any running replay."""
        with self._lock:
            self._cancel_locked()
            cancel = threading.Event()
            self._cancel = cancel
            self.applied = 0
            self._thread = threading.Thread(
                target=self._run,
                args=(seeder, store, cancel),
                name="rabbithole-replay",
                daemon=True,
            )
            self._thread.start()

    def cancel(self) -> None:
        """Stop the running replay. Remaining steps are discarded."""
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        if self._cancel is not None and not self._cancel.is_set():
            self._cancel.set()
            logger.info("Replay cancelled after %d steps", self.applied)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the current replay finishes. Returns False on timeout."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _run(self, seeder: BFSSeeder, store: GraphStore, cancel: threading.Event) -> None:
        for i, step in enumerate(seeder):
            # Event.wait doubles as an interruptible sleep
            if i > 0 and cancel.wait(self.interval):
                return
            with self._lock:
                if cancel.is_set():
                    return
                try:
                    apply_step(step, store)
                except Exception:
                    logger.exception("Replay stopped at step %d (%r)", i, step.node.id)
                    return
                self.applied += 1
            if self.on_step is not None:
                self.on_step(step)
        logger.debug("Replay finished: %d steps", len(seeder))
