# loadwatch/monitor/change_monitor.py

"""Debounced change monitoring over a live document."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from loadwatch.config.settings import Settings

logger = logging.getLogger("loadwatch.monitor")


@dataclass(frozen=True)
class MutationBatch:
    """One delivery of structural mutation notifications."""

    added_nodes: int = 0
    removed_nodes: int = 0

    @property
    def adds_nodes(self) -> bool:
        """True when the batch inserted at least one node."""
        return self.added_nodes > 0


MutationListener = Callable[[MutationBatch], None]
CycleCallback = Callable[[], Awaitable[None]]


class MutationFeed(Protocol):
    """Anything that can report structural mutations of a document."""

    def subscribe(
        self, listener: MutationListener,
    ) -> Callable[[], None]: ...


class ChangeMonitor:
    """Run an extraction cycle after each burst of document mutations.

    Every batch that adds nodes restarts a quiet-period timer; the
    cycle fires once the document has been quiet for the debounce
    window. One cycle runs immediately on :meth:`start`. Only one
    cycle runs at a time: a timer that fires mid-cycle queues a single
    follow-up cycle instead of starting a second one.
    """

    def __init__(self, debounce: float | None = None) -> None:
        self.debounce = (
            Settings.DEBOUNCE_SECONDS if debounce is None else debounce
        )
        self.cycles_run = 0
        self._on_cycle: CycleCallback | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._cycle_running = False
        self._rerun_requested = False
        self._tasks: set[asyncio.Task[bool]] = set()

    @property
    def active(self) -> bool:
        """True between :meth:`start` and :meth:`stop`."""
        return self._unsubscribe is not None

    @property
    def cycle_running(self) -> bool:
        """True while an extraction cycle is in progress."""
        return self._cycle_running

    @property
    def cycle_pending(self) -> bool:
        """True while a debounced cycle is waiting to fire."""
        return self._timer is not None

    def start(
        self, root: MutationFeed, on_cycle: CycleCallback,
    ) -> None:
        """Subscribe to *root* and run a first cycle right away.

        Must be called from within the running event loop.
        """
        if self.active:
            self.stop()
        self._on_cycle = on_cycle
        self._unsubscribe = root.subscribe(self._on_mutations)
        logger.info(
            "Change monitor started (debounce=%.0fms)",
            self.debounce * 1000,
        )
        self._spawn_cycle()

    def stop(self) -> None:
        """Cancel any pending cycle and detach from the document."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            logger.info("Change monitor stopped")
        self._rerun_requested = False

    async def run_cycle(self) -> bool:
        """Run one cycle now unless one is already running.

        Returns True when the cycle ran. Errors raised by the cycle
        callback are logged; the monitor stays usable.
        """
        if self._cycle_running or self._on_cycle is None:
            return False
        self._cycle_running = True
        try:
            await self._on_cycle()
            self.cycles_run += 1
        except Exception as exc:
            logger.error(
                "Extraction cycle failed: %s", exc, exc_info=True
            )
        finally:
            self._cycle_running = False

        if self._rerun_requested and self.active:
            self._rerun_requested = False
            self._spawn_cycle()
        return True

    def bind(self, on_cycle: CycleCallback) -> None:
        """Set the cycle callback without subscribing (on-demand use)."""
        self._on_cycle = on_cycle

    # ── Private helpers ──────────────────────────────────

    def _on_mutations(self, batch: MutationBatch) -> None:
        if not self.active or not batch.adds_nodes:
            return
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if not self.active:
            return
        if self._cycle_running:
            logger.debug("Cycle busy, deferring debounced run")
            self._rerun_requested = True
            return
        self._spawn_cycle()

    def _spawn_cycle(self) -> None:
        task = asyncio.get_running_loop().create_task(self.run_cycle())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
