# loadwatch/services/engine.py

"""Engine facade: wires monitoring, filtering and actions together.

The coordinating process talks to :class:`MonitorEngine` through
:meth:`MonitorEngine.handle_message` with the camelCase actions
``start``, ``stop``, ``updateCriteria``, ``checkNow``, ``bookEntry`` and
``getStatus``. All mutable engine data lives in one :class:`EngineState`
owned by the facade.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from loadwatch.actions.action_queue import ActionQueue
from loadwatch.actions.executor import ActionDriver, ActionExecutor
from loadwatch.config.settings import Settings
from loadwatch.dom.source import StructuredSource
from loadwatch.extraction.extractor import StructuralExtractor
from loadwatch.filters.criteria_filter import CriteriaFilter
from loadwatch.filters.snapshot_differ import SnapshotDiffer
from loadwatch.models.criteria import Criteria
from loadwatch.models.execution import ActionOutcome, FailureReason
from loadwatch.models.record import Record
from loadwatch.monitor.change_monitor import ChangeMonitor, MutationFeed
from loadwatch.services.notifier import (
    NOTIFY_ERROR,
    NOTIFY_NEW,
    NOTIFY_SUCCESS,
    Notifier,
    silent_notifier,
)
from loadwatch.storage.settings_repository import SettingsRepository
from loadwatch.storage.state_store import KeyValueStore, MemoryStore

logger = logging.getLogger("loadwatch.engine")

MODE_ALERT = "alert"
MODE_SEARCH = "search"
MODE_AUTOBOOK = "autobook"


class EngineDriver(MutationFeed, ActionDriver, Protocol):
    """Everything the engine needs from a live document."""

    async def snapshot(self) -> StructuredSource: ...

    async def annotate(self, matched: list[Record]) -> None: ...


@dataclass
class EngineState:
    """Mutable state of one engine instance."""

    criteria: Criteria = field(default_factory=Criteria)
    mode: str = Settings.DEFAULT_MODE
    running: bool = False
    snapshot: list[Record] = field(
        default_factory=lambda: list[Record]()
    )
    matches: list[Record] = field(
        default_factory=lambda: list[Record]()
    )
    last_cycle_at: datetime | None = None
    cycles: int = 0
    fresh_last_cycle: int = 0
    notifications: int = 0


Handler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class MonitorEngine:
    """Facade over extractor, differ, filter, monitor, queue and executor."""

    def __init__(
        self,
        driver: EngineDriver,
        store: KeyValueStore | None = None,
        notifier: Notifier | None = None,
        *,
        extractor: StructuralExtractor | None = None,
        monitor: ChangeMonitor | None = None,
        executor: ActionExecutor | None = None,
    ) -> None:
        self.driver = driver
        self.repository = SettingsRepository(store or MemoryStore())
        self.notifier = notifier or silent_notifier
        self.extractor = extractor or StructuralExtractor()
        self.monitor = monitor or ChangeMonitor()
        if executor is None:
            executor = ActionExecutor(driver, ActionQueue())
        executor.on_outcome = self._on_outcome
        self.executor = executor
        self.queue = executor.queue

        self.state = EngineState(
            criteria=self.repository.load_criteria(),
            mode=self.repository.load_mode(),
        )
        self.monitor.bind(self._run_cycle)

        self._handlers: dict[str, Handler] = {
            "start": self._handle_start,
            "stop": self._handle_stop,
            "updateCriteria": self._handle_update_criteria,
            "checkNow": self._handle_check_now,
            "bookEntry": self._handle_book_entry,
            "getStatus": self._handle_get_status,
        }

    # ── Message surface ──────────────────────────────────

    async def handle_message(
        self,
        action: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Dispatch one coordinator request and build its response.

        Never raises: unknown actions and handler errors are answered
        with a negative response.
        """
        handler = self._handlers.get(action)
        if handler is None:
            logger.warning("Unknown engine action '%s'", action)
            return {"accepted": False, "error": f"unknown action: {action}"}
        try:
            return await handler(payload or {})
        except Exception as exc:
            logger.error(
                "Engine action '%s' failed: %s",
                action,
                exc,
                exc_info=True,
            )
            if action == "bookEntry":
                return {
                    "success": False,
                    "reason": FailureReason.UNEXPECTED_ERROR,
                }
            return {"accepted": False}

    async def _handle_start(
        self, payload: dict[str, Any],
    ) -> dict[str, Any]:
        self._apply_settings(payload)
        self.state.running = True
        self.executor.resume()
        self.monitor.start(self.driver, self._run_cycle)
        logger.info(
            "Engine started in %s mode", self.state.mode
        )
        return {"accepted": True}

    async def _handle_stop(
        self, payload: dict[str, Any],
    ) -> dict[str, Any]:
        self.state.running = False
        self.monitor.stop()
        self.executor.halt()
        logger.info(
            "Engine stopped (queue=%d, in flight=%s)",
            len(self.queue),
            self.executor.busy,
        )
        return {"accepted": True}

    async def _handle_update_criteria(
        self, payload: dict[str, Any],
    ) -> dict[str, Any]:
        self._apply_settings(payload)
        return {"accepted": True}

    async def _handle_check_now(
        self, payload: dict[str, Any],
    ) -> dict[str, Any]:
        ran = await self.monitor.run_cycle()
        if not ran:
            logger.debug("Cycle already running, returning last matches")
        return {"records": [r.to_dict() for r in self.state.matches]}

    async def _handle_book_entry(
        self, payload: dict[str, Any],
    ) -> dict[str, Any]:
        entry_id = str(payload.get("entryId", ""))
        record = next(
            (r for r in self.state.matches if r.id == entry_id), None
        )
        if record is None:
            logger.warning("bookEntry for unknown entry '%s'", entry_id)
            return {
                "success": False,
                "reason": FailureReason.ENTRY_NOT_FOUND,
            }
        outcome = await self.executor.execute(record)
        return outcome.to_dict()

    async def _handle_get_status(
        self, payload: dict[str, Any],
    ) -> dict[str, Any]:
        return self.status()

    # ── Public helpers ───────────────────────────────────

    def status(self) -> dict[str, Any]:
        """Current phase, queue length, last cycle time and counters."""
        last = self.state.last_cycle_at
        return {
            "phase": self.executor.phase.value,
            "queueLength": len(self.queue),
            "lastCycleAt": last.isoformat() if last else None,
            "mode": self.state.mode,
            "running": self.state.running,
            "counters": {
                "cycles": self.state.cycles,
                "records": len(self.state.snapshot),
                "matches": len(self.state.matches),
                "fresh": self.state.fresh_last_cycle,
                "notifications": self.state.notifications,
                "succeeded": self.executor.succeeded,
                "failed": self.executor.failed,
            },
        }

    def is_significant(
        self, record: Record, criteria: Criteria | None = None,
    ) -> bool:
        """New, or repriced by at least the threshold in *criteria*.

        Only decides notifications; queue order uses plain freshness.
        """
        if record.is_new:
            return True
        if not record.price_changed:
            return False
        criteria = criteria or self.state.criteria
        threshold = criteria.price_change_threshold_pct
        if threshold <= 0:
            return True
        return record.price_change_pct() >= threshold

    # ── Cycle ────────────────────────────────────────────

    async def _run_cycle(self) -> None:
        """Extract, diff, filter, then notify, annotate and enqueue."""
        # Criteria replaced while this cycle awaits apply to the next one
        criteria = self.state.criteria
        source = await self.driver.snapshot()
        records = self.extractor.extract(source)
        fresh = SnapshotDiffer.diff(records, self.state.snapshot)
        matched, rejected = CriteriaFilter.filter_records(
            records, criteria
        )
        fresh_matched = [r for r in matched if r.is_fresh]
        significant = [
            r for r in fresh_matched if self.is_significant(r, criteria)
        ]

        now = datetime.now()
        self.state.snapshot = records
        self.state.matches = matched
        self.state.last_cycle_at = now
        self.state.cycles += 1
        self.state.fresh_last_cycle = len(fresh)

        logger.info(
            "Cycle %d: %d records, %d matched, %d rejected, "
            "%d significant",
            self.state.cycles,
            len(records),
            len(matched),
            rejected,
            len(significant),
        )

        self.queue.prune({r.id for r in records})

        try:
            await self.driver.annotate(matched)
        except Exception as exc:
            logger.warning("Annotation failed: %s", exc)

        if significant:
            self._notify(
                NOTIFY_NEW,
                f"{len(significant)} new or repriced match(es): "
                + ", ".join(
                    f"{r.origin} -> {r.destination} ${r.price:,.2f}"
                    for r in significant[:3]
                ),
            )

        if self.state.mode == MODE_AUTOBOOK and self.state.running:
            self.queue.enqueue_cycle(fresh_matched, matched)
            self.executor.kick()

        self.repository.save_summary(
            len(records), len(matched), len(fresh), now
        )

    # ── Private helpers ──────────────────────────────────

    def _apply_settings(self, payload: dict[str, Any]) -> None:
        """Merge payload criteria/mode over the current ones and save."""
        raw = payload.get("criteria")
        if isinstance(raw, dict):
            self.state.criteria = Criteria.from_dict(
                raw, base=self.state.criteria
            )
            self.repository.save_criteria(self.state.criteria)

        mode = payload.get("mode")
        if mode is None:
            return
        if mode not in Settings.MODES:
            logger.warning("Ignoring unknown mode %r", mode)
            return
        if mode != self.state.mode:
            logger.info("Mode %s -> %s", self.state.mode, mode)
            self.state.mode = mode
            if mode != MODE_AUTOBOOK:
                dropped = self.queue.clear()
                if dropped:
                    logger.info("Cleared %d queued entries", dropped)
        self.repository.save_mode(mode)

    def _on_outcome(self, outcome: ActionOutcome) -> None:
        if outcome.success:
            self._notify(NOTIFY_SUCCESS, f"Booked {outcome.entry_id}")
        else:
            self._notify(
                NOTIFY_ERROR,
                f"Booking {outcome.entry_id} failed: {outcome.reason}",
            )

    def _notify(self, kind: str, message: str) -> None:
        self.state.notifications += 1
        try:
            self.notifier(kind, message)
        except Exception as exc:
            logger.error(
                "Notifier raised for '%s': %s", kind, exc, exc_info=True
            )
