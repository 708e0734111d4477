# tests/test_engine.py

"""Tests for the MonitorEngine facade and its message surface."""

import asyncio
import unittest
from collections.abc import Callable
from typing import Any
from unittest.mock import patch

from loadwatch.actions.action_queue import ActionQueue
from loadwatch.actions.executor import ActionExecutor, FormDefaults
from loadwatch.dom.source import SoupSource
from loadwatch.models.criteria import Criteria
from loadwatch.models.record import Record
from loadwatch.monitor.change_monitor import (
    ChangeMonitor,
    MutationBatch,
    MutationListener,
)
from loadwatch.services.engine import MonitorEngine
from loadwatch.storage.settings_repository import SUMMARY_KEY
from loadwatch.storage.state_store import MemoryStore


def _item(record_id: str, origin: str, price: float, miles: float) -> str:
    return (
        f'<div class="load-item" data-load-id="{record_id}">'
        f'<span class="origin">{origin}</span>'
        f'<span class="destination">Dallas, TX</span>'
        f'<span class="distance">{miles} mi</span>'
        f'<span class="payout">${price}</span>'
        "<button>Book</button></div>"
    )


def _page(*items: str) -> str:
    return (
        '<html><body><div class="loadboard-results">'
        + "".join(items)
        + "</div></body></html>"
    )


class _PageDriver:
    """In-memory page whose bookings always go through."""

    def __init__(self, html: str) -> None:
        self.html = html
        self.listeners: list[MutationListener] = []
        self.annotated: list[list[str]] = []
        self.booked: list[str] = []
        self.surface_delay = 0.0
        self._open = False
        self._confirmed = False

    def subscribe(self, listener: MutationListener) -> Callable[[], None]:
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    def emit(self) -> None:
        for listener in list(self.listeners):
            listener(MutationBatch(added_nodes=1))

    async def snapshot(self) -> SoupSource:
        return SoupSource.from_html(self.html)

    async def annotate(self, matched: list[Record]) -> None:
        self.annotated.append([r.id for r in matched])

    async def resolve_control(self, source_ref: Any) -> Any:
        self._open = False
        self._confirmed = False
        return source_ref

    async def activate(self, control: Any) -> None:
        if control == "confirm":
            self._confirmed = True
        else:
            self.booked.append(control.path)
            await asyncio.sleep(self.surface_delay)
            self._open = True

    async def find_surface(self) -> Any:
        return "surface" if self._open else None

    async def fill_surface(self, surface: Any, defaults: FormDefaults) -> int:
        return 0

    async def find_confirm_control(self, surface: Any) -> Any:
        return "confirm"

    async def success_visible(self) -> bool:
        return self._confirmed

    async def surface_attached(self, surface: Any) -> bool:
        return True


class _SlowPageDriver(_PageDriver):
    """Page whose snapshot suspends long enough for messages to interleave."""

    def __init__(self, html: str, delay: float) -> None:
        super().__init__(html)
        self.delay = delay

    async def snapshot(self) -> SoupSource:
        await asyncio.sleep(self.delay)
        return await super().snapshot()


class TestMonitorEngine(unittest.IsolatedAsyncioTestCase):
    """Verify the cycle pipeline and every message action."""

    async def asyncSetUp(self) -> None:
        self.driver = _PageDriver(
            _page(
                _item("L1", "Austin, TX", 1200, 195),
                _item("L2", "Waco, TX", 800, 450),
            )
        )
        self.store = MemoryStore()
        self.notes: list[str] = []
        self.engine = self._make_engine()

    async def asyncTearDown(self) -> None:
        await self.engine.handle_message("stop")
        await self.engine.executor.wait_idle()

    def _make_engine(self) -> MonitorEngine:
        executor = ActionExecutor(
            self.driver,
            ActionQueue(),
            poll_interval=0.01,
            surface_timeout=0.2,
            confirm_timeout=0.2,
            settle_delay=0.0,
        )
        return MonitorEngine(
            self.driver,
            self.store,
            notifier=lambda kind, message: self.notes.append(kind),
            monitor=ChangeMonitor(debounce=0.05),
            executor=executor,
        )

    async def _start(self, **payload: Any) -> dict[str, Any]:
        reply = await self.engine.handle_message("start", payload)
        await asyncio.sleep(0.05)
        return reply

    # ── start / stop ─────────────────────────────────────

    async def test_start_runs_first_cycle(self) -> None:
        reply = await self._start()
        self.assertEqual(reply, {"accepted": True})
        status = await self.engine.handle_message("getStatus")
        self.assertIsNotNone(status["lastCycleAt"])
        self.assertEqual(status["counters"]["records"], 2)
        self.assertEqual(status["counters"]["matches"], 2)
        self.assertTrue(status["running"])

    async def test_start_merges_and_persists_criteria(self) -> None:
        await self._start(criteria={"distanceMax": 300})
        self.assertEqual(self.engine.state.criteria.distance_max, 300.0)
        self.assertEqual(
            [r.id for r in self.engine.state.matches], ["L1"]
        )
        reloaded = self._make_engine()
        self.assertEqual(reloaded.state.criteria.distance_max, 300.0)

    async def test_stop(self) -> None:
        await self._start()
        reply = await self.engine.handle_message("stop")
        self.assertEqual(reply, {"accepted": True})
        self.assertFalse(self.engine.monitor.active)
        self.assertFalse(self.engine.executor.accepting)
        self.assertFalse(self.engine.state.running)

    async def test_mutation_triggers_cycle(self) -> None:
        await self._start()
        cycles = self.engine.state.cycles
        self.driver.html = _page(
            _item("L1", "Austin, TX", 1200, 195),
            _item("L3", "Tyler, TX", 950, 100),
        )
        self.driver.emit()
        await asyncio.sleep(0.1)
        self.assertEqual(self.engine.state.cycles, cycles + 1)
        self.assertIn(
            "L3", [r.id for r in self.engine.state.matches]
        )

    # ── cycle pipeline ───────────────────────────────────

    async def test_check_now_returns_matches(self) -> None:
        reply = await self.engine.handle_message("checkNow")
        self.assertEqual(
            [r["id"] for r in reply["records"]], ["L1", "L2"]
        )
        self.assertTrue(all(r["isNew"] for r in reply["records"]))

    async def test_new_matches_notify_once(self) -> None:
        await self.engine.handle_message("checkNow")
        await self.engine.handle_message("checkNow")
        self.assertEqual(self.notes, ["new"])

    async def test_small_price_change_not_significant(self) -> None:
        await self.engine.handle_message("checkNow")
        self.driver.html = _page(
            _item("L1", "Austin, TX", 1250, 195),
            _item("L2", "Waco, TX", 800, 450),
        )
        await self.engine.handle_message("checkNow")
        self.assertEqual(self.notes, ["new"])
        self.assertTrue(self.engine.state.matches[0].price_changed)

    async def test_large_price_change_notifies(self) -> None:
        await self.engine.handle_message("checkNow")
        self.driver.html = _page(
            _item("L1", "Austin, TX", 1500, 195),
            _item("L2", "Waco, TX", 800, 450),
        )
        await self.engine.handle_message("checkNow")
        self.assertEqual(self.notes, ["new", "new"])

    async def test_annotates_matches(self) -> None:
        await self.engine.handle_message(
            "updateCriteria", {"criteria": {"priceMin": 1000}}
        )
        await self.engine.handle_message("checkNow")
        self.assertEqual(self.driver.annotated, [["L1"]])

    async def test_update_criteria_applies_next_cycle(self) -> None:
        await self.engine.handle_message("checkNow")
        reply = await self.engine.handle_message(
            "updateCriteria", {"criteria": {"priceMin": 1000}}
        )
        self.assertEqual(reply, {"accepted": True})
        self.assertEqual(len(self.engine.state.matches), 2)
        result = await self.engine.handle_message("checkNow")
        self.assertEqual([r["id"] for r in result["records"]], ["L1"])

    async def test_criteria_fixed_for_running_cycle(self) -> None:
        """updateCriteria during a slow snapshot waits for the next cycle."""
        self.driver = _SlowPageDriver(self.driver.html, delay=0.05)
        self.engine = self._make_engine()
        pending = asyncio.create_task(
            self.engine.handle_message("checkNow")
        )
        await asyncio.sleep(0.01)
        await self.engine.handle_message(
            "updateCriteria", {"criteria": {"priceMin": 1000}}
        )
        result = await pending
        self.assertEqual([r["id"] for r in result["records"]], ["L1", "L2"])
        result = await self.engine.handle_message("checkNow")
        self.assertEqual([r["id"] for r in result["records"]], ["L1"])

    async def test_summary_persisted_without_records(self) -> None:
        await self.engine.handle_message("checkNow")
        summary = self.store.load(SUMMARY_KEY)
        self.assertEqual(summary["records"], 2)
        self.assertEqual(summary["matches"], 2)
        self.assertEqual(summary["fresh"], 2)
        self.assertEqual(set(summary), {"records", "matches", "fresh", "at"})

    async def test_vanished_entries_pruned_from_queue(self) -> None:
        await self.engine.handle_message("checkNow")
        self.engine.queue.enqueue(self.engine.state.matches[1])
        self.driver.html = _page(_item("L1", "Austin, TX", 1200, 195))
        await self.engine.handle_message("checkNow")
        self.assertNotIn("L2", self.engine.queue)

    # ── bookEntry ────────────────────────────────────────

    async def test_book_unknown_entry(self) -> None:
        await self.engine.handle_message("checkNow")
        reply = await self.engine.handle_message(
            "bookEntry", {"entryId": "nope"}
        )
        self.assertEqual(
            reply, {"success": False, "reason": "entry-not-found"}
        )

    async def test_book_entry_success(self) -> None:
        await self.engine.handle_message("checkNow")
        reply = await self.engine.handle_message(
            "bookEntry", {"entryId": "L2"}
        )
        self.assertEqual(reply, {"success": True})
        self.assertEqual(len(self.driver.booked), 1)
        self.assertEqual(self.notes[-1], "success")
        status = self.engine.status()
        self.assertEqual(status["counters"]["succeeded"], 1)
        self.assertEqual(status["phase"], "idle")

    async def test_book_entry_while_busy(self) -> None:
        await self.engine.handle_message("checkNow")
        self.driver.surface_delay = 0.1
        first = asyncio.create_task(
            self.engine.handle_message("bookEntry", {"entryId": "L1"})
        )
        await asyncio.sleep(0.02)
        busy = await self.engine.handle_message(
            "bookEntry", {"entryId": "L2"}
        )
        self.assertEqual(
            busy, {"success": False, "reason": "action-in-progress"}
        )
        self.assertEqual(await first, {"success": True})

    async def test_book_entry_unexpected_error(self) -> None:
        await self.engine.handle_message("checkNow")
        with patch.object(
            self.engine.executor, "execute", side_effect=RuntimeError("x")
        ), self.assertLogs("loadwatch.engine", level="ERROR"):
            reply = await self.engine.handle_message(
                "bookEntry", {"entryId": "L1"}
            )
        self.assertEqual(
            reply, {"success": False, "reason": "unexpected-error"}
        )

    # ── modes ────────────────────────────────────────────

    async def test_search_mode_does_not_queue(self) -> None:
        await self._start(mode="search")
        self.assertEqual(len(self.engine.queue), 0)
        self.assertEqual(self.driver.booked, [])

    async def test_autobook_books_matches_by_price(self) -> None:
        await self._start(mode="autobook")
        await self.engine.executor.wait_idle()
        self.assertEqual(len(self.driver.booked), 2)
        self.assertTrue(self.driver.booked[0].endswith("div:nth-of-type(1)"))
        self.assertEqual(self.engine.executor.succeeded, 2)
        self.assertEqual(self.notes.count("success"), 2)

    def _autobook_without_draining(self) -> None:
        self.engine.state.mode = "autobook"
        self.engine.state.running = True
        self.engine.executor.halt()

    async def test_small_reprice_queued_ahead_of_unchanged(self) -> None:
        self._autobook_without_draining()
        await self.engine.handle_message("checkNow")
        self.assertEqual(self.engine.queue.ids, ["L1", "L2"])
        self.engine.queue.clear()

        # 10% rise, under the default notification threshold
        self.driver.html = _page(
            _item("L1", "Austin, TX", 1200, 195),
            _item("L2", "Waco, TX", 880, 450),
        )
        await self.engine.handle_message("checkNow")

        self.assertEqual(self.notes, ["new"])
        self.assertEqual(self.engine.queue.ids, ["L2", "L1"])

    async def test_small_reprice_moves_queued_entry_to_front(self) -> None:
        self._autobook_without_draining()
        await self.engine.handle_message("checkNow")
        self.driver.html = _page(
            _item("L1", "Austin, TX", 1200, 195),
            _item("L2", "Waco, TX", 880, 450),
        )
        await self.engine.handle_message("checkNow")
        self.assertEqual(self.engine.queue.ids, ["L2", "L1"])
        self.assertEqual(len(self.driver.booked), 0)

    async def test_alert_mode_clears_queue(self) -> None:
        self.engine.queue.enqueue(Record(id="L1", price=1.0))
        await self.engine.handle_message("updateCriteria", {"mode": "alert"})
        self.assertEqual(self.engine.state.mode, "alert")
        self.assertEqual(len(self.engine.queue), 0)

    async def test_unknown_mode_ignored(self) -> None:
        await self.engine.handle_message("updateCriteria", {"mode": "turbo"})
        self.assertEqual(self.engine.state.mode, "search")

    # ── message surface ──────────────────────────────────

    async def test_get_status_shape(self) -> None:
        status = await self.engine.handle_message("getStatus")
        self.assertEqual(status["phase"], "idle")
        self.assertEqual(status["queueLength"], 0)
        self.assertIsNone(status["lastCycleAt"])
        self.assertEqual(status["mode"], "search")

    async def test_unknown_action(self) -> None:
        reply = await self.engine.handle_message("explode")
        self.assertFalse(reply["accepted"])

    async def test_handler_error_not_raised(self) -> None:
        with patch.object(
            self.engine, "_apply_settings", side_effect=RuntimeError("x")
        ), self.assertLogs("loadwatch.engine", level="ERROR"):
            reply = await self.engine.handle_message(
                "updateCriteria", {"criteria": {}}
            )
        self.assertEqual(reply, {"accepted": False})

    async def test_significance_threshold_zero(self) -> None:
        self.engine.state.criteria = Criteria(price_change_threshold_pct=0)
        record = Record(
            id="L1", price=501.0, price_changed=True, previous_price=500.0
        )
        self.assertTrue(self.engine.is_significant(record))


if __name__ == "__main__":
    unittest.main()
