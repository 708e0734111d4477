# loadwatch/actions/executor.py

"""Single-flight action executor.

Drives one entry at a time through::

    Idle -> Locating -> Triggering -> AwaitingSurface -> Filling
         -> Submitting -> AwaitingConfirmation -> Done | Failed

and returns to Idle after every terminal phase, dequeuing the next
entry straight away. Failed entries are never retried here; a later
monitoring cycle re-enqueues them if they still match.
"""

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from loadwatch.actions.action_queue import ActionQueue
from loadwatch.actions.polling import poll_until
from loadwatch.config.settings import Settings
from loadwatch.errors import ActionTimeoutError, ControlResolutionError
from loadwatch.models.execution import (
    ActionOutcome,
    ExecutionState,
    FailureReason,
    Phase,
)
from loadwatch.models.record import Record

logger = logging.getLogger("loadwatch.executor")


@dataclass(frozen=True)
class FormDefaults:
    """Values used to complete required fields on the booking surface."""

    phone: str = ""
    email: str = ""
    accept_terms: bool = True

    @classmethod
    def from_settings(cls) -> "FormDefaults":
        """Build defaults from the environment-backed settings."""
        return cls(
            phone=Settings.FORM_PHONE,
            email=Settings.FORM_EMAIL,
        )


class ActionDriver(Protocol):
    """Action capabilities of a live document."""

    async def resolve_control(self, source_ref: Any) -> Any | None: ...

    async def activate(self, control: Any) -> None: ...

    async def find_surface(self) -> Any | None: ...

    async def fill_surface(
        self, surface: Any, defaults: FormDefaults,
    ) -> int: ...

    async def find_confirm_control(self, surface: Any) -> Any | None: ...

    async def success_visible(self) -> bool: ...

    async def surface_attached(self, surface: Any) -> bool: ...


OutcomeListener = Callable[[ActionOutcome], None]


class ActionExecutor:
    """Drain the action queue one entry at a time."""

    def __init__(
        self,
        driver: ActionDriver,
        queue: ActionQueue,
        on_outcome: OutcomeListener | None = None,
        *,
        poll_interval: float | None = None,
        surface_timeout: float | None = None,
        confirm_timeout: float | None = None,
        settle_delay: float | None = None,
        settle_jitter: float | None = None,
        form_defaults: FormDefaults | None = None,
    ) -> None:
        self.driver = driver
        self.queue = queue
        self.on_outcome = on_outcome
        self.poll_interval = (
            Settings.POLL_INTERVAL if poll_interval is None
            else poll_interval
        )
        self.surface_timeout = (
            Settings.SURFACE_TIMEOUT if surface_timeout is None
            else surface_timeout
        )
        self.confirm_timeout = (
            Settings.CONFIRM_TIMEOUT if confirm_timeout is None
            else confirm_timeout
        )
        self.settle_delay = (
            Settings.CLICK_SETTLE_DELAY if settle_delay is None
            else settle_delay
        )
        self.settle_jitter = (
            Settings.CLICK_JITTER if settle_jitter is None
            else settle_jitter
        )
        self.form_defaults = form_defaults or FormDefaults.from_settings()

        self.state: ExecutionState | None = None
        self.succeeded = 0
        self.failed = 0
        self._busy = False
        self._accepting = True
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def busy(self) -> bool:
        """True while an entry is in flight."""
        return self._busy

    @property
    def phase(self) -> Phase:
        """Phase of the in-flight entry, or ``Phase.IDLE``."""
        return self.state.phase if self.state else Phase.IDLE

    @property
    def accepting(self) -> bool:
        """False once :meth:`halt` was called."""
        return self._accepting

    def halt(self) -> None:
        """Stop dequeuing. An in-flight entry still runs to completion."""
        self._accepting = False

    def resume(self) -> None:
        """Allow dequeuing again and pick up any waiting entries."""
        self._accepting = True
        self.kick()

    def kick(self) -> None:
        """Start draining the queue unless busy, halted or empty."""
        if self._busy or not self._accepting or not len(self.queue):
            return
        self._busy = True
        task = asyncio.get_running_loop().create_task(self._drain())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def execute(self, record: Record) -> ActionOutcome:
        """Run one action for *record* outside the queue order.

        Refused with ``action-in-progress`` while another entry is in
        flight. Queue draining resumes afterwards.
        """
        if self._busy:
            return ActionOutcome(
                entry_id=record.id,
                success=False,
                reason=FailureReason.ACTION_IN_PROGRESS,
                record=record,
            )
        self._busy = True
        try:
            self.queue.remove(record.id)
            outcome = await self._run(record)
        finally:
            self._busy = False
        self.kick()
        return outcome

    async def wait_idle(self) -> None:
        """Wait for the current drain (if any) to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ── Queue draining ───────────────────────────────────

    async def _drain(self) -> None:
        try:
            while self._accepting:
                entry = self.queue.dequeue_next()
                if entry is None:
                    break
                await self._run(entry.record)
        finally:
            self._busy = False

    # ── State machine ────────────────────────────────────

    async def _run(self, record: Record) -> ActionOutcome:
        loop = asyncio.get_running_loop()
        started = loop.time()
        self.state = ExecutionState(entry_id=record.id)
        logger.info(
            "Action started for %s (%s -> %s, %.2f)",
            record.id,
            record.origin,
            record.destination,
            record.price,
        )
        reason: str | None = None
        try:
            await self._advance(record)
        except (ControlResolutionError, ActionTimeoutError) as exc:
            reason = exc.reason
        except Exception as exc:
            logger.error(
                "Action for %s raised: %s",
                record.id,
                exc,
                exc_info=True,
            )
            reason = FailureReason.UNEXPECTED_ERROR

        outcome = ActionOutcome(
            entry_id=record.id,
            success=reason is None,
            reason=reason,
            record=record,
            elapsed=loop.time() - started,
        )
        self._enter(Phase.DONE if outcome.success else Phase.FAILED)
        if outcome.success:
            self.succeeded += 1
            logger.info(
                "Action done for %s in %.2fs",
                record.id,
                outcome.elapsed,
            )
        else:
            self.failed += 1
            logger.warning(
                "Action failed for %s: %s (%.2fs)",
                record.id,
                reason,
                outcome.elapsed,
            )
        self.state = None
        self._emit(outcome)
        return outcome

    async def _advance(self, record: Record) -> None:
        """Walk the phases, raising on the first terminal failure."""
        self._enter(Phase.LOCATING)
        control = await self._resolve(record)
        if control is None:
            raise ControlResolutionError(
                FailureReason.CONTROL_NOT_FOUND, record.id
            )

        self._enter(Phase.TRIGGERING)
        await self._click(control)

        self._enter(Phase.AWAITING_SURFACE)
        appeared = await poll_until(
            self.driver.find_surface,
            self.poll_interval,
            self.surface_timeout,
            on_attempt=self._track_attempt,
        )
        if appeared.timed_out:
            raise ActionTimeoutError(
                FailureReason.SURFACE_TIMEOUT, appeared.elapsed
            )
        surface = appeared.value

        self._enter(Phase.FILLING)
        try:
            filled = await self.driver.fill_surface(
                surface, self.form_defaults
            )
            logger.debug("Filled %d surface fields", filled)
        except Exception as exc:
            logger.warning("Surface filling skipped: %s", exc)

        self._enter(Phase.SUBMITTING)
        confirm = await self.driver.find_confirm_control(surface)
        if confirm is None:
            raise ControlResolutionError(
                FailureReason.CONFIRM_CONTROL_NOT_FOUND, record.id
            )
        await self._click(confirm)

        self._enter(Phase.AWAITING_CONFIRMATION)

        async def confirmed() -> bool:
            if await self.driver.success_visible():
                return True
            # A closed surface is taken as implicit success
            return not await self.driver.surface_attached(surface)

        settled = await poll_until(
            confirmed,
            self.poll_interval,
            self.confirm_timeout,
            on_attempt=self._track_attempt,
        )
        if settled.timed_out:
            raise ActionTimeoutError(
                FailureReason.CONFIRMATION_TIMEOUT, settled.elapsed
            )

    async def _resolve(self, record: Record) -> Any | None:
        try:
            return await self.driver.resolve_control(record.source_ref)
        except Exception as exc:
            logger.debug(
                "Control resolution for %s raised: %s",
                record.id,
                exc,
            )
            return None

    async def _click(self, control: Any) -> None:
        """Settle briefly, then activate *control*.

        Activation errors are not reported here: a click that did not
        land shows up as the following wait timing out.
        """
        delay = self.settle_delay
        if delay > 0:
            delay += random.uniform(
                -self.settle_jitter, self.settle_jitter
            )
            await asyncio.sleep(max(0.0, delay))
        try:
            await self.driver.activate(control)
        except Exception as exc:
            logger.warning("Activation raised: %s", exc)

    def _enter(self, phase: Phase) -> None:
        if self.state is None:
            return
        self.state.phase = phase
        self.state.attempts = 0
        self.state.deadline = None
        logger.debug("%s -> %s", self.state.entry_id, phase.value)

    def _track_attempt(self, attempt: int, deadline: float) -> None:
        if self.state is not None:
            self.state.attempts = attempt
            self.state.deadline = deadline

    def _emit(self, outcome: ActionOutcome) -> None:
        if self.on_outcome is None:
            return
        try:
            self.on_outcome(outcome)
        except Exception as exc:
            logger.error(
                "Outcome listener raised: %s", exc, exc_info=True
            )
