# loadwatch/actions/polling.py

"""Bounded wait primitive: re-check a condition until a deadline."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger("loadwatch.executor")

T = TypeVar("T")


@dataclass
class PollResult(Generic[T]):
    """Outcome of :func:`poll_until`: a value or a timeout."""

    ok: bool
    value: T | None
    attempts: int
    elapsed: float

    @property
    def timed_out(self) -> bool:
        """True when the deadline passed without a truthy value."""
        return not self.ok


async def poll_until(
    predicate: Callable[[], Awaitable[T | None]],
    interval: float,
    timeout: float,
    on_attempt: Callable[[int, float], None] | None = None,
) -> PollResult[T]:
    """Await *predicate* every *interval* seconds until it is truthy.

    The first check happens immediately; the last one lands on the
    deadline, so a timeout is reported no earlier than *timeout* and
    no later than one interval after it. A predicate that raises
    counts as "not yet". *on_attempt* receives the attempt number and
    the absolute deadline before each check.
    """
    loop = asyncio.get_running_loop()
    started = loop.time()
    deadline = started + timeout
    attempts = 0

    while True:
        attempts += 1
        if on_attempt is not None:
            on_attempt(attempts, deadline)
        try:
            value = await predicate()
        except Exception as exc:
            logger.debug(
                "Poll attempt %d raised: %s", attempts, exc
            )
            value = None
        if value:
            return PollResult(
                ok=True,
                value=value,
                attempts=attempts,
                elapsed=loop.time() - started,
            )

        now = loop.time()
        if now >= deadline:
            return PollResult(
                ok=False,
                value=None,
                attempts=attempts,
                elapsed=now - started,
            )
        await asyncio.sleep(min(interval, deadline - now))
