# tests/test_polling.py

"""Tests for the poll_until bounded wait."""

import asyncio
import unittest

from loadwatch.actions.polling import poll_until


class TestPollUntil(unittest.IsolatedAsyncioTestCase):
    """Verify result, timeout and attempt accounting."""

    async def test_immediate_success(self) -> None:
        async def ready() -> str:
            return "surface"

        result = await poll_until(ready, 0.05, 1.0)
        self.assertTrue(result.ok)
        self.assertEqual(result.value, "surface")
        self.assertEqual(result.attempts, 1)

    async def test_success_after_some_attempts(self) -> None:
        calls = 0

        async def third_time() -> bool:
            nonlocal calls
            calls += 1
            return calls >= 3

        result = await poll_until(third_time, 0.01, 1.0)
        self.assertTrue(result.ok)
        self.assertEqual(result.attempts, 3)

    async def test_timeout_window(self) -> None:
        """Timeout lands between the deadline and one interval after."""
        async def never() -> None:
            return None

        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await poll_until(never, 0.05, 0.3)
        waited = loop.time() - started
        self.assertTrue(result.timed_out)
        self.assertIsNone(result.value)
        self.assertGreaterEqual(waited, 0.3)
        self.assertLess(waited, 0.3 + 0.05 + 0.05)

    async def test_raising_predicate_counts_as_not_yet(self) -> None:
        calls = 0

        async def flaky() -> bool:
            nonlocal calls
            calls += 1
            if calls == 1:
                msg = "detached"
                raise RuntimeError(msg)
            return True

        result = await poll_until(flaky, 0.01, 1.0)
        self.assertTrue(result.ok)
        self.assertEqual(result.attempts, 2)

    async def test_on_attempt_reports_deadline(self) -> None:
        seen: list[tuple[int, float]] = []

        async def never() -> bool:
            return False

        await poll_until(
            never, 0.02, 0.05, on_attempt=lambda n, d: seen.append((n, d))
        )
        self.assertGreaterEqual(len(seen), 2)
        self.assertEqual([n for n, _ in seen], list(range(1, len(seen) + 1)))
        self.assertEqual(len({d for _, d in seen}), 1)


if __name__ == "__main__":
    unittest.main()
