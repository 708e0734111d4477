# tests/test_state_store.py

"""Tests for JsonFileStore and SettingsRepository."""

import json
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import patch

from loadwatch.errors import PersistenceError
from loadwatch.models.criteria import Criteria
from loadwatch.storage.settings_repository import (
    CRITERIA_KEY,
    SUMMARY_KEY,
    SettingsRepository,
)
from loadwatch.storage.state_store import JsonFileStore, MemoryStore


class TestJsonFileStore(unittest.TestCase):
    """Verify JSON file persistence."""

    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self._tmpdir.name) / "state" / "lw.json"
        self.store = JsonFileStore(self.path)

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def test_missing_file_gives_default(self) -> None:
        self.assertEqual(self.store.load("criteria", {"a": 1}), {"a": 1})

    def test_save_and_load(self) -> None:
        self.assertTrue(self.store.save("mode", "alert"))
        self.assertEqual(JsonFileStore(self.path).load("mode"), "alert")

    def test_keys_are_independent(self) -> None:
        self.store.save("a", 1)
        self.store.save("b", 2)
        data = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(data, {"a": 1, "b": 2})

    def test_no_temp_files_left(self) -> None:
        self.store.save("a", 1)
        self.assertEqual(
            [p.name for p in self.path.parent.iterdir()], ["lw.json"]
        )

    def test_corrupt_file_raises_on_load(self) -> None:
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(PersistenceError):
            self.store.load("a")

    def test_corrupt_file_overwritten_on_save(self) -> None:
        self.path.write_text("[1, 2]", encoding="utf-8")
        self.assertTrue(self.store.save("a", 1))
        self.assertEqual(self.store.load("a"), 1)

    def test_unserialisable_value_raises(self) -> None:
        with self.assertRaises(PersistenceError):
            self.store.save("a", object())

    def test_default_path_from_settings(self) -> None:
        """Without a path the store uses Settings.STATE_PATH."""
        store = JsonFileStore()
        self.assertEqual(store.path.name, "loadwatch.json")


class _BrokenStore:
    """Store whose every call fails."""

    def load(self, key: str, default: Any = None) -> Any:
        msg = "disk gone"
        raise PersistenceError(msg)

    def save(self, key: str, value: Any) -> bool:
        msg = "disk gone"
        raise PersistenceError(msg)


class TestSettingsRepository(unittest.TestCase):
    """Verify criteria/mode/summary persistence and failure handling."""

    def setUp(self) -> None:
        self.store = MemoryStore()
        self.repo = SettingsRepository(self.store)

    def test_defaults_when_empty(self) -> None:
        self.assertEqual(self.repo.load_criteria(), Criteria())
        self.assertEqual(self.repo.load_mode(), "search")
        self.assertEqual(self.repo.load_summary(), {})

    def test_criteria_round_trip(self) -> None:
        criteria = Criteria(distance_max=300.0, price_min=900.0)
        self.assertTrue(self.repo.save_criteria(criteria))
        self.assertEqual(self.repo.load_criteria(), criteria)

    def test_partial_record_merged_with_defaults(self) -> None:
        self.store.save(CRITERIA_KEY, {"distanceMax": 300})
        loaded = self.repo.load_criteria()
        self.assertEqual(loaded.distance_max, 300.0)
        self.assertEqual(loaded.stops_max, Criteria().stops_max)

    def test_malformed_record_gives_defaults(self) -> None:
        self.store.save(CRITERIA_KEY, ["not", "a", "dict"])
        self.assertEqual(self.repo.load_criteria(), Criteria())

    def test_unknown_mode_falls_back(self) -> None:
        self.repo.save_mode("turbo")
        self.assertEqual(self.repo.load_mode(), "search")

    def test_summary_holds_counts_only(self) -> None:
        at = datetime(2024, 5, 1, 8, 0)
        self.repo.save_summary(12, 3, 2, at)
        self.assertEqual(
            self.store.load(SUMMARY_KEY),
            {
                "records": 12,
                "matches": 3,
                "fresh": 2,
                "at": "2024-05-01T08:00:00",
            },
        )

    def test_store_failures_are_logged_not_raised(self) -> None:
        repo = SettingsRepository(_BrokenStore())
        with self.assertLogs("loadwatch.storage", level="ERROR"):
            self.assertEqual(repo.load_criteria(), Criteria())
        with self.assertLogs("loadwatch.storage", level="ERROR"):
            self.assertFalse(repo.save_criteria(Criteria()))

    def test_file_store_failure_on_save(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = SettingsRepository(JsonFileStore(Path(tmp) / "s.json"))
            with patch(
                "loadwatch.storage.state_store.os.replace",
                side_effect=OSError("read-only"),
            ), self.assertLogs("loadwatch.storage", level="ERROR"):
                self.assertFalse(repo.save_mode("alert"))


if __name__ == "__main__":
    unittest.main()
