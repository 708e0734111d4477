# loadwatch/storage/settings_repository.py

"""Typed access to the engine's two persisted records."""

import logging
from datetime import datetime
from typing import Any

from loadwatch.config.settings import Settings
from loadwatch.models.criteria import Criteria
from loadwatch.storage.state_store import KeyValueStore

logger = logging.getLogger("loadwatch.storage")

CRITERIA_KEY = "criteria"
MODE_KEY = "mode"
SUMMARY_KEY = "lastSnapshotSummary"


class SettingsRepository:
    """Load and save criteria, mode and the last snapshot summary.

    Store failures never propagate: reads fall back to defaults and
    writes report False, both with the error logged.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def _load(self, key: str) -> Any:
        try:
            return self.store.load(key, None)
        except Exception as exc:
            logger.error(
                "Failed to load '%s', using defaults: %s",
                key,
                exc,
                exc_info=True,
            )
            return None

    def _save(self, key: str, value: Any) -> bool:
        try:
            return bool(self.store.save(key, value))
        except Exception as exc:
            logger.error(
                "Failed to save '%s': %s", key, exc, exc_info=True
            )
            return False

    def load_criteria(self) -> Criteria:
        """Stored criteria merged over the defaults."""
        raw = self._load(CRITERIA_KEY)
        return Criteria.from_dict(raw if isinstance(raw, dict) else None)

    def save_criteria(self, criteria: Criteria) -> bool:
        """Persist *criteria* in wire format."""
        return self._save(CRITERIA_KEY, criteria.to_dict())

    def load_mode(self) -> str:
        """Stored operating mode, or the default one."""
        raw = self._load(MODE_KEY)
        if raw in Settings.MODES:
            return str(raw)
        return Settings.DEFAULT_MODE

    def save_mode(self, mode: str) -> bool:
        """Persist the operating mode."""
        return self._save(MODE_KEY, mode)

    def load_summary(self) -> dict[str, Any]:
        """Counts from the last completed cycle (empty when unknown)."""
        raw = self._load(SUMMARY_KEY)
        return raw if isinstance(raw, dict) else {}

    def save_summary(
        self,
        records: int,
        matches: int,
        fresh: int,
        at: datetime,
    ) -> bool:
        """Persist the counts of a completed cycle (never the records)."""
        return self._save(
            SUMMARY_KEY,
            {
                "records": records,
                "matches": matches,
                "fresh": fresh,
                "at": at.isoformat(),
            },
        )
