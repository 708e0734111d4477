# loadwatch/extraction/extractor.py

"""Structural extractor: runs the strategy chain over a document."""

import logging
from collections import Counter

from loadwatch.dom.source import StructuredSource
from loadwatch.extraction.strategies import (
    ExtractionStrategy,
    StrategyKind,
    default_strategies,
)
from loadwatch.models.record import Record

logger = logging.getLogger("loadwatch.extractor")


class StructuralExtractor:
    """Turn a document into Records using the first strategy that works.

    Strategies are never merged: mixing shapes from two readings of
    the same markup would produce inconsistent identities.
    """

    def __init__(
        self, strategies: list[ExtractionStrategy] | None = None,
    ) -> None:
        self.strategies = (
            strategies if strategies is not None
            else default_strategies()
        )
        self.last_strategy: StrategyKind | None = None

    def extract(self, source: StructuredSource) -> list[Record]:
        """Return the Records of the first non-empty strategy.

        A strategy that raises is logged and skipped. When every
        strategy comes back empty the result is an empty list.
        """
        self.last_strategy = None
        for strategy in self.strategies:
            try:
                records = strategy.extract(source)
            except Exception as exc:
                logger.warning(
                    "Strategy %s failed: %s",
                    strategy.kind.value,
                    exc,
                    exc_info=True,
                )
                continue
            if records:
                self.last_strategy = strategy.kind
                logger.debug(
                    "Extracted %d records using %s",
                    len(records),
                    strategy.kind.value,
                )
                return self._ensure_unique_ids(records)

        logger.debug("No records detected by any strategy")
        return []

    @staticmethod
    def _ensure_unique_ids(records: list[Record]) -> list[Record]:
        """Suffix repeated ids by document order (``id``, ``id-2``...)."""
        totals = Counter(r.id for r in records)
        if all(n == 1 for n in totals.values()):
            return records
        seen: Counter[str] = Counter()
        for record in records:
            if totals[record.id] == 1:
                continue
            seen[record.id] += 1
            if seen[record.id] > 1:
                record.id = f"{record.id}-{seen[record.id]}"
        return records
