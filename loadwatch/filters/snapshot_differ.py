# loadwatch/filters/snapshot_differ.py

"""Classify the records of a cycle against the previous snapshot."""

import logging

from loadwatch.models.record import Record

logger = logging.getLogger("loadwatch.filters")


class SnapshotDiffer:
    """Flag records that are new or whose price moved since last cycle."""

    @staticmethod
    def diff(
        current: list[Record],
        previous: list[Record],
    ) -> list[Record]:
        """Set the differ flags on *current* and return the fresh subset.

        A record absent from *previous* (by id) is new. A record present
        with a different price is changed and remembers the old price.
        Prices are compared exactly: they are already normalised to a
        fixed decimal granularity by the extractor. Unchanged records
        keep cleared flags and are left out of the result.
        """
        before = {r.id: r for r in previous}
        fresh: list[Record] = []

        for record in current:
            record.is_new = False
            record.price_changed = False
            record.previous_price = None

            old = before.get(record.id)
            if old is None:
                record.is_new = True
                fresh.append(record)
            elif old.price != record.price:
                record.price_changed = True
                record.previous_price = old.price
                fresh.append(record)

        if fresh:
            logger.info(
                "Snapshot diff: %d new, %d price-changed of %d",
                sum(1 for r in fresh if r.is_new),
                sum(1 for r in fresh if r.price_changed),
                len(current),
            )
        return fresh
