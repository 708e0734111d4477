# loadwatch/actions/action_queue.py

"""Pending action requests, deduplicated by entry id."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from loadwatch.models.record import Record

logger = logging.getLogger("loadwatch.queue")


@dataclass
class QueueEntry:
    """A Record waiting for the executor."""

    record_id: str
    record: Record
    priority: float
    fresh: bool = False


class ActionQueue:
    """Ordered queue of at most one entry per record id.

    Order is decided when an entry is inserted: fresh (new or
    price-changed) entries go to the very front, everything else is
    placed behind the fresh block in descending priority. Re-enqueuing
    a known id replaces the entry where it stands, unless the new
    record is fresh, in which case it moves to the front.
    """

    def __init__(self) -> None:
        self._entries: list[QueueEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, record_id: object) -> bool:
        return any(e.record_id == record_id for e in self._entries)

    @property
    def ids(self) -> list[str]:
        """Queued ids in dequeue order."""
        return [e.record_id for e in self._entries]

    def enqueue(
        self,
        record: Record,
        priority: float | None = None,
        fresh: bool | None = None,
    ) -> QueueEntry:
        """Insert or update the entry for ``record.id``.

        *priority* defaults to the record's price and *fresh* to the
        record's differ flags.
        """
        is_fresh = record.is_fresh if fresh is None else fresh
        entry = QueueEntry(
            record_id=record.id,
            record=record,
            priority=record.price if priority is None else priority,
            fresh=is_fresh,
        )

        index = self._index_of(record.id)
        if index is not None and not is_fresh:
            entry.fresh = self._entries[index].fresh
            self._entries[index] = entry
            logger.debug("Updated queued entry %s in place", record.id)
            return entry

        if index is not None:
            del self._entries[index]
        if is_fresh:
            self._entries.insert(0, entry)
        else:
            self._entries.insert(self._slot_for(entry.priority), entry)
        logger.debug(
            "Queued %s (priority=%.2f, fresh=%s, length=%d)",
            record.id,
            entry.priority,
            is_fresh,
            len(self._entries),
        )
        return entry

    def enqueue_cycle(
        self,
        fresh: Iterable[Record],
        matched: Iterable[Record],
    ) -> None:
        """Bulk-enqueue one cycle's matches.

        Fresh records end up at the front ordered by descending price;
        the remaining matches follow in descending price order.
        """
        fresh_list = sorted(fresh, key=lambda r: r.price, reverse=True)
        fresh_ids = {r.id for r in fresh_list}
        for record in reversed(fresh_list):
            self.enqueue(record, fresh=True)

        rest = sorted(
            (r for r in matched if r.id not in fresh_ids),
            key=lambda r: r.price,
            reverse=True,
        )
        for record in rest:
            self.enqueue(record, fresh=False)

    def dequeue_next(self) -> QueueEntry | None:
        """Remove and return the front entry, or ``None`` when empty."""
        if not self._entries:
            return None
        return self._entries.pop(0)

    def remove(self, record_id: str) -> bool:
        """Drop the entry for *record_id*; True when one was removed."""
        index = self._index_of(record_id)
        if index is None:
            return False
        del self._entries[index]
        return True

    def prune(self, present_ids: set[str]) -> int:
        """Drop entries whose source entry left the page.

        Returns the number of entries removed.
        """
        before = len(self._entries)
        self._entries = [
            e for e in self._entries if e.record_id in present_ids
        ]
        removed = before - len(self._entries)
        if removed:
            logger.info(
                "Pruned %d queued entries no longer on the page",
                removed,
            )
        return removed

    def clear(self) -> int:
        """Empty the queue; returns the number of entries dropped."""
        count = len(self._entries)
        self._entries.clear()
        return count

    # ── Private helpers ──────────────────────────────────

    def _index_of(self, record_id: str) -> int | None:
        for index, entry in enumerate(self._entries):
            if entry.record_id == record_id:
                return index
        return None

    def _slot_for(self, priority: float) -> int:
        """Index behind the fresh block and all entries of >= priority."""
        for index, entry in enumerate(self._entries):
            if entry.fresh:
                continue
            if entry.priority < priority:
                return index
        return len(self._entries)
