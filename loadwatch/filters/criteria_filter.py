# loadwatch/filters/criteria_filter.py

"""Criteria matching for extracted records."""

import logging
from collections.abc import Callable

from loadwatch.filters.timeparse import departs_after, parse_datetime
from loadwatch.models.criteria import (
    Criteria,
    DurationBucket,
    TextFilterMode,
)
from loadwatch.models.record import Record

logger = logging.getLogger("loadwatch.filters")

Lane = tuple[str, str]


def _within_distance(record: Record, criteria: Criteria) -> bool:
    return criteria.distance_min <= record.distance <= criteria.distance_max


def _meets_price(record: Record, criteria: Criteria) -> bool:
    return record.price >= criteria.price_min


def _within_stops(record: Record, criteria: Criteria) -> bool:
    return record.stop_count <= criteria.stops_max


def _within_deadhead(record: Record, criteria: Criteria) -> bool:
    return record.deadhead <= criteria.deadhead_max


def _departs_in_time(record: Record, criteria: Criteria) -> bool:
    if not criteria.latest_departure or not record.scheduled_time:
        return True
    return not departs_after(
        record.scheduled_time, criteria.latest_departure
    )


def _fits_duration(record: Record, criteria: Criteria) -> bool:
    if criteria.duration is DurationBucket.ANY:
        return True
    start = parse_datetime(record.scheduled_time)
    end = parse_datetime(record.end_time)
    if start is None or end is None:
        return False
    days = (end.date() - start.date()).days
    if criteria.duration is DurationBucket.SAMEDAY:
        return days == 0
    if criteria.duration is DurationBucket.OVERNIGHT:
        return days == 1
    return days >= 2


def _passes_text(record: Record, criteria: Criteria) -> bool:
    text_filter = criteria.text_filter
    if text_filter is None:
        return True
    value = str(getattr(record, text_filter.field, "")).lower()
    found = text_filter.text.lower() in value
    if text_filter.mode is TextFilterMode.EXCLUDE:
        return not found
    return found


# Cheapest and most discriminating first
_PREDICATES: tuple[tuple[str, Callable[[Record, Criteria], bool]], ...] = (
    ("distance", _within_distance),
    ("price", _meets_price),
    ("stops", _within_stops),
    ("deadhead", _within_deadhead),
    ("departure", _departs_in_time),
    ("duration", _fits_duration),
    ("text", _passes_text),
)


class CriteriaFilter:
    """Evaluate records against the active criteria."""

    @staticmethod
    def matches(
        record: Record,
        criteria: Criteria,
        accepted_lanes: set[Lane] | None = None,
    ) -> bool:
        """Return True when *record* satisfies every predicate.

        Predicates short-circuit in a fixed order. The last one,
        similar-entry suppression, rejects a record whose lane is
        already in *accepted_lanes* (the lanes accepted earlier in the
        same cycle) when ``hide_similar`` is set. Nothing is mutated.
        """
        for _name, predicate in _PREDICATES:
            if not predicate(record, criteria):
                return False

        if (
            criteria.hide_similar
            and accepted_lanes
            and record.origin
            and record.destination
            and record.lane in accepted_lanes
        ):
            return False
        return True

    @staticmethod
    def rejection_reason(
        record: Record, criteria: Criteria,
    ) -> str | None:
        """Name of the first predicate that rejects *record*, if any."""
        for name, predicate in _PREDICATES:
            if not predicate(record, criteria):
                return name
        return None

    @staticmethod
    def filter_records(
        records: list[Record],
        criteria: Criteria,
    ) -> tuple[list[Record], int]:
        """Keep the records that match, in input order.

        Returns the matching records and the count of rejected ones.
        """
        kept: list[Record] = []
        accepted_lanes: set[Lane] = set()
        rejected = 0

        for record in records:
            if CriteriaFilter.matches(record, criteria, accepted_lanes):
                kept.append(record)
                if record.origin and record.destination:
                    accepted_lanes.add(record.lane)
            else:
                rejected += 1

        if rejected:
            logger.debug(
                "Criteria rejected %d of %d records",
                rejected,
                len(records),
            )
        return kept, rejected
