# loadwatch/extraction/strategies.py

"""Extraction strategies, from most specific markup reading to most tolerant."""

import logging
import re
from abc import ABC, abstractmethod
from enum import Enum

from loadwatch.config.settings import Settings
from loadwatch.dom.source import ElementHandle, SourceRef, StructuredSource
from loadwatch.models.record import Record, fallback_record_id

logger = logging.getLogger("loadwatch.extractor")

_NON_NUMERIC_RE = re.compile(r"[^0-9.]")
_LEADING_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")

# Attributes that carry a stable entry identity, in preference order
_ID_ATTRIBUTES: tuple[str, ...] = ("data-load-id", "data-id", "id")


class StrategyKind(str, Enum):
    """Tag identifying each extraction strategy."""

    ITEM_CONTAINERS = "item-containers"
    TABULAR_ROWS = "tabular-rows"
    ORIGIN_ANCHORS = "origin-anchors"


def parse_number(text: str | None) -> float:
    """Parse a display number such as '$1,299.50' or '312 mi'.

    Everything but digits and '.' is stripped first; the leading
    numeric run of what remains is parsed. Missing or unparseable
    input yields 0.0, never NaN.
    """
    if not text:
        return 0.0
    cleaned = _NON_NUMERIC_RE.sub("", text)
    match = _LEADING_NUMBER_RE.match(cleaned)
    return float(match.group(0)) if match else 0.0


def parse_count(text: str | None) -> int:
    """Parse a whole-number count such as '3 stops'."""
    return int(parse_number(text))


def element_record_id(
    element: ElementHandle,
    origin: str,
    destination: str,
    scheduled_time: str,
) -> str:
    """Identity from a source attribute, else the lane/schedule hash."""
    for name in _ID_ATTRIBUTES:
        value = (element.attr(name) or "").strip()
        if value:
            return value
    return fallback_record_id(origin, destination, scheduled_time)


def _text_of(
    parent: ElementHandle, convention: str,
) -> str:
    found = parent.query(convention)
    return found.text() if found is not None else ""


class ExtractionStrategy(ABC):
    """One interpretation of the page markup.

    ``extract`` may raise; the dispatcher treats a raise exactly like
    an empty result and moves on to the next strategy.
    """

    kind: StrategyKind

    def __init__(self) -> None:
        self.settings = Settings()

    @abstractmethod
    def extract(self, source: StructuredSource) -> list[Record]:
        """Return every Record this strategy can read from *source*."""
        ...


class ItemContainerStrategy(ExtractionStrategy):
    """Distinguished item containers with labelled sub-fields."""

    kind = StrategyKind.ITEM_CONTAINERS

    def extract(self, source: StructuredSource) -> list[Record]:
        records: list[Record] = []
        for item in source.query_all("item"):
            try:
                records.append(self._parse_item(item))
            except Exception as exc:
                logger.debug(
                    "[%s] Skipping unreadable item: %s",
                    self.kind.value,
                    exc,
                )
        return records

    @staticmethod
    def _parse_item(item: ElementHandle) -> Record:
        origin = _text_of(item, "item_origin")
        destination = _text_of(item, "item_destination")
        pickup = _text_of(item, "item_pickup_time")
        return Record(
            id=element_record_id(item, origin, destination, pickup),
            price=parse_number(_text_of(item, "item_price")),
            distance=parse_number(_text_of(item, "item_distance")),
            stop_count=parse_count(_text_of(item, "item_stops")),
            origin=origin,
            destination=destination,
            scheduled_time=pickup,
            end_time=_text_of(item, "item_delivery_time"),
            deadhead=parse_number(_text_of(item, "item_deadhead")),
            equipment=_text_of(item, "item_equipment"),
            source_ref=SourceRef.for_element(item),
        )


class TabularRowStrategy(ExtractionStrategy):
    """Generic table rows mapped by fixed column position.

    Columns: origin, destination, distance, price, stops, then the
    optional deadhead, equipment, pickup and delivery.
    """

    kind = StrategyKind.TABULAR_ROWS

    def extract(self, source: StructuredSource) -> list[Record]:
        records: list[Record] = []
        min_columns = self.settings.MIN_ROW_COLUMNS
        for row in source.query_all("row"):
            cells = [c.text() for c in row.query_all("cell")]
            if len(cells) < min_columns:
                continue
            records.append(self._parse_row(row, cells))
        return records

    @staticmethod
    def _parse_row(row: ElementHandle, cells: list[str]) -> Record:
        def cell(index: int) -> str:
            return cells[index] if index < len(cells) else ""

        origin, destination, pickup = cell(0), cell(1), cell(7)
        return Record(
            id=element_record_id(row, origin, destination, pickup),
            origin=origin,
            destination=destination,
            distance=parse_number(cell(2)),
            price=parse_number(cell(3)),
            stop_count=parse_count(cell(4)),
            deadhead=parse_number(cell(5)),
            equipment=cell(6),
            scheduled_time=pickup,
            end_time=cell(8),
            source_ref=SourceRef.for_element(row),
        )


class OriginAnchorStrategy(ExtractionStrategy):
    """Last resort: anchor on anything origin-like and widen to its item.

    Each origin-like node is walked up to the nearest plausible item
    ancestor, which is then searched for the remaining fields. Missing
    numbers default to 0 and missing text to ''.
    """

    kind = StrategyKind.ORIGIN_ANCHORS

    def extract(self, source: StructuredSource) -> list[Record]:
        records: list[Record] = []
        seen: set[ElementHandle] = set()
        for anchor in source.query_all("origin_like"):
            container = anchor.closest("item_ancestor")
            if container is None or container in seen:
                continue
            seen.add(container)
            records.append(self._parse_container(anchor, container))
        return records

    @staticmethod
    def _parse_container(
        anchor: ElementHandle, container: ElementHandle,
    ) -> Record:
        origin = anchor.text()
        destination = _text_of(container, "destination_like")
        pickup = _text_of(container, "time_like")
        return Record(
            id=element_record_id(
                container, origin, destination, pickup
            ),
            origin=origin,
            destination=destination,
            distance=parse_number(
                _text_of(container, "distance_like")
            ),
            price=parse_number(_text_of(container, "price_like")),
            stop_count=parse_count(
                _text_of(container, "stops_like")
            ),
            scheduled_time=pickup,
            source_ref=SourceRef.for_element(container),
        )


def default_strategies() -> list[ExtractionStrategy]:
    """The standard fallback chain, most specific first."""
    return [
        ItemContainerStrategy(),
        TabularRowStrategy(),
        OriginAnchorStrategy(),
    ]
