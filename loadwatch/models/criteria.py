# loadwatch/models/criteria.py

"""User-supplied filter configuration for one monitoring cycle."""

import logging
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any

logger = logging.getLogger("loadwatch.criteria")


class DurationBucket(str, Enum):
    """How far apart pickup and delivery may fall on the calendar."""

    SAMEDAY = "sameday"
    OVERNIGHT = "overnight"
    MULTIDAY = "multiday"
    ANY = "any"


class TextFilterMode(str, Enum):
    """Whether a text match rejects or is required."""

    EXCLUDE = "exclude"
    WHITELIST = "whitelist"


TEXT_FILTER_FIELDS: tuple[str, ...] = (
    "origin",
    "destination",
    "equipment",
)


@dataclass(frozen=True)
class TextFilter:
    """Case-insensitive substring filter on one text field."""

    field: str
    mode: TextFilterMode
    text: str

    @classmethod
    def from_dict(cls, data: Any) -> "TextFilter | None":
        """Build a filter from a wire dict; ``None`` when unusable."""
        if not isinstance(data, dict):
            return None
        field_name = str(data.get("field", "")).lower()
        text = str(data.get("text", "")).strip()
        if field_name not in TEXT_FILTER_FIELDS or not text:
            return None
        try:
            mode = TextFilterMode(
                str(data.get("mode", "exclude")).lower()
            )
        except ValueError:
            logger.warning(
                "Unknown text filter mode %r, ignoring filter",
                data.get("mode"),
            )
            return None
        return cls(field=field_name, mode=mode, text=text)

    def to_dict(self) -> dict[str, str]:
        """Serialise to the wire format."""
        return {
            "field": self.field,
            "mode": self.mode.value,
            "text": self.text,
        }


# Wire (camelCase) key -> dataclass attribute
_WIRE_KEYS: dict[str, str] = {
    "distanceMin": "distance_min",
    "distanceMax": "distance_max",
    "priceMin": "price_min",
    "stopsMax": "stops_max",
    "deadheadMax": "deadhead_max",
    "latestDeparture": "latest_departure",
    "duration": "duration",
    "textFilter": "text_filter",
    "hideSimilar": "hide_similar",
    "priceChangeThresholdPct": "price_change_threshold_pct",
}


@dataclass(frozen=True)
class Criteria:
    """Immutable snapshot of the active match conditions.

    Replacing the engine's criteria swaps the whole object; a cycle
    that already started keeps evaluating against the old one.
    """

    distance_min: float = 0.0
    distance_max: float = 9999.0
    price_min: float = 0.0
    stops_max: int = 10
    deadhead_max: float = 50.0
    latest_departure: str = ""
    duration: DurationBucket = DurationBucket.ANY
    text_filter: TextFilter | None = None
    hide_similar: bool = True
    price_change_threshold_pct: float = 20.0

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any] | None,
        base: "Criteria | None" = None,
    ) -> "Criteria":
        """Merge a wire dict over *base* (or the defaults).

        Keys may be camelCase or snake_case. Absent keys fall back to
        the base value; keys with values that cannot be coerced are
        logged and ignored rather than rejected.
        """
        merged: dict[str, Any] = {
            f.name: getattr(base or cls(), f.name)
            for f in fields(cls)
        }
        if not isinstance(data, dict):
            return cls(**merged)

        for key, raw in data.items():
            attr = _WIRE_KEYS.get(key, key)
            if attr not in merged:
                continue
            try:
                merged[attr] = cls._coerce(attr, raw)
            except (TypeError, ValueError):
                logger.warning(
                    "Ignoring invalid criteria value %s=%r",
                    key,
                    raw,
                )
        return cls(**merged)

    @staticmethod
    def _coerce(attr: str, raw: Any) -> Any:
        """Convert a raw wire value to the attribute's type."""
        if attr in ("distance_min", "distance_max", "price_min",
                    "deadhead_max", "price_change_threshold_pct"):
            if isinstance(raw, bool):
                raise TypeError(attr)
            return float(raw)
        if attr == "stops_max":
            if isinstance(raw, bool):
                raise TypeError(attr)
            return int(raw)
        if attr == "latest_departure":
            return "" if raw is None else str(raw).strip()
        if attr == "duration":
            return DurationBucket(str(raw).lower())
        if attr == "text_filter":
            return TextFilter.from_dict(raw)
        if attr == "hide_similar":
            if not isinstance(raw, bool):
                raise TypeError(attr)
            return raw
        raise ValueError(attr)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the wire (camelCase) format."""
        return {
            "distanceMin": self.distance_min,
            "distanceMax": self.distance_max,
            "priceMin": self.price_min,
            "stopsMax": self.stops_max,
            "deadheadMax": self.deadhead_max,
            "latestDeparture": self.latest_departure,
            "duration": self.duration.value,
            "textFilter": (
                self.text_filter.to_dict()
                if self.text_filter
                else None
            ),
            "hideSimilar": self.hide_similar,
            "priceChangeThresholdPct": (
                self.price_change_threshold_pct
            ),
        }
