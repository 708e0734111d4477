# loadwatch/models/record.py

"""Record data model for one entry discovered on the monitored page."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def fallback_record_id(
    origin: str, destination: str, scheduled_time: str,
) -> str:
    """Derive a stable id from the lane and schedule of an entry.

    Used when the markup carries no identifying attribute, so that two
    extractions of the same entry agree on its identity.
    """
    key = "|".join(
        part.strip().lower()
        for part in (origin, destination, scheduled_time)
    )
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
    return f"load-{digest[:12]}"


@dataclass
class Record:
    """A single normalised entry extracted from the live document.

    Equality covers the extracted fields only: ``observed_at``, the
    differ flags and the element reference are excluded so that two
    extractions of an unchanged page compare equal.
    """

    id: str
    price: float = 0.0
    distance: float = 0.0
    stop_count: int = 0
    origin: str = ""
    destination: str = ""
    scheduled_time: str = ""
    end_time: str = ""
    deadhead: float = 0.0
    equipment: str = ""
    source_ref: Any = field(
        default=None, compare=False, repr=False
    )
    observed_at: datetime = field(
        default_factory=datetime.now, compare=False
    )
    is_new: bool = field(default=False, compare=False)
    price_changed: bool = field(default=False, compare=False)
    previous_price: float | None = field(
        default=None, compare=False
    )

    @property
    def is_fresh(self) -> bool:
        """True when the differ flagged this record as new or changed."""
        return self.is_new or self.price_changed

    @property
    def lane(self) -> tuple[str, str]:
        """The (origin, destination) pair used for similarity checks."""
        return self.origin, self.destination

    def price_change_pct(self) -> float:
        """Absolute price change relative to the previous price, in %."""
        if not self.price_changed or not self.previous_price:
            return 0.0
        return (
            abs(self.price - self.previous_price)
            / self.previous_price
            * 100
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict (no element reference)."""
        return {
            "id": self.id,
            "price": self.price,
            "distance": self.distance,
            "stopCount": self.stop_count,
            "origin": self.origin,
            "destination": self.destination,
            "scheduledTime": self.scheduled_time,
            "endTime": self.end_time,
            "deadhead": self.deadhead,
            "equipment": self.equipment,
            "observedAt": self.observed_at.isoformat(),
            "isNew": self.is_new,
            "priceChanged": self.price_changed,
            "previousPrice": self.previous_price,
        }
