# tests/test_criteria_model.py

"""Tests for Criteria merging and serialisation."""

import unittest

from loadwatch.models.criteria import (
    Criteria,
    DurationBucket,
    TextFilter,
    TextFilterMode,
)


class TestCriteriaDefaults(unittest.TestCase):
    """Verify the default criteria."""

    def test_defaults(self) -> None:
        c = Criteria()
        self.assertEqual(c.distance_min, 0.0)
        self.assertEqual(c.distance_max, 9999.0)
        self.assertEqual(c.stops_max, 10)
        self.assertEqual(c.deadhead_max, 50.0)
        self.assertIs(c.duration, DurationBucket.ANY)
        self.assertIsNone(c.text_filter)
        self.assertTrue(c.hide_similar)

    def test_none_gives_defaults(self) -> None:
        """from_dict(None) is the default criteria."""
        self.assertEqual(Criteria.from_dict(None), Criteria())


class TestCriteriaFromDict(unittest.TestCase):
    """Verify merge semantics of Criteria.from_dict."""

    def test_camel_case_keys(self) -> None:
        c = Criteria.from_dict({"distanceMax": 300, "priceMin": "450"})
        self.assertEqual(c.distance_max, 300.0)
        self.assertEqual(c.price_min, 450.0)

    def test_snake_case_keys(self) -> None:
        c = Criteria.from_dict({"stops_max": 2})
        self.assertEqual(c.stops_max, 2)

    def test_absent_keys_fall_back_to_base(self) -> None:
        """Keys missing from the payload keep the base value."""
        base = Criteria(price_min=800.0, stops_max=1)
        c = Criteria.from_dict({"distanceMax": 300}, base=base)
        self.assertEqual(c.price_min, 800.0)
        self.assertEqual(c.stops_max, 1)
        self.assertEqual(c.distance_max, 300.0)

    def test_invalid_values_ignored(self) -> None:
        """Uncoercible values are dropped, never raised."""
        with self.assertLogs("loadwatch.criteria", level="WARNING"):
            c = Criteria.from_dict(
                {"distanceMax": "far", "duration": "weekly"}
            )
        self.assertEqual(c.distance_max, 9999.0)
        self.assertIs(c.duration, DurationBucket.ANY)

    def test_bool_rejected_for_numbers(self) -> None:
        """True is not accepted as a number."""
        c = Criteria.from_dict({"stopsMax": True})
        self.assertEqual(c.stops_max, 10)

    def test_unknown_keys_ignored(self) -> None:
        c = Criteria.from_dict({"colour": "blue"})
        self.assertEqual(c, Criteria())

    def test_text_filter(self) -> None:
        c = Criteria.from_dict(
            {
                "textFilter": {
                    "field": "origin",
                    "mode": "whitelist",
                    "text": "TX",
                }
            }
        )
        self.assertEqual(
            c.text_filter,
            TextFilter("origin", TextFilterMode.WHITELIST, "TX"),
        )

    def test_text_filter_unknown_field_dropped(self) -> None:
        c = Criteria.from_dict(
            {"textFilter": {"field": "shipper", "text": "ACME"}}
        )
        self.assertIsNone(c.text_filter)

    def test_round_trip_through_wire_format(self) -> None:
        """A saved criteria record loads back unchanged."""
        c = Criteria(
            distance_max=300.0,
            duration=DurationBucket.OVERNIGHT,
            text_filter=TextFilter("equipment", TextFilterMode.EXCLUDE, "reefer"),
            hide_similar=False,
        )
        self.assertEqual(Criteria.from_dict(c.to_dict()), c)


if __name__ == "__main__":
    unittest.main()
