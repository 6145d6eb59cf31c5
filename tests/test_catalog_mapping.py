import unittest

from learnnow.catalog.catalog_types import Offering
from learnnow.catalog.mapping import map_offering, map_offerings


class TestCatalogMapping(unittest.TestCase):
    def test_map_offering_fields(self):
        offering = Offering(
            title="Calculus I",
            department="Math",
            offering_name="EN.110.108",
            section_name="01",
            term="Fall2024",
            instructor="A. Turing",
        )
        self.assertEqual(
            map_offering(offering),
            {
                "name": "Calculus I",
                "description": "Math",
                "number": "EN.110.108",
                "section": "01",
                "term": "Fall2024",
                "instructor": "A. Turing",
            },
        )

    def test_missing_fields_pass_through_as_none(self):
        rec = map_offering(Offering(title="Seminar", section_name="02"))
        self.assertEqual(rec["name"], "Seminar")
        self.assertIsNone(rec["number"])
        self.assertIsNone(rec["term"])

    def test_map_offerings_preserves_order(self):
        offerings = [Offering(title=f"Course {i}", offering_name=f"AS.100.{i:03d}") for i in range(5)]
        numbers = [r["number"] for r in map_offerings(offerings)]
        self.assertEqual(numbers, [f"AS.100.{i:03d}" for i in range(5)])


if __name__ == "__main__":
    unittest.main()
