"""Catalog offering -> class record mapping."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from learnnow.catalog.catalog_types import Offering


def map_offering(offering: Offering) -> Dict[str, Any]:
    # Missing values pass through as None; the store rejects them later.
    return {
        "name": offering.title,
        "description": offering.department,
        "number": offering.offering_name,
        "section": offering.section_name,
        "term": offering.term,
        "instructor": offering.instructor,
    }


def map_offerings(offerings: Iterable[Offering]) -> List[Dict[str, Any]]:
    return [map_offering(o) for o in offerings]
