"""Shared catalog ingestion data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _iso(dt: Optional[datetime]) -> Optional[str]:
    if not dt:
        return None
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Unit:
    """One school/department in the external catalog.

    The name is used verbatim as a path segment for the offerings query.
    """

    name: str
    raw: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Offering:
    """One course section as published by the catalog source.

    Fields are kept as-is (possibly None); nothing is validated here.
    """

    title: Optional[str] = None
    department: Optional[str] = None
    offering_name: Optional[str] = None
    section_name: Optional[str] = None
    term: Optional[str] = None
    instructor: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None


@dataclass
class UnitOutcome:
    unit: str
    submitted: int = 0
    inserted: int = 0
    succeeded: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit": self.unit,
            "submitted": self.submitted,
            "inserted": self.inserted,
            "succeeded": self.succeeded,
            "error": self.error,
        }


@dataclass
class IngestionRun:
    """One execution of the catalog pipeline across all units."""

    run_id: str
    status: str = "pending"  # pending|running|completed|failed
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    outcomes: List[UnitOutcome] = field(default_factory=list)

    @property
    def succeeded_units(self) -> List[UnitOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed_units(self) -> List[UnitOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def inserted_total(self) -> int:
        return sum(o.inserted for o in self.outcomes)

    def to_dict(self) -> Dict[str, Any]:
        # A live run may still be appending outcomes; read them once.
        outcomes = list(self.outcomes)
        succeeded = sum(1 for o in outcomes if o.succeeded)
        return {
            "run_id": self.run_id,
            "status": self.status,
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "error": self.error,
            "units_total": len(outcomes),
            "units_succeeded": succeeded,
            "units_failed": len(outcomes) - succeeded,
            "inserted_total": sum(o.inserted for o in outcomes),
            "outcomes": [o.to_dict() for o in outcomes],
        }
