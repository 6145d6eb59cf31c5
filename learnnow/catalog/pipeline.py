"""Catalog refresh pipeline.

fetch schools -> for each school: fetch offerings -> map -> submit one batch.

Schools are processed one at a time. A failure while handling one school is
recorded as that school's outcome and the run moves on; only a failure to
fetch the school list aborts the run. Nothing is retried or deduplicated, so
running twice against the same catalog appends duplicate classes.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Protocol

from learnnow.catalog.catalog_types import IngestionRun, Offering, Unit, UnitOutcome
from learnnow.catalog.loaders import BulkLoader
from learnnow.catalog.mapping import map_offerings
from learnnow.catalog.sis_client import SourceUnavailable

logger = logging.getLogger(__name__)


class CatalogFetcher(Protocol):
    def list_units(self) -> List[Unit]:
        ...

    def list_offerings(self, unit: Unit) -> List[Offering]:
        ...


def new_run() -> IngestionRun:
    return IngestionRun(run_id=uuid.uuid4().hex)


class IngestionPipeline:
    def __init__(self, fetcher: CatalogFetcher, loader: BulkLoader):
        self.fetcher = fetcher
        self.loader = loader

    def run(self, run: Optional[IngestionRun] = None) -> IngestionRun:
        """Execute one run and return it with per-unit outcomes in unit order.

        Raises SourceUnavailable if the unit list cannot be fetched. Any error at
        that stage marks the run failed before it propagates.
        """
        run = run or new_run()
        run.status = "running"
        run.started_at = datetime.now(timezone.utc)

        try:
            units = self.fetcher.list_units()
        except Exception as e:
            run.status = "failed"
            run.error = str(e) if isinstance(e, SourceUnavailable) else f"{type(e).__name__}: {e}"
            run.finished_at = datetime.now(timezone.utc)
            logger.error(f"[catalog] run={run.run_id} aborted: unit list unavailable: {e}")
            raise

        logger.info(f"[catalog] run={run.run_id} units={len(units)}")
        for unit in units:
            outcome = self._process_unit(unit)
            run.outcomes.append(outcome)

        run.status = "completed"
        run.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"[catalog] run={run.run_id} completed succeeded={len(run.succeeded_units)} "
            f"failed={len(run.failed_units)} inserted={run.inserted_total}"
        )
        return run

    def _process_unit(self, unit: Unit) -> UnitOutcome:
        outcome = UnitOutcome(unit=unit.name)
        try:
            offerings = self.fetcher.list_offerings(unit)
            records = map_offerings(offerings)
            outcome.submitted = len(records)
            inserted = self.loader.insert_batch(records)
        except Exception as e:
            # Any failure stays with this unit.
            outcome.error = f"{type(e).__name__}: {e}"
            logger.warning(f"[catalog] unit={unit.name} failed submitted={outcome.submitted}: {outcome.error}")
            return outcome

        outcome.inserted = len(inserted)
        outcome.succeeded = True
        logger.info(f"[catalog] unit={unit.name} inserted={outcome.inserted}")
        return outcome
