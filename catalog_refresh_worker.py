#!/usr/bin/env python3
"""SIS catalog refresh worker.

Runs one refresh cycle (or scheduled) that pulls every school's current
offerings from the SIS class catalog and bulk-loads them as class records.

Only one run should be in flight at a time: runs append, so overlapping runs
insert the same sections twice.
"""

from __future__ import annotations

import logging
import os
import time

import schedule
from dotenv import load_dotenv

from learnnow.catalog.catalog_types import IngestionRun
from learnnow.catalog.loaders import HttpBulkLoader, StoreBulkLoader
from learnnow.catalog.pipeline import IngestionPipeline
from learnnow.catalog.sis_client import CatalogConfig, SISCatalogClient, SourceUnavailable
from learnnow.storage.postgres_records import PostgresRecordStore
from learnnow.storage.postgres_schema import ensure_postgres_schema

logger = logging.getLogger(__name__)

DEFAULT_PG_DSN = "dbname=learnnow user=learnnow password=learnnowpass host=localhost port=5432"


def build_pipeline() -> IngestionPipeline:
    config = CatalogConfig.from_env()
    batch_url = os.environ.get("BATCH_DATA_URL", "").strip()
    if batch_url:
        # Submit through a running API instead of writing to Postgres directly.
        loader = HttpBulkLoader(batch_url, timeout_ms=config.timeout_ms)
    else:
        pg_dsn = os.environ.get("PG_DSN", DEFAULT_PG_DSN)
        ensure_postgres_schema(pg_dsn)
        loader = StoreBulkLoader(PostgresRecordStore(pg_dsn))
    return IngestionPipeline(SISCatalogClient(config), loader)


def run_once() -> IngestionRun:
    load_dotenv()
    pipeline = build_pipeline()
    run = pipeline.run()
    for o in run.failed_units:
        print(f"[catalog] failed unit={o.unit} submitted={o.submitted} error={o.error}")
    print(
        f"[catalog] run={run.run_id} units={len(run.outcomes)} succeeded={len(run.succeeded_units)} "
        f"failed={len(run.failed_units)} inserted={run.inserted_total}"
    )
    return run


def _scheduled_job() -> None:
    try:
        run_once()
    except SourceUnavailable as e:
        print(f"[catalog] run aborted: {e}")
    except Exception as e:
        logger.error(f"[catalog] run crashed: {e}", exc_info=True)


def run_scheduled() -> None:
    try:
        hours = float(os.environ.get("REFRESH_INTERVAL_HOURS", "24"))
    except ValueError:
        hours = 24.0
    _scheduled_job()
    schedule.every(max(hours, 0.1)).hours.do(_scheduled_job)
    while True:
        schedule.run_pending()
        time.sleep(30)


def main() -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    mode = (os.environ.get("REFRESH_MODE") or "once").lower().strip()
    if mode in ("scheduled", "daemon"):
        run_scheduled()
        return 0
    try:
        run = run_once()
    except SourceUnavailable as e:
        print(f"[catalog] run aborted: {e}")
        return 1
    return 0 if not run.failed_units else 2


if __name__ == "__main__":
    raise SystemExit(main())
