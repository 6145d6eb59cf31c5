"""In-process registry of catalog refresh runs started from the admin API."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Callable, List, Optional

from learnnow.catalog.catalog_types import IngestionRun
from learnnow.catalog.pipeline import IngestionPipeline, new_run

logger = logging.getLogger(__name__)

MAX_RUNS = 50


class RunRegistry:
    """Keeps the most recent runs so their outcomes can be queried."""

    def __init__(self, max_runs: int = MAX_RUNS):
        self.max_runs = max(1, int(max_runs))
        self.lock = threading.Lock()
        self._runs: "OrderedDict[str, IngestionRun]" = OrderedDict()

    def create(self) -> IngestionRun:
        run = new_run()
        with self.lock:
            self._runs[run.run_id] = run
            while len(self._runs) > self.max_runs:
                self._runs.popitem(last=False)
        return run

    def get(self, run_id: str) -> Optional[IngestionRun]:
        with self.lock:
            return self._runs.get(run_id)

    def list(self) -> List[IngestionRun]:
        with self.lock:
            return list(reversed(self._runs.values()))


def execute_run(pipeline_factory: Callable[[], IngestionPipeline], run: IngestionRun) -> IngestionRun:
    """Run to completion, recording any failure on the run instead of raising."""
    try:
        pipeline = pipeline_factory()
        pipeline.run(run)
    except Exception as e:
        # pipeline.run already marks unit-list failures; this covers setup errors too.
        if run.status != "failed":
            run.status = "failed"
            run.error = f"{type(e).__name__}: {e}"
            run.finished_at = datetime.now(timezone.utc)
        logger.error(f"[catalog] run={run.run_id} failed: {run.error}")
    return run


def start_background_run(
    pipeline_factory: Callable[[], IngestionPipeline],
    registry: RunRegistry,
) -> IngestionRun:
    run = registry.create()
    t = threading.Thread(
        target=execute_run,
        args=(pipeline_factory, run),
        name=f"catalog-refresh-{run.run_id[:8]}",
        daemon=True,
    )
    t.start()
    return run
