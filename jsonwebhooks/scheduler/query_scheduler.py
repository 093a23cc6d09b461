"""Periodic scheduling of query runs."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..runner import QueryRunner


logger = structlog.get_logger(__name__)


class QueryScheduler:
    """
    Runs every query once immediately, then once per interval, forever.

    APScheduler only fires the ticks; each tick starts the run as its own
    asyncio task and returns at once. Runs of one query may overlap when the
    interval is shorter than the endpoint latency.
    """

    def __init__(self, runners: Iterable[QueryRunner]):
        self.runners: List[QueryRunner] = list(runners)
        self.scheduler = AsyncIOScheduler()
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.running = False
        self._tasks: Set[asyncio.Task] = set()
        self._closed: Optional[asyncio.Event] = None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def start(self):
        """Start one interval job per query and kick off the first runs."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self._closed = asyncio.Event()
        for runner in self.runners:
            self._add_query_job(runner)

        self.scheduler.start()
        self.running = True

        for runner in self.runners:
            self._spawn(runner)

        logger.info("Query scheduler started", query_count=len(self.runners))

    async def stop(self):
        """Stop ticking and cancel runs that are still in flight."""
        if not self.running:
            return

        self.scheduler.shutdown(wait=False)
        self.running = False

        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self.jobs.clear()
        if self._closed is not None:
            self._closed.set()
        logger.info("Query scheduler stopped", cancelled_runs=len(pending))

    async def wait_closed(self):
        """Block until stop() has been called."""
        if self._closed is None:
            return
        await self._closed.wait()

    def _add_query_job(self, runner: QueryRunner):
        spec = runner.spec
        job_id = f"query:{spec.name}"

        job = self.scheduler.add_job(
            func=self._tick,
            trigger=IntervalTrigger(seconds=spec.interval_seconds),
            id=job_id,
            args=(runner,),
            name=spec.name,
            coalesce=False,
            misfire_grace_time=None,
        )

        self.jobs[job_id] = {
            "job": job,
            "query": spec.name,
            "interval_ms": spec.interval,
            "added_at": datetime.now(timezone.utc),
        }

        logger.debug("Added query job", job_id=job_id, interval_ms=spec.interval)

    async def _tick(self, runner: QueryRunner):
        if self.running:
            self._spawn(runner)

    def _spawn(self, runner: QueryRunner) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(runner.run(), name=f"query:{runner.name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def list_jobs(self) -> List[Dict[str, Any]]:
        """List all scheduled query jobs."""
        job_statuses = []
        for job_id, job_info in self.jobs.items():
            scheduler_job = self.scheduler.get_job(job_id)
            if scheduler_job is None:
                continue
            job_statuses.append({
                "job_id": job_id,
                "query": job_info["query"],
                "interval_ms": job_info["interval_ms"],
                "next_run": scheduler_job.next_run_time.isoformat() if scheduler_job.next_run_time else None,
                "added_at": job_info["added_at"].isoformat(),
            })

        return job_statuses
