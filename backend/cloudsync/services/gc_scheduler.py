"""
GC scheduling for the sync engine.

This module provides the SyncGcService class that handles:
- An hourly sweep that finds recently active workspaces
- One bounded GC run per workspace, spaced out to avoid bursts
- Continuations for workspaces that still have work after a run
"""

import logging
from datetime import timedelta
from typing import Optional

# APScheduler is part of the mandatory backend dependencies; import directly.
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from cloudsync.config import get_settings
from cloudsync.database import db_session
from cloudsync.events import EventType
from cloudsync.events.publisher import publish_event
from cloudsync.metrics import sync_gc_continuations_total
from cloudsync.services.retention_gc import GcTask
from cloudsync.services.retention_gc import WorkspaceGcResult
from cloudsync.services.retention_gc import find_active_workspaces
from cloudsync.services.retention_gc import run_workspace_gc
from cloudsync.utils.time import utc_now

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "sync_gc_sweep"


def workspace_job_id(workspace_id: str) -> str:
    return f"sync_gc_{workspace_id}"


class SyncGcService:
    """Service for scheduling retention GC."""

    def __init__(self, session_factory=None):
        """Initialize the GC service."""
        self.scheduler = AsyncIOScheduler()
        self._initialized = False
        # None means "resolve the default factory at call time"
        self.session_factory = session_factory

    async def start(self):
        """Register the periodic sweep and start the scheduler."""
        if not self._initialized:
            interval = get_settings().gc_sweep_interval_seconds
            self.scheduler.add_job(
                self.run_scheduled_gc,
                IntervalTrigger(seconds=interval),
                id=SWEEP_JOB_ID,
                replace_existing=True,
            )
            self.scheduler.start()
            self._initialized = True
            logger.info(f"Sync GC service started (sweep every {interval}s)")

    async def stop(self):
        """Shutdown the scheduler gracefully."""
        if self._initialized:
            self.scheduler.shutdown()
            self._initialized = False
            logger.info("Sync GC service stopped")

    def schedule_workspace_gc(self, task: GcTask, delay_seconds: float = 0):
        """Queue one GC run for ``task.workspace_id`` *delay_seconds* from now."""

        run_date = utc_now() + timedelta(seconds=delay_seconds)
        job = self.scheduler.add_job(
            self.run_workspace_gc_job,
            DateTrigger(run_date=run_date),
            args=[task],
            id=workspace_job_id(task.workspace_id),
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.debug(
            f"Scheduled GC for {task.workspace_id} at {run_date.isoformat()} "
            f"(continuation {task.continuation_count})"
        )
        return job

    async def run_workspace_gc_job(self, task: GcTask) -> Optional[WorkspaceGcResult]:
        """Execute one bounded GC run and chain a continuation when needed.

        Failures are logged; the next sweep picks the workspace up again.
        """
        try:
            with db_session(self.session_factory) as db:
                result = run_workspace_gc(db, task)
        except Exception:
            logger.exception(f"GC run for workspace {task.workspace_id} failed")
            return None

        await publish_event(
            EventType.GC_COMPLETED,
            {
                "workspace_id": task.workspace_id,
                "purged": result.purged,
                "has_more": result.has_more,
                "continuation_count": task.continuation_count,
            },
        )

        if result.has_more:
            if task.remaining_budget > 0:
                delay = get_settings().gc_continuation_delay_seconds
                self.schedule_workspace_gc(task.continuation(result), delay_seconds=delay)
                sync_gc_continuations_total.inc()
            else:
                logger.info(f"GC continuation budget exhausted for {task.workspace_id}; next sweep resumes")

        return result

    async def run_scheduled_gc(self) -> int:
        """Schedule GC for every recently active workspace.

        Workspaces that already have a pending job are left alone.  Returns
        the number of workspaces newly scheduled.
        """
        with db_session(self.session_factory) as db:
            workspace_ids = find_active_workspaces(db)

        spacing = get_settings().gc_sweep_spacing_seconds
        scheduled = 0
        for workspace_id in workspace_ids:
            # A queued run or continuation keeps its cursors; do not restart it at 0
            if self.scheduler.get_job(workspace_job_id(workspace_id)) is not None:
                logger.info(f"GC for {workspace_id} already pending; sweep leaves it in place")
                continue
            self.schedule_workspace_gc(GcTask(workspace_id=workspace_id), delay_seconds=scheduled * spacing)
            scheduled += 1

        logger.info(f"GC sweep scheduled {scheduled} of {len(workspace_ids)} active workspace(s)")
        return scheduled


# Global GC service instance
gc_service = SyncGcService()


__all__ = ["SyncGcService", "gc_service", "workspace_job_id", "SWEEP_JOB_ID"]
