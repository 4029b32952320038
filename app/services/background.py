"""
Background Tasks
Periodic catalog pre-warming, snapshot refresh and cache maintenance
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional
from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class PeriodicJob:
    """A named action re-run every interval_seconds"""
    name: str
    interval_seconds: float
    action: Callable[[], Any]
    run_immediately: bool = False
    runs: int = 0
    failures: int = 0


class BackgroundTaskManager:
    """Runs each registered job in its own loop until stopped"""

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.jobs: Dict[str, PeriodicJob] = {}
        self.tasks: Dict[str, asyncio.Task] = {}
        self.running = False
        self._sleep = sleep

    def add_job(
        self,
        name: str,
        interval_seconds: float,
        action: Callable[[], Any],
        run_immediately: bool = False,
    ) -> PeriodicJob:
        """Register a job; it starts with the next start()"""
        job = PeriodicJob(name, interval_seconds, action, run_immediately)
        self.jobs[name] = job
        return job

    async def run_job(self, job: PeriodicJob) -> bool:
        """
        Run one job once; failures are logged, never raised

        Returns:
            True if the action completed
        """
        job.runs += 1
        try:
            result = job.action()
            if inspect.isawaitable(result):
                await result
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            job.failures += 1
            logger.error(f"Background job {job.name} failed: {e}", exc_info=True)
            return False

    async def job_loop(self, job: PeriodicJob):
        """Loop for a single job"""
        logger.info(f"Background job {job.name} scheduled (interval: {job.interval_seconds:.0f}s)")
        try:
            if job.run_immediately:
                await self.run_job(job)
            while self.running:
                await self._sleep(job.interval_seconds)
                await self.run_job(job)
        except asyncio.CancelledError:
            logger.debug(f"Background job {job.name} cancelled")

    def start(self):
        """Start every registered job"""
        self.running = True
        for name, job in self.jobs.items():
            task = self.tasks.get(name)
            if task is None or task.done():
                self.tasks[name] = asyncio.create_task(self.job_loop(job))
        logger.info(f"Background task manager started ({len(self.tasks)} jobs)")

    async def stop(self):
        """Cancel every job loop and wait for them to finish"""
        self.running = False
        pending = [task for task in self.tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self.tasks.clear()
        logger.info("Background task manager stopped")


def build_default_jobs(manager: BackgroundTaskManager, state) -> List[PeriodicJob]:
    """
    Register the addon's standard schedule on a manager

    Args:
        manager: Task manager to populate
        state: AddonState with catalogs, tables and cache

    Returns:
        The registered jobs
    """
    catalogs = state.catalogs

    async def prewarm_trending():
        metas = await catalogs.get_catalog_page("anilist-trending", {})
        logger.info(f"Pre-warmed anilist-trending ({len(metas)} items)")

    async def prewarm_season():
        metas = await catalogs.get_catalog_page("anilist-season", {})
        logger.info(f"Pre-warmed anilist-season ({len(metas)} items)")

    def evict_cache():
        removed = state.cache.evict_expired()
        if removed:
            logger.info(f"Evicted {removed} expired cache entries")

    return [
        manager.add_job(
            "prewarm-trending",
            settings.PREWARM_TRENDING_INTERVAL_HOURS * 3600,
            prewarm_trending,
            run_immediately=True,
        ),
        manager.add_job(
            "prewarm-season",
            settings.PREWARM_SEASON_INTERVAL_HOURS * 3600,
            prewarm_season,
            run_immediately=True,
        ),
        manager.add_job(
            "refresh-offline-db",
            settings.OFFLINE_DB_REFRESH_HOURS * 3600,
            state.offline_db.refresh,
        ),
        manager.add_job(
            "refresh-fribb-db",
            settings.FRIBB_DB_REFRESH_HOURS * 3600,
            state.fribb_db.refresh,
        ),
        manager.add_job(
            "evict-cache",
            settings.CACHE_EVICT_INTERVAL_MINUTES * 60,
            evict_cache,
        ),
    ]
