import logging
import time
from typing import List, Dict, Any, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.triggers.cron import CronTrigger

from ..database import SessionLocal
from ..utils.time_utils import to_utc_isoformat, utc_now
from .maintenance_jobs import JOBS_BY_ID, MAINTENANCE_JOBS, MaintenanceJob

logger = logging.getLogger(__name__)


class SchedulerService:
    """Service for running the periodic maintenance jobs."""

    def __init__(self, session_factory=SessionLocal):
        self.scheduler = None
        self.session_factory = session_factory
        self.last_runs: Dict[str, Dict[str, Any]] = {}
        self._initialize_scheduler()

    def _initialize_scheduler(self):
        """Initialize the APScheduler instance and register the job catalogue."""
        jobstores = {
            'default': MemoryJobStore(),
        }
        executors = {
            'default': AsyncIOExecutor(),
        }
        job_defaults = {
            'coalesce': True,
            'max_instances': 1
        }

        self.scheduler = AsyncIOScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone="UTC"
        )
        self._setup_recurring_jobs()
        logger.info("Scheduler service initialized")

    def start(self):
        """Start the scheduler."""
        if self.scheduler and not self.scheduler.running:
            self.scheduler.start()
            logger.info(f"Scheduler service started with {len(MAINTENANCE_JOBS)} jobs")

    def shutdown(self):
        """Shutdown the scheduler."""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler service stopped")

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def _setup_recurring_jobs(self):
        """Register every maintenance job with its cron trigger."""
        for job in MAINTENANCE_JOBS:
            self.scheduler.add_job(
                func=self._run_job,
                trigger=CronTrigger(timezone="UTC", **job.cron),
                args=[job.id],
                id=job.id,
                name=job.name,
                replace_existing=True
            )

        logger.info("Maintenance jobs scheduled")

    def get_scheduled_jobs(self) -> List[Dict[str, Any]]:
        """Get list of all scheduled jobs."""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run_time = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run_time": next_run_time.isoformat() if next_run_time else None,
                "trigger": str(job.trigger),
                "last_run": self.last_runs.get(job.id)
            })
        return jobs

    async def run_job_now(self, job_id: str) -> Dict[str, Any]:
        """Run a single job immediately, outside its schedule."""
        if job_id not in JOBS_BY_ID:
            raise ValueError(f"Unknown job: {job_id}")

        logger.info(f"Manually triggering job {job_id}")
        return await self._run_job(job_id)

    async def _run_job(self, job_id: str, now=None) -> Dict[str, Any]:
        """Execute one job in its own session. Errors are logged, never raised."""
        job: MaintenanceJob = JOBS_BY_ID[job_id]
        started_at = utc_now()
        started = time.monotonic()
        result: Optional[int] = None
        error: Optional[str] = None

        logger.info(f"[Scheduler] Running: {job.name}")
        db = self.session_factory()
        try:
            result = await job.func(db, now=now)
        except Exception as e:
            db.rollback()
            error = str(e)
            logger.error(f"[Scheduler] Job {job_id} failed: {e}", exc_info=True)
        finally:
            db.close()

        run = {
            "job_id": job_id,
            "success": error is None,
            "result": result,
            "error": error,
            "started_at": to_utc_isoformat(started_at),
            "duration_ms": int((time.monotonic() - started) * 1000)
        }
        self.last_runs[job_id] = run
        return run


# Global scheduler service instance
scheduler_service = SchedulerService()
