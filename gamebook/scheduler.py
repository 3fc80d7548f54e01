"""
APScheduler based automatic backups.

Each BackupManager owns at most one AutoBackupScheduler, started with
BackupManager.start_auto_backup() and stopped by BackupManager.shutdown().
"""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.executors.pool import ThreadPoolExecutor


logger = logging.getLogger(__name__)

AUTO_BACKUP_JOB_ID = 'auto_backup'


class AutoBackupScheduler:
    """
    Periodically snapshots the projects returned by a supplier callable.

    The supplier may be a plain function or a coroutine function returning
    the project list.
    """

    def __init__(self, manager, project_supplier: Callable, interval_minutes: int = 5):
        """
        Initialize the scheduler (not started).

        Args:
            manager: BackupManager receiving the backups
            project_supplier: Callable returning the list of projects to back up
            interval_minutes: Minutes between automatic backups

        Raises:
            ValueError: If interval_minutes is not positive
        """
        if interval_minutes <= 0:
            raise ValueError(f"Invalid auto backup interval: {interval_minutes}")

        self.manager = manager
        self.project_supplier = project_supplier
        self.interval_minutes = interval_minutes

        self.scheduler = BackgroundScheduler(
            executors={'default': ThreadPoolExecutor(max_workers=1)},
            job_defaults={
                'coalesce': True,  # Combine multiple pending runs into one
                'max_instances': 1,  # Never overlap two backups
                'misfire_grace_time': 300
            },
            timezone='UTC'
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """Schedule the interval job and start the scheduler."""
        if self.scheduler.running:
            logger.info("Auto backup scheduler already running")
            return

        self.scheduler.add_job(
            func=self.run_backup,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=AUTO_BACKUP_JOB_ID,
            name='Automatic Backup',
            replace_existing=True
        )
        self.scheduler.start()
        logger.info(f"Auto backup started with interval of {self.interval_minutes} minutes")

    def stop(self):
        """Stop the scheduler without waiting for a running backup."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Auto backup stopped")

    async def _backup(self):
        projects = self.project_supplier()
        if inspect.isawaitable(projects):
            projects = await projects
        return await self.manager.create_backup(projects)

    def run_backup(self) -> Optional[str]:
        """
        Create one backup. Called from the scheduler's worker thread.

        Failures are logged so the schedule keeps running.

        Returns:
            Version of the created backup, or None on failure
        """
        try:
            metadata = asyncio.run(self._backup())
        except Exception as e:
            logger.error(f"Auto backup failed: {e}")
            return None

        logger.info(f"Auto backup completed: {metadata.version}")
        return metadata.version

    def trigger_now(self) -> str:
        """
        Run a backup as soon as possible, outside the interval.

        Returns:
            Scheduler job ID of the one-time run

        Raises:
            RuntimeError: If the scheduler is not running
        """
        if not self.scheduler.running:
            raise RuntimeError("Auto backup scheduler is not running")

        now = datetime.now(timezone.utc)
        job = self.scheduler.add_job(
            func=self.run_backup,
            trigger=DateTrigger(run_date=now + timedelta(seconds=1)),
            id=f"manual_{int(now.timestamp() * 1000)}",
            name='Manual Backup',
            replace_existing=False
        )
        logger.info("Manually triggered backup")
        return job.id

    def get_scheduled_jobs(self) -> list:
        """
        Get list of all scheduled jobs.

        Returns:
            List of dicts with job information
        """
        jobs = []

        for job in self.scheduler.get_jobs():
            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
                'trigger': str(job.trigger)
            })

        return jobs
