"""
APScheduler configuration for the backup loop.

Manages:
- The immediate first cycle
- Fixed-delay rescheduling after each completed cycle
- Shutdown on fatal errors
"""

import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from xtraship.errors import FatalError


logger = logging.getLogger(__name__)

JOB_ID = 'backup_cycle'


class BackupScheduler:
    """
    Runs a backup cycle forever, one at a time.

    The next cycle is scheduled interval_seconds after the previous one
    finishes, so cycles never overlap regardless of how long they take.
    """

    def __init__(self, cycle, interval_seconds: int):
        """
        Args:
            cycle: Object with a run() method executing one full cycle
            interval_seconds: Delay between the end of a cycle and the next start
        """
        self.cycle = cycle
        self.interval_seconds = interval_seconds
        self.error = None

        self.scheduler = BlockingScheduler(
            executors={'default': ThreadPoolExecutor(max_workers=1)},
            job_defaults={
                'coalesce': True,
                'max_instances': 1,
                'misfire_grace_time': None
            },
            timezone='UTC'
        )

    def _schedule(self, run_date: datetime):
        self.scheduler.add_job(
            func=self._tick,
            trigger=DateTrigger(run_date=run_date),
            id=JOB_ID,
            name='Backup cycle',
            replace_existing=True
        )

    def _stop(self, error: FatalError):
        logger.error(f"Backup cycle failed: {error}")
        self.error = error
        self.scheduler.shutdown(wait=False)

    def _tick(self):
        """Run one cycle, then schedule the next or stop on a fatal error."""
        try:
            self.cycle.run()
        except FatalError as e:
            self._stop(e)
            return
        except Exception as e:
            logger.exception("Unexpected error in backup cycle")
            self._stop(FatalError(f"Unexpected error in backup cycle: {e}"))
            return

        next_run = datetime.now(timezone.utc) + timedelta(seconds=self.interval_seconds)
        self._schedule(next_run)
        logger.info(f"Next backup cycle at {next_run.isoformat()}")

    def run_forever(self):
        """
        Start the loop and block.

        Raises:
            FatalError: The error that stopped the loop
        """
        self._schedule(datetime.now(timezone.utc))
        logger.info(f"Backup scheduler started (interval={self.interval_seconds}s)")

        self.scheduler.start()

        if self.error is not None:
            raise self.error
