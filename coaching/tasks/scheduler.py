import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

from coaching.api.v1.notifications.service import RealtimePublisher
from coaching.core.clock import Clock, utcnow

from .attendance_checks import check_teacher_lateness, cleanup_notifications, send_class_reminders

logger = logging.getLogger(__name__)

ATTENDANCE_SCANS_JOB_ID = "attendance-scans"


class PeriodicScheduler:
    """Runs the attendance scans every interval_seconds on the application's event loop."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        interval_seconds: int,
        clock: Clock = utcnow,
        publisher: Optional[RealtimePublisher] = None,
    ) -> None:
        self._session_factory = session_factory
        self._interval = interval_seconds
        self._clock = clock
        self._publisher = publisher
        self.scheduler = AsyncIOScheduler(timezone="UTC")

    def start(self) -> None:
        if self.scheduler.running:
            return
        self.scheduler.add_job(
            self.run_once,
            IntervalTrigger(seconds=self._interval),
            id=ATTENDANCE_SCANS_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Periodic scheduler started (every %ss)", self._interval)

    def stop(self) -> None:
        if not self.scheduler.running:
            return
        self.scheduler.shutdown(wait=False)
        logger.info("Periodic scheduler stopped")

    async def run_once(self) -> None:
        """One pass over every scan; a failing scan does not stop the others."""
        now = self._clock()
        window = max(1, self._interval // 60)
        async with self._session_factory() as db:
            for name, scan in (
                ("teacher lateness", lambda: check_teacher_lateness(db, now, self._publisher)),
                ("class reminders", lambda: send_class_reminders(db, now, self._publisher, window)),
                ("notification cleanup", lambda: cleanup_notifications(db, now)),
            ):
                try:
                    await scan()
                except Exception:
                    logger.exception("Periodic %s scan failed", name)
                    await db.rollback()
