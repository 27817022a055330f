import logging
import threading
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from config import get_settings
from database import session_scope
from delivery import RenewalSweep, SweepReport
from notifications import LogNotifier, Notifier


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, notifier: Optional[Notifier] = None) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone="UTC")
        self.notifier = notifier or LogNotifier()
        self.interval_minutes = settings.sweep_interval_minutes
        self._lock = threading.Lock()

    def run_sweep(
        self,
        source: str = "manual",
        now: Optional[datetime] = None,
        target_hour: Optional[int] = None,
        target_minute: Optional[int] = None,
        session: Optional[Session] = None,
    ) -> Optional[SweepReport]:
        if not self._lock.acquire(blocking=False):
            logger.warning(f"scheduler_run: source={source} skipped, sweep already running")
            return None
        try:
            logger.info(f"scheduler_run: source={source}")
            if session is not None:
                report = self._sweep(session, now, target_hour, target_minute)
            else:
                with session_scope() as scoped:
                    report = self._sweep(scoped, now, target_hour, target_minute)
            logger.info(
                f"scheduler_run: source={source} "
                f"projections_created={report.projections_created}"
            )
            return report
        finally:
            self._lock.release()

    def _sweep(
        self,
        session: Session,
        now: Optional[datetime],
        target_hour: Optional[int],
        target_minute: Optional[int],
    ) -> SweepReport:
        return RenewalSweep(session, self.notifier).run(
            now=now, target_hour=target_hour, target_minute=target_minute
        )

    def _run_job(self, source: str) -> None:
        try:
            self.run_sweep(source)
        except Exception:
            logger.exception(f"scheduler_run: source={source} failed")

    def start(self) -> None:
        self.notifier.start()
        self._run_job("startup")

        trigger = IntervalTrigger(minutes=self.interval_minutes)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["hourly"],
            id="renewal_sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with renewal sweep every {self.interval_minutes} minutes")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.notifier.stop()
