import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from services import BudgetPeriodService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, session_factory=None) -> None:
        settings = get_settings()
        self.close_hour = settings.close_hour
        self.close_minute = settings.close_minute
        self.session_factory = session_factory
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _session(self):
        if self.session_factory is None:
            return session_scope()
        return session_scope(self.session_factory)

    def _run_job(self, source: str = "manual") -> int:
        logger.info(f"period_close_run: source={source}")
        with self._session() as session:
            count = BudgetPeriodService(session).close_expired_periods()
        logger.info(f"period_close_run: source={source} periods_closed={count}")
        return count

    def start(self) -> None:
        self._run_job("startup")

        label = f"daily_{self.close_hour:02d}:{self.close_minute:02d}"
        trigger = CronTrigger(hour=self.close_hour, minute=self.close_minute)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=[label],
            id="period_close_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = IntervalTrigger(hours=1)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["hourly_safety_net"],
            id="period_close_hourly_safety",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with {label} and hourly safety net")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
