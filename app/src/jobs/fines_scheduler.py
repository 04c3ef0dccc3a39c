import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.core.clock import Clock, system_clock
from app.core.database import async_session_maker
from app.core.logging import jobs_logger
from app.core.settings import Settings, settings as default_settings
from app.src.services.accrual import (
    report_weekly_fines,
    run_overdue_accrual,
    send_due_date_reminders,
)
from app.src.services.notifications import NotificationService, notification_service


class AccrualScheduler:
    """Owns the background circulation jobs.

    All jobs share one lock, so an accrual pass, a reminder run and the
    weekly summary never overlap, whether fired by the timer or by hand.
    """

    def __init__(
        self,
        session_factory=async_session_maker,
        clock: Clock = system_clock,
        notifier: NotificationService = notification_service,
        settings: Settings = default_settings,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.notifier = notifier
        self.settings = settings
        self.scheduler = AsyncIOScheduler(timezone=settings.scheduler_timezone)
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self.scheduler.running

    async def run_once(self):
        async with self._lock:
            return await run_overdue_accrual(
                self.session_factory, self.clock.now(), self.notifier, self.settings
            )

    async def run_reminders(self):
        async with self._lock:
            return await send_due_date_reminders(
                self.session_factory, self.clock.now(), self.notifier, self.settings
            )

    async def run_fine_summary(self):
        async with self._lock:
            return await report_weekly_fines(self.session_factory, self.clock.now())

    def start(self):
        if self.scheduler.running:
            return
        job_defaults = {"max_instances": 1, "coalesce": True, "replace_existing": True}

        self.scheduler.add_job(
            func=self.run_once,
            trigger="interval",
            seconds=self.settings.accrual_interval_seconds,
            id="overdue_accrual",
            **job_defaults,
        )
        self.scheduler.add_job(
            func=self.run_reminders,
            trigger="cron",
            hour=self.settings.reminder_hour,
            minute=0,
            id="due_date_reminders",
            **job_defaults,
        )
        self.scheduler.add_job(
            func=self.run_fine_summary,
            trigger="cron",
            day_of_week=self.settings.fine_summary_day_of_week,
            hour=self.settings.fine_summary_hour,
            minute=0,
            id="weekly_fine_summary",
            **job_defaults,
        )
        self.scheduler.start()
        jobs_logger.info(
            "Circulation scheduler started",
            extra={"event_type": "scheduler_started", "jobs": [job.id for job in self.scheduler.get_jobs()]}
        )

    async def stop(self):
        if not self.scheduler.running:
            return
        self.scheduler.shutdown(wait=False)
        # AsyncIOScheduler completes the shutdown on a later loop iteration
        while self.scheduler.running:
            await asyncio.sleep(0)
        jobs_logger.info("Circulation scheduler stopped", extra={"event_type": "scheduler_stopped"})


accrual_scheduler = AccrualScheduler()


def get_accrual_scheduler() -> AccrualScheduler:
    return accrual_scheduler
