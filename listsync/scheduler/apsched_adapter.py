"""APScheduler wrapper owning per-list timers and the global processing timer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config import ConfigRepository, TriggerKind, build_cron_trigger
from ..engine import ThreadPoolManager
from ..errors import InvalidSchedule
from ..logging_conf import configure_logging

LIST_JOB_PREFIX = "list::"
GLOBAL_JOB_ID = "global::processing"


def list_job_id(list_id: int) -> str:
    return f"{LIST_JOB_PREFIX}{list_id}"


class APSchedulerAdapter:
    """Install, replace and remove cron timers; fired jobs run on the thread pool.

    The processing callbacks are injected so this module never imports the
    orchestrator.
    """

    def __init__(
        self,
        repository: ConfigRepository,
        thread_pool: ThreadPoolManager,
        process_list_callback: Callable[[int], Any],
        process_batch_callback: Callable[[TriggerKind], Any],
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self.repository = repository
        self.thread_pool = thread_pool
        self.process_list_callback = process_list_callback
        self.process_batch_callback = process_batch_callback
        self.scheduler = scheduler or BackgroundScheduler()
        self.logger = configure_logging().bind(component="scheduler")
        self.started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if not self.started:
            self.reload()
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def reload(self) -> None:
        """Re-derive every timer from the current configuration."""

        global_config = self.repository.load_global_config(refresh=True)
        self.load_scheduled_lists()
        automatic = global_config.automatic_processing
        if automatic.enabled:
            try:
                self.schedule_global(automatic.schedule, global_config.timezone)
            except InvalidSchedule as exc:
                self.logger.error("global_schedule_invalid", error=str(exc))
        else:
            self.unschedule_global()

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    # ------------------------------------------------------------------
    # Per-list timers
    # ------------------------------------------------------------------
    def load_scheduled_lists(self) -> int:
        """Install a timer for every enabled list with a schedule; drop stale ones."""

        timezone = self.repository.load_global_config().timezone
        wanted: set[str] = set()
        for media_list in self.repository.list_lists():
            if not media_list.enabled or not media_list.schedule:
                continue
            try:
                self.schedule_list(media_list.id, media_list.schedule, timezone)
            except InvalidSchedule as exc:
                self.logger.error("job_schedule_invalid", list_id=media_list.id, error=str(exc))
                continue
            wanted.add(list_job_id(media_list.id))
        for job in self.scheduler.get_jobs():
            if job.id.startswith(LIST_JOB_PREFIX) and job.id not in wanted:
                self._remove(job.id)
                self.logger.info("job_unscheduled", job_id=job.id, reason="no_longer_scheduled")
        self.logger.info("scheduled_lists_loaded", count=len(wanted), timezone=timezone)
        return len(wanted)

    def schedule_list(self, list_id: int, expression: str, timezone: str = "UTC") -> None:
        trigger = build_cron_trigger(expression, timezone)
        self.scheduler.add_job(
            self._fire_list,
            trigger=trigger,
            id=list_job_id(list_id),
            args=[list_id],
            replace_existing=True,
        )
        self.logger.info(
            "job_scheduled",
            list_id=list_id,
            schedule=expression,
            timezone=timezone,
            next_run_time=self._next_fire(trigger),
        )

    def unschedule_list(self, list_id: int) -> None:
        if self._remove(list_job_id(list_id)):
            self.logger.info("job_unscheduled", list_id=list_id)

    def unschedule_all(self) -> None:
        for job in self.scheduler.get_jobs():
            if job.id.startswith(LIST_JOB_PREFIX):
                self._remove(job.id)
        self.logger.info("jobs_cleared")

    def is_scheduled(self, list_id: int) -> bool:
        return self.scheduler.get_job(list_job_id(list_id)) is not None

    # ------------------------------------------------------------------
    # Global timer
    # ------------------------------------------------------------------
    def schedule_global(self, expression: str, timezone: str = "UTC") -> None:
        trigger = build_cron_trigger(expression, timezone)
        self.scheduler.add_job(
            self._fire_global,
            trigger=trigger,
            id=GLOBAL_JOB_ID,
            replace_existing=True,
        )
        self.logger.info(
            "global_job_scheduled",
            schedule=expression,
            timezone=timezone,
            next_run_time=self._next_fire(trigger),
        )

    def unschedule_global(self) -> None:
        if self._remove(GLOBAL_JOB_ID):
            self.logger.info("global_job_unscheduled")

    def list_jobs(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run_time": getattr(job, "next_run_time", None),
                    "trigger": str(job.trigger),
                }
            )
        return jobs

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------
    def _fire_list(self, list_id: int) -> None:
        self.thread_pool.submit(self._run_list, list_id)

    def _fire_global(self) -> None:
        self.thread_pool.submit(self._run_global)

    def _run_list(self, list_id: int) -> None:
        self.logger.info("job_fired", list_id=list_id)
        try:
            self.process_list_callback(list_id)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("job_failed", list_id=list_id, error=str(exc))

    def _run_global(self) -> None:
        self.logger.info("global_job_fired")
        try:
            self.process_batch_callback(TriggerKind.SCHEDULED)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("global_job_failed", error=str(exc))

    # ------------------------------------------------------------------
    def _remove(self, job_id: str) -> bool:
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        return True

    @staticmethod
    def _next_fire(trigger: CronTrigger) -> str | None:
        next_fire = trigger.get_next_fire_time(None, datetime.now(trigger.timezone))
        return next_fire.isoformat() if next_fire else None


__all__ = ["APSchedulerAdapter", "GLOBAL_JOB_ID", "list_job_id"]
