"""
Recurring poll cycle scheduling.

Uses APScheduler to run `Dispatcher.run_cycle()` on an interval. Cycles
never overlap: the job allows a single running instance and a lock also
guards manual `run_now()` calls.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_MAX_INSTANCES,
    EVENT_JOB_MISSED,
    JobEvent,
)
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from feedbot.config import get_config
from feedbot.core.dispatcher import CycleError, Dispatcher
from feedbot.exceptions import StoreUnavailableError
from feedbot.logger import get_logger

logger = get_logger(__name__)

POLL_JOB_ID = "poll_cycle"

ErrorHandler = Callable[[list[CycleError]], None]


@dataclass
class JobStatus:
    """Status of the poll job."""

    job_id: str
    name: str
    next_run_time: Optional[datetime]
    is_active: bool
    trigger: str


@dataclass
class SchedulerStats:
    """Statistics for scheduled poll cycles."""

    total_cycles: int = 0
    successful_cycles: int = 0
    failed_cycles: int = 0
    skipped_cycles: int = 0
    total_errors: int = 0
    last_cycle_time: Optional[datetime] = None
    last_errors: list[CycleError] = field(default_factory=list)
    last_failure: Optional[str] = None
    uptime_seconds: float = 0.0


class PollScheduler:
    """Runs poll cycles on a fixed interval in a background thread."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        interval_minutes: Optional[int] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        """Initialize poll scheduler.

        Args:
            dispatcher: Dispatcher whose run_cycle() is invoked each tick
            interval_minutes: Minutes between cycles (default from config)
            error_handler: Called with the error list of each cycle that
                produced errors, e.g. to alert guild contacts
        """
        config = get_config().scheduler

        self.dispatcher = dispatcher
        self.interval_minutes = interval_minutes or config.interval_minutes
        self.error_handler = error_handler
        self._misfire_grace_time = config.misfire_grace_time
        self._coalesce = config.coalesce

        # Single worker: at most one cycle thread at any time
        self.scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            timezone=config.timezone,
        )

        self.stats = SchedulerStats()
        self.start_time: Optional[datetime] = None
        self._cycle_lock = threading.Lock()

        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self.scheduler.add_listener(
            self._on_job_skipped, EVENT_JOB_MAX_INSTANCES | EVENT_JOB_MISSED
        )

    def start(self, run_on_start: Optional[bool] = None) -> None:
        """Start the scheduler and register the poll job.

        Args:
            run_on_start: Run the first cycle immediately (default from config)
        """
        if self.scheduler.running:
            logger.warning("Scheduler is already running")
            return

        if run_on_start is None:
            run_on_start = get_config().scheduler.run_on_start

        job_kwargs = {}
        if run_on_start:
            job_kwargs["next_run_time"] = datetime.now(self.scheduler.timezone)

        self.scheduler.add_job(
            func=self._run_cycle_wrapper,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=POLL_JOB_ID,
            name="Poll all feeds",
            max_instances=1,
            coalesce=self._coalesce,
            misfire_grace_time=self._misfire_grace_time,
            replace_existing=True,
            **job_kwargs,
        )

        self.scheduler.start()
        self.start_time = datetime.now()
        logger.info(f"Scheduler started, polling every {self.interval_minutes} minutes")

    def stop(self, wait: bool = True) -> None:
        """Stop the scheduler.

        Args:
            wait: Whether to wait for a running cycle to complete
        """
        if not self.scheduler.running:
            logger.warning("Scheduler is not running")
            return

        self.scheduler.shutdown(wait=wait)
        if self.start_time:
            self.stats.uptime_seconds = (datetime.now() - self.start_time).total_seconds()
        logger.info("Scheduler stopped")

    def is_running(self) -> bool:
        return self.scheduler.running

    def run_now(self) -> list[CycleError]:
        """Run one cycle in the calling thread.

        Returns:
            The cycle's errors; empty if a cycle was already running and
            this call was skipped

        Raises:
            StoreUnavailableError: If the database is unreachable
        """
        return self._run_cycle_wrapper()

    def pause(self) -> bool:
        """Pause the poll job. Returns False if it is not scheduled."""
        if self.scheduler.get_job(POLL_JOB_ID) is None:
            return False
        self.scheduler.pause_job(POLL_JOB_ID)
        logger.info("Polling paused")
        return True

    def resume(self) -> bool:
        """Resume the poll job. Returns False if it is not scheduled."""
        if self.scheduler.get_job(POLL_JOB_ID) is None:
            return False
        self.scheduler.resume_job(POLL_JOB_ID)
        logger.info("Polling resumed")
        return True

    def get_job_status(self) -> Optional[JobStatus]:
        """Get status of the poll job, or None before start()."""
        job = self.scheduler.get_job(POLL_JOB_ID)
        if job is None:
            return None
        return JobStatus(
            job_id=job.id,
            name=job.name,
            next_run_time=job.next_run_time,
            is_active=job.next_run_time is not None,
            trigger=str(job.trigger),
        )

    def get_stats(self) -> SchedulerStats:
        if self.start_time and self.scheduler.running:
            self.stats.uptime_seconds = (datetime.now() - self.start_time).total_seconds()
        return self.stats

    def _run_cycle_wrapper(self) -> list[CycleError]:
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("A poll cycle is still running, skipping this one")
            self.stats.skipped_cycles += 1
            return []

        try:
            self.stats.total_cycles += 1
            self.stats.last_cycle_time = datetime.now()
            errors = self.dispatcher.run_cycle()
        except StoreUnavailableError as e:
            self.stats.failed_cycles += 1
            self.stats.last_failure = str(e)
            raise
        finally:
            self._cycle_lock.release()

        self.stats.successful_cycles += 1
        self.stats.total_errors += len(errors)
        self.stats.last_errors = errors

        for error in errors:
            logger.warning(f"Cycle error: {error}")

        if errors and self.error_handler is not None:
            try:
                self.error_handler(errors)
            except Exception:
                logger.exception("Cycle error handler failed")

        return errors

    def _on_job_error(self, event: JobEvent) -> None:
        exception = event.exception
        if exception is not None:
            logger.error(f"Job {event.job_id} failed: {type(exception).__name__}: {exception}")

    def _on_job_skipped(self, event: JobEvent) -> None:
        self.stats.skipped_cycles += 1
        logger.warning(f"Job {event.job_id} skipped a tick (previous cycle still running or missed)")


def create_scheduler(
    dispatcher: Dispatcher,
    interval_minutes: Optional[int] = None,
    error_handler: Optional[ErrorHandler] = None,
) -> PollScheduler:
    """Create a configured PollScheduler instance."""
    return PollScheduler(
        dispatcher=dispatcher,
        interval_minutes=interval_minutes,
        error_handler=error_handler,
    )
