"""
Scheduler Service

Runs the daily analytics job and the two retention cleanup jobs on fixed
calendar schedules, one background thread per scheduled job.
"""

import logging
import threading
import traceback
from datetime import datetime, timedelta, tzinfo
from typing import Any, Callable, Dict, List, Optional

from app.analytics.models import ProcessingResult
from app.analytics.services import AnalyticsService
from app.event_tracking.event_types import ErrorLevel
from app.event_tracking.log_store import EventLogStore, parse_date
from app.event_tracking.models import ErrorEvent

from .models import (
    ANALYTICS_CLEANUP,
    DAILY_ANALYTICS,
    LOG_CLEANUP,
    CalendarSchedule,
    JobAlreadyRunningError,
    JobState,
    JobStatus,
    default_schedules,
)

logger = logging.getLogger(__name__)

# Upper bound of a single wait, so wall clock changes are picked up
MAX_WAIT_SECONDS = 60.0


class _Job:
    """Mutable runtime state of one named job."""

    def __init__(self, name: str, schedule: CalendarSchedule, body: Callable[[], Dict[str, Any]]):
        self.name = name
        self.schedule = schedule
        self.body = body
        self.state = JobState.STOPPED
        self.thread: Optional[threading.Thread] = None
        self.stop_event: Optional[threading.Event] = None
        self.next_run_at: Optional[datetime] = None
        self.last_run_at: Optional[datetime] = None
        self.last_outcome: Optional[str] = None
        self.last_error: Optional[str] = None
        self.last_details: Dict[str, Any] = {}


class SchedulerService:
    """Owns the named jobs and their timers."""

    def __init__(
        self,
        analytics_service: AnalyticsService,
        store: EventLogStore,
        tz: tzinfo,
        log_retention_days: int = 30,
        analytics_retention_days: int = 90,
        schedules: Optional[Dict[str, CalendarSchedule]] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """Initialize the scheduler. No job is started until ``start_all_tasks``.

        Args:
            analytics_service: Service running the aggregation and analytics cleanup
            store: Event log store for log cleanup and job ErrorEvents
            tz: Timezone of the schedules and of "yesterday"
            log_retention_days: Days of log files kept by log-cleanup
            analytics_retention_days: Days of analytics rows kept by analytics-cleanup
            schedules: Optional schedule overrides keyed by job name
            clock: Optional callable returning the current aware datetime
        """
        self.analytics_service = analytics_service
        self.store = store
        self.tz = tz
        self.log_retention_days = log_retention_days
        self.analytics_retention_days = analytics_retention_days
        self._clock = clock or (lambda: datetime.now(self.tz))

        self._lock = threading.RLock()
        # Keys of work currently executing: job names and "analytics:<date>"
        self._active: set = set()

        plan = default_schedules(tz)
        plan.update(schedules or {})
        self._jobs: Dict[str, _Job] = {
            DAILY_ANALYTICS: _Job(DAILY_ANALYTICS, plan[DAILY_ANALYTICS], self._daily_analytics_body),
            LOG_CLEANUP: _Job(LOG_CLEANUP, plan[LOG_CLEANUP], self._log_cleanup_body),
            ANALYTICS_CLEANUP: _Job(ANALYTICS_CLEANUP, plan[ANALYTICS_CLEANUP], self._analytics_cleanup_body),
        }

    # ------------------------------------------------------------------
    # Time helpers
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        """Current time in the scheduler's timezone."""
        return self._clock().astimezone(self.tz)

    def yesterday(self) -> str:
        """Yesterday's date (YYYY-MM-DD) in the scheduler's timezone."""
        return (self.now().date() - timedelta(days=1)).isoformat()

    @property
    def job_names(self) -> List[str]:
        return list(self._jobs)

    # ------------------------------------------------------------------
    # Overlap guard
    # ------------------------------------------------------------------

    def _acquire(self, key: str) -> None:
        with self._lock:
            if key in self._active:
                raise JobAlreadyRunningError(key)
            self._active.add(key)

    def _release(self, key: str) -> None:
        with self._lock:
            self._active.discard(key)

    def is_active(self, key: str) -> bool:
        with self._lock:
            return key in self._active

    # ------------------------------------------------------------------
    # Job bodies
    # ------------------------------------------------------------------

    def _process_date(self, date: str) -> ProcessingResult:
        key = f"analytics:{date}"
        self._acquire(key)
        try:
            return self.analytics_service.process_daily_logs(date)
        finally:
            self._release(key)

    def _daily_analytics_body(self) -> Dict[str, Any]:
        result = self._process_date(self.yesterday())
        return {
            "date": result.date,
            "events": result.events_read,
            "recordsWritten": result.records_written,
            "failedBatches": result.failed_batches,
            "hasData": result.has_data,
        }

    def _log_cleanup_body(self) -> Dict[str, Any]:
        deleted = self.store.cleanup(None, self.log_retention_days)
        return {"deletedFiles": len(deleted)}

    def _analytics_cleanup_body(self) -> Dict[str, Any]:
        return {"deletedRows": self.analytics_service.cleanup_old_analytics(self.analytics_retention_days)}

    def _execute(self, job: _Job) -> None:
        """Run a job body once; failures are recorded, never raised."""
        try:
            self._acquire(job.name)
        except JobAlreadyRunningError as e:
            logger.warning(f"Job {job.name} is still running, skipping this firing")
            job.last_outcome = "skipped"
            job.last_error = str(e)
            return

        job.last_run_at = self.now()
        try:
            logger.info(f"Running scheduled job {job.name}")
            details = job.body()
        except JobAlreadyRunningError as e:
            job.last_outcome = "skipped"
            job.last_error = str(e)
            logger.warning(f"Job {job.name} skipped: {e}")
        except Exception as e:
            job.last_outcome = "failed"
            job.last_error = str(e)
            job.last_details = {}
            logger.exception(f"Scheduled job {job.name} failed: {e}")
            self.store.log_error(ErrorEvent(
                level=ErrorLevel.ERROR,
                message=f"Scheduled job {job.name} failed: {e}",
                stack=traceback.format_exc(),
                extra={"job": job.name, "error": str(e)},
            ))
        else:
            job.last_outcome = "success"
            job.last_error = None
            job.last_details = details
            logger.info(f"Scheduled job {job.name} completed: {details}")
            self.store.log_error(ErrorEvent(
                level=ErrorLevel.INFO,
                message=f"Scheduled job {job.name} completed",
                extra={"job": job.name, "status": "success", **details},
            ))
        finally:
            self._release(job.name)

    def run_job(self, name: str) -> bool:
        """Run a named job immediately, outside its schedule.

        Returns:
            False if the name is unknown
        """
        job = self._jobs.get(name)
        if job is None:
            return False
        self._execute(job)
        return True

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _run_loop(self, job: _Job, stop_event: threading.Event, fire_at: datetime) -> None:
        while True:
            while True:
                remaining = (fire_at - self.now()).total_seconds()
                if remaining <= 0:
                    break
                if stop_event.wait(min(remaining, MAX_WAIT_SECONDS)):
                    return
            self._execute(job)

            fire_at = job.schedule.next_fire_after(self.now())
            with self._lock:
                if stop_event.is_set():
                    return
                job.next_run_at = fire_at

    def _start(self, job: _Job) -> None:
        if job.state is JobState.SCHEDULED:
            return
        fire_at = job.schedule.next_fire_after(self.now())
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._run_loop,
            args=(job, stop_event, fire_at),
            name=f"scheduler-{job.name}",
            daemon=True,
        )
        job.stop_event = stop_event
        job.thread = thread
        job.state = JobState.SCHEDULED
        job.next_run_at = fire_at
        thread.start()
        logger.info(f"Scheduled job {job.name}: {job.schedule.describe()}")

    def _stop(self, job: _Job) -> Optional[threading.Thread]:
        """Signal a job's timer to stop; returns the thread to join."""
        if job.state is JobState.STOPPED:
            return None
        job.stop_event.set()
        thread = job.thread
        job.thread = None
        job.stop_event = None
        job.state = JobState.STOPPED
        job.next_run_at = None
        logger.info(f"Stopped job {job.name}")
        return thread

    @staticmethod
    def _join(threads: List[Optional[threading.Thread]], timeout: float = 5.0) -> None:
        # Joined outside the lock: an executing body needs it to finish
        for thread in threads:
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout)

    def start_all_tasks(self) -> None:
        """Schedule every stopped job."""
        with self._lock:
            for job in self._jobs.values():
                self._start(job)
        logger.info("All scheduled tasks started")

    def stop_all_tasks(self) -> None:
        """Stop every scheduled job. A job body that is executing runs to completion."""
        with self._lock:
            threads = [self._stop(job) for job in self._jobs.values()]
        self._join(threads)
        logger.info("All scheduled tasks stopped")

    def restart_task(self, name: str) -> bool:
        """Stop then start one named job.

        Returns:
            False if the name is unknown
        """
        with self._lock:
            job = self._jobs.get(name)
            if job is None:
                logger.warning(f"Unknown task: {name}")
                return False
            thread = self._stop(job)
        self._join([thread])
        with self._lock:
            self._start(job)
        logger.info(f"Task {name} restarted")
        return True

    def get_task_status(self) -> List[JobStatus]:
        """Status snapshot of every job."""
        with self._lock:
            return [
                JobStatus(
                    name=job.name,
                    state=job.state,
                    schedule=job.schedule.describe(),
                    executing=job.name in self._active,
                    next_run_at=job.next_run_at,
                    last_run_at=job.last_run_at,
                    last_outcome=job.last_outcome,
                    last_error=job.last_error,
                    details=dict(job.last_details),
                )
                for job in self._jobs.values()
            ]

    # ------------------------------------------------------------------
    # Manual runs
    # ------------------------------------------------------------------

    def run_analytics_for_date(self, date: str) -> ProcessingResult:
        """Process one date right away, bypassing the schedule.

        Raises:
            ValueError: If the date is not a valid YYYY-MM-DD date
            JobAlreadyRunningError: If the date is already being processed
        """
        date = parse_date(date)
        logger.info(f"Manually running analytics for {date}")
        return self._process_date(date)

    def run_yesterday_analytics(self) -> ProcessingResult:
        """Process yesterday right away, bypassing the schedule."""
        return self.run_analytics_for_date(self.yesterday())
