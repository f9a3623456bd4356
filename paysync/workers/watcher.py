"""Watcher: the scheduling loop body.

Each ``tick`` reads due jobs straight from the store (pending, failed and stuck
``processing`` rows), marks them in-flight, and hands them to the matching processor.
The watcher keeps no progress of its own between ticks, so a crash at any point is healed
by the next tick finding the job still in ``processing``.
"""

import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

from paysync.core.models import (
    AccountJob,
    AccountJobStatus,
    DiscoveryJob,
    DiscoveryStatus,
    TickReport,
)
from paysync.core.utils import get_logger, utcnow
from paysync.store.base import JobRepository
from paysync.store.jobs import AccountJobRepository, DiscoveryJobRepository, ExtractionJobRepository
from paysync.workers.account import AccountProcessor
from paysync.workers.discovery import DiscoveryProcessor
from paysync.workers.extraction import ExtractionProcessor

logger = get_logger("paysync.watcher")

DUE_STATUSES = ("pending", "failed", "processing")


class Watcher:
    """Runs one sweep per job kind on every tick: account, then discovery, then extraction."""

    def __init__(
        self,
        account_jobs: AccountJobRepository,
        discovery_jobs: DiscoveryJobRepository,
        extraction_jobs: ExtractionJobRepository,
        account_processor: AccountProcessor,
        discovery_processor: DiscoveryProcessor,
        extraction_processor: ExtractionProcessor,
        account_batch_size: int = 5,
        discovery_batch_size: int = 1,
        extraction_batch_size: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize with the job stores, processors and per-kind batch sizes."""
        self.account_jobs = account_jobs
        self.discovery_jobs = discovery_jobs
        self.extraction_jobs = extraction_jobs
        self.account_processor = account_processor
        self.discovery_processor = discovery_processor
        self.extraction_processor = extraction_processor
        self.account_batch_size = account_batch_size
        self.discovery_batch_size = discovery_batch_size
        self.extraction_batch_size = extraction_batch_size
        self.clock = clock
        self._stop = threading.Event()
        self._tick_lock = threading.Lock()

    # -- lifecycle -----------------------------------------------------------

    def request_stop(self) -> None:
        """Ask the in-flight tick to stop at the next job boundary."""
        self._stop.set()

    @property
    def stopping(self) -> bool:
        """Whether a stop was requested."""
        return self._stop.is_set()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no tick is running. Returns False if ``timeout`` ran out first."""
        acquired = self._tick_lock.acquire(timeout=-1 if timeout is None else timeout)
        if acquired:
            self._tick_lock.release()
        return acquired

    # -- tick ----------------------------------------------------------------

    def tick(self, now: datetime | None = None) -> TickReport:
        """Run all three sweeps once and report how many jobs each selected."""
        report = TickReport()
        with self._tick_lock:
            now = now or self.clock()
            logger.debug(f"Tick at {now.isoformat()}")
            for name, sweep in (
                ("account_jobs", self.sweep_account_jobs),
                ("discovery_jobs", self.sweep_discovery_jobs),
                ("extraction_jobs", self.sweep_extraction_jobs),
            ):
                if self.stopping:
                    break
                try:
                    setattr(report, name, sweep())
                except Exception:
                    logger.exception(f"Error processing {name.replace('_', ' ')}")
        return report

    def _select(self, repo: JobRepository, limit: int) -> list[Any]:
        """Read the pending, failed and stuck-processing due-sets, in that order."""
        jobs: list[Any] = []
        for status in DUE_STATUSES:
            jobs.extend(repo.list_due(status, limit))
        return jobs

    def _mark_processing(self, repo: JobRepository, job: Any) -> None:
        """Mark ``job`` in-flight before any work happens on it."""
        try:
            repo.update_status(job.id, "processing")
        except Exception as exc:
            logger.warning(f"Failed to mark {repo.kind} {job.id} as processing: {exc}")
        try:
            repo.increment_attempts(job.id)
        except Exception as exc:
            logger.warning(f"Failed to increment attempts for {repo.kind} {job.id}: {exc}")

    @staticmethod
    def _describe(job: Any) -> str:
        if job.status == "processing":
            return " (stuck in processing)"
        if job.status == "failed":
            return f" (failed, attempt {job.attempts})"
        return ""

    def sweep_account_jobs(self) -> int:
        """Process every due account setup job."""
        jobs = self._select(self.account_jobs, self.account_batch_size)
        if not jobs:
            return 0
        logger.info(f"Found {len(jobs)} account sync job(s) to process")
        for job in jobs:
            if self.stopping:
                logger.info("Stop requested, leaving remaining account jobs for the next run")
                break
            try:
                self._process_account_job(job)
            except Exception:
                logger.exception(f"Failed to process account job {job.id}")
        return len(jobs)

    def _process_account_job(self, job: AccountJob) -> None:
        logger.info(f"Processing account sync job {job.id} for account {job.account_id}{self._describe(job)}")
        self._mark_processing(self.account_jobs, job)
        try:
            self.account_processor.process(job)
        except Exception as exc:
            logger.error(f"Account job {job.id} failed: {exc}")
            self.account_jobs.update_status(job.id, AccountJobStatus.FAILED, str(exc))
            return
        self.account_jobs.update_status(job.id, AccountJobStatus.COMPLETED)
        logger.info(f"Account sync job {job.id} completed")

    def sweep_discovery_jobs(self) -> int:
        """Process the single head-of-queue discovery job."""
        jobs = self._select(self.discovery_jobs, self.discovery_batch_size)
        if not jobs:
            return 0
        job = jobs[0]
        logger.info(
            f"Found email sync job: {job.id} (account: {job.account_id}, status: {job.status}{self._describe(job)})"
        )
        self._process_discovery_job(job)
        return 1

    def _process_discovery_job(self, job: DiscoveryJob) -> None:
        self._mark_processing(self.discovery_jobs, job)
        try:
            updated = self.discovery_processor.process(job)
        except Exception as exc:
            logger.error(f"Discovery job {job.id} failed: {exc}")
            self.discovery_jobs.update_status(job.id, DiscoveryStatus.FAILED, str(exc))
            return
        if self.discovery_processor.is_finished(updated):
            self.discovery_jobs.update_status(job.id, DiscoveryStatus.SYNCED)
            logger.info(f"Discovery job {job.id} synced ({updated.emails_fetched} messages)")
        else:
            self.discovery_jobs.update_status(job.id, DiscoveryStatus.PROCESSING)
            logger.info(f"Discovery job {job.id} has more pages, staying in processing")

    def sweep_extraction_jobs(self) -> int:
        """Process one batch of due extraction jobs."""
        jobs = self._select(self.extraction_jobs, self.extraction_batch_size)
        if not jobs:
            return 0
        logger.info(f"Found {len(jobs)} LLM sync job(s) to process")
        for job in jobs:
            self._mark_processing(self.extraction_jobs, job)
        try:
            summary = self.extraction_processor.process_batch(jobs, should_stop=lambda: self.stopping)
        except Exception as exc:
            logger.exception("Extraction batch aborted")
            moved = self.extraction_jobs.fail_if_processing(
                [job.id for job in jobs], f"extraction batch aborted: {exc}"
            )
            logger.error(f"Marked {moved} extraction job(s) failed after batch error")
            return len(jobs)
        logger.info(
            f"Extraction batch done: {summary.completed} completed, {summary.failed} failed, "
            f"{summary.payments} payment(s) created"
        )
        return len(jobs)
