"""
Bulk verification orchestration.

A job is validated at submission, then run against a single zone index
snapshot with at most ``max_workers`` verifications in flight. Per-item
failures become item results; only a JobFault or a run of dependency outages
fails the job.
"""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from hubzone.config import config
from hubzone.errors import DependencyUnavailable, InvalidTransition, JobFault, ValidationError
from hubzone.geo import ZoneIndex
from hubzone.verification import NotFound, VerificationService
from .job import BulkItemResult, BulkJob, BulkVerificationResult, JobProgress, JobStatus
from .parsing import parse_identifier_file, parse_identifiers, validate_identifiers

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[BulkJob, BulkItemResult], None]


class BulkVerificationOrchestrator:
    """Runs bulk verification jobs and keeps them addressable by id."""

    def __init__(
        self,
        service: VerificationService,
        max_batch_size: Optional[int] = None,
        max_workers: Optional[int] = None,
        degraded_threshold: Optional[int] = None,
        failure_threshold: Optional[int] = None,
    ):
        self.service = service
        self.max_batch_size = max_batch_size or config.bulk_max_batch_size
        self.max_workers = max_workers or config.bulk_max_workers
        self.degraded_threshold = degraded_threshold or config.bulk_degraded_threshold
        self.failure_threshold = failure_threshold or config.bulk_failure_threshold

        self._jobs: dict[str, BulkJob] = {}
        self._lock = threading.Lock()
        self._background: Optional[ThreadPoolExecutor] = None

    # Submission

    def submit(self, identifiers: Iterable[str], requested_by: Optional[str] = None) -> BulkJob:
        """
        Validate identifiers and register a pending job.

        Raises:
            ValidationError: malformed identifiers, an empty batch, or more
            than max_batch_size distinct identifiers.
        """
        unique = validate_identifiers(identifiers)
        return self._create_job(unique, requested_by)

    def submit_text(self, text: str, requested_by: Optional[str] = None) -> BulkJob:
        """Parse delimited text and submit the identifiers it holds."""
        return self._create_job(parse_identifiers(text), requested_by)

    def submit_file(self, path: Union[str, Path], requested_by: Optional[str] = None) -> BulkJob:
        """Parse a delimited file and submit the identifiers it holds."""
        return self._create_job(parse_identifier_file(path), requested_by)

    def _create_job(self, identifiers: list[str], requested_by: Optional[str]) -> BulkJob:
        if not identifiers:
            raise ValidationError("Batch is empty")
        if len(identifiers) > self.max_batch_size:
            raise ValidationError(
                f"Batch of {len(identifiers)} identifiers exceeds the limit of {self.max_batch_size}"
            )

        job = BulkJob(identifiers, requested_by=requested_by)
        with self._lock:
            self._jobs[job.job_id] = job
        logger.info("Submitted bulk job %s with %d identifiers", job.job_id, len(identifiers))
        return job

    # Lookup and control

    def get(self, job_id: str) -> BulkJob:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise ValidationError(f"Unknown bulk job {job_id}")
        return job

    def progress(self, job_id: str) -> JobProgress:
        return self.get(job_id).progress()

    def cancel(self, job_id: str) -> JobStatus:
        job = self.get(job_id)
        status = job.request_cancel()
        logger.info("Cancellation requested for job %s (%s)", job_id, status.value)
        return status

    def result(self, job_id: str) -> BulkVerificationResult:
        return self.get(job_id).to_result()

    def start(self, job: BulkJob, as_of: Optional[date] = None,
              on_progress: Optional[ProgressCallback] = None) -> "Future[BulkVerificationResult]":
        """Run a job on a background thread."""
        with self._lock:
            if self._background is None:
                self._background = ThreadPoolExecutor(
                    max_workers=2, thread_name_prefix="bulk-job"
                )
            executor = self._background
        return executor.submit(self.run, job, as_of, on_progress)

    def shutdown(self, wait_for_jobs: bool = True) -> None:
        with self._lock:
            executor, self._background = self._background, None
        if executor is not None:
            executor.shutdown(wait=wait_for_jobs)

    # Processing

    def run(self, job: BulkJob, as_of: Optional[date] = None,
            on_progress: Optional[ProgressCallback] = None) -> BulkVerificationResult:
        """
        Process a pending job to a terminal state and return its result.

        Args:
            job: A job created by one of the submit methods.
            as_of: Evaluation date for every item (default today).
            on_progress: Called after each recorded item result.
        """
        try:
            job.transition(JobStatus.PROCESSING)
        except InvalidTransition:
            if job.status == JobStatus.CANCELLED:
                logger.info("Job %s was cancelled before it started", job.job_id)
                return job.to_result()
            raise

        # Anything escaping the dispatch loop still has to leave the job terminal
        try:
            as_of = as_of or date.today()
            index = self.service.holder.current()
            logger.info(
                "Processing job %s: %d identifiers, %d workers, %d zones",
                job.job_id, len(job.identifiers), self.max_workers, len(index),
            )
            fault = self._process(job, as_of, index, on_progress)
        except Exception as e:
            logger.exception("Job %s aborted", job.job_id)
            fault = f"Job aborted: {e}"

        return self._finish(job, fault)

    def _process(self, job: BulkJob, as_of: date, index: ZoneIndex,
                 on_progress: Optional[ProgressCallback]) -> Optional[str]:
        """Dispatch items with bounded concurrency. Returns a fault message, if any."""
        remaining = iter(job.identifiers)
        in_flight: dict[Future, str] = {}
        fault = None
        dependency_errors = 0
        consecutive = 0

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="verify") as executor:
            while True:
                while fault is None and not job.cancel_requested and len(in_flight) < self.max_workers:
                    identifier = next(remaining, None)
                    if identifier is None:
                        break
                    future = executor.submit(self._verify_item, job.job_id, identifier, as_of, index)
                    in_flight[future] = identifier

                if not in_flight:
                    break

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    identifier = in_flight.pop(future)
                    try:
                        item = future.result()
                    except JobFault as e:
                        logger.error("Job %s faulted on %s: %s", job.job_id, identifier, e)
                        fault = fault or str(e)
                        continue

                    if not job.record_result(item):
                        continue

                    if item.retryable:
                        dependency_errors += 1
                        consecutive += 1
                    else:
                        consecutive = 0

                    if dependency_errors == self.degraded_threshold:
                        job.add_warning(
                            f"Degraded: {dependency_errors} items failed on unavailable dependencies"
                        )
                        logger.warning("Job %s is degraded", job.job_id)
                    if consecutive >= self.failure_threshold and fault is None:
                        fault = f"{consecutive} consecutive dependency failures, last: {item.error_message}"

                    if on_progress:
                        on_progress(job, item)

        return fault

    def _verify_item(self, job_id: str, identifier: str, as_of: date,
                     index: ZoneIndex) -> BulkItemResult:
        """Verify one identifier, turning every non-fatal error into an item result."""
        try:
            outcome = self.service.verify(
                identifier, as_of=as_of, triggered_by=job_id, method="bulk", index=index,
            )
        except JobFault:
            raise
        except DependencyUnavailable as e:
            logger.warning("Job %s: %s unavailable for %s: %s", job_id, e.dependency, identifier, e)
            return BulkItemResult.error(identifier, str(e), retryable=True)
        except Exception as e:
            logger.exception("Job %s: verification of %s failed", job_id, identifier)
            return BulkItemResult.error(identifier, str(e))

        if isinstance(outcome, NotFound):
            return BulkItemResult.not_found(identifier, outcome.message)
        return BulkItemResult.from_verification(outcome)

    def _finish(self, job: BulkJob, fault: Optional[str]) -> BulkVerificationResult:
        if fault:
            final = JobStatus.FAILED
        elif job.cancel_requested and job.processed < len(job.identifiers):
            final = JobStatus.CANCELLED
        else:
            final = JobStatus.COMPLETED

        # Persisted before the final transition; a storage fault still fails the job
        snapshot = job.to_result(status=final, completed_at=datetime.now(), error_message=fault)
        try:
            self.service.store.save_job(snapshot)
        except JobFault as e:
            logger.error("Could not persist job %s: %s", job.job_id, e)
            final, fault = JobStatus.FAILED, str(e)

        job.transition(final, error_message=fault)
        result = job.to_result()

        summary = result.summary
        logger.info(
            "Job %s %s: %d/%d processed (%d compliant, %d non-compliant, %d expired, "
            "%d not found, %d errors)",
            job.job_id, final.value, result.processed, result.total_requested,
            summary.compliant, summary.non_compliant, summary.expired,
            summary.not_found, summary.errors,
        )
        return result
