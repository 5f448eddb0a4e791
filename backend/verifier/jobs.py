"""
Asynchronous submit/poll job lifecycle.

States: PENDING -> COMPLETED | FAILED, and FAILED -> PENDING through retry_job only.
Records live in process memory and are swept once older than the retention window.
"""
from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional, Sequence

from shared.models.domain import (
    BulkStatus,
    BulkSubmission,
    JobPosting,
    JobRecord,
    Subject,
    utcnow,
)
from shared.models.enums import JobState
from shared.utils.logging import get_logger, log_context
from shared.utils.metrics import JOB_TRANSITIONS

from verifier.config import VerifierSettings, get_verifier_settings
from verifier.engine import VerificationOrchestrator
from verifier.errors import InvalidTransition, NotFound, ValidationError, VerificationError
from verifier.validation import coerce_subject

logger = get_logger(__name__)

GENERIC_FAILURE = "Verification process failed"
NOT_FOUND_STATE = "NOT_FOUND"


class JobLifecycleStore:
    """Tracks verification jobs and runs them in background tasks."""

    def __init__(
        self,
        orchestrator: VerificationOrchestrator,
        settings: Optional[VerifierSettings] = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._orchestrator = orchestrator
        self._settings = settings or get_verifier_settings()
        self._now = now
        self._records: dict[str, JobRecord] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._records)

    # ── Submission ──────────────────────────────────────────────────────
    async def submit(self, payload: Any) -> str:
        """Validate synchronously, store a PENDING record and schedule verification."""
        subject = coerce_subject(payload)
        job_id = str(uuid.uuid4())
        now = self._now()
        self._records[job_id] = JobRecord(job_id=job_id, submitted_at=now, updated_at=now, subject=subject)
        JOB_TRANSITIONS.labels(state=JobState.PENDING.value).inc()
        logger.info("job_submitted", job_id=job_id, kind=type(subject).__name__)
        self._schedule(job_id, subject)
        return job_id

    async def submit_bulk(self, items: Sequence[Any]) -> list[BulkSubmission]:
        """Validate each item independently; invalid items never create a record."""
        if not items:
            raise ValidationError("Bulk submission must contain at least one item")
        if len(items) > self._settings.bulk_max_items:
            raise ValidationError(
                f"Bulk submission exceeds {self._settings.bulk_max_items} items",
                code="BATCH_TOO_LARGE",
            )

        submissions: list[BulkSubmission] = []
        for index, item in enumerate(items):
            try:
                job_id = await self.submit(item)
            except ValidationError as exc:
                submissions.append(
                    BulkSubmission(index=index, state=JobState.FAILED.value, error=exc.message, fields=exc.fields)
                )
                continue
            submissions.append(BulkSubmission(index=index, job_id=job_id, state=JobState.PENDING.value))

        accepted = sum(1 for s in submissions if s.job_id)
        logger.info("bulk_submitted", total=len(items), accepted=accepted, rejected=len(items) - accepted)
        return submissions

    # ── Polling ─────────────────────────────────────────────────────────
    async def poll_status(self, job_id: str) -> JobRecord:
        self.sweep()
        record = self._records.get(job_id)
        if record is None:
            raise NotFound(f"Job {job_id} not found")
        return record.model_copy(deep=True)

    async def poll_bulk(self, job_ids: Iterable[str]) -> list[BulkStatus]:
        self.sweep()
        statuses: list[BulkStatus] = []
        for job_id in job_ids:
            record = self._records.get(job_id)
            if record is None:
                statuses.append(BulkStatus(job_id=job_id, state=NOT_FOUND_STATE))
            else:
                statuses.append(BulkStatus(job_id=job_id, state=record.state.value, record=record.model_copy(deep=True)))
        return statuses

    async def retry_job(self, job_id: str) -> JobRecord:
        """Reschedule a FAILED job with its original subject."""
        self.sweep()
        record = self._records.get(job_id)
        if record is None:
            raise NotFound(f"Job {job_id} not found")
        if record.state != JobState.FAILED:
            raise InvalidTransition(f"Only failed jobs can be retried (job {job_id} is {record.state.value})")
        if record.subject is None:
            raise InvalidTransition(f"Job {job_id} has no retained subject")

        now = self._now()
        record.state = JobState.PENDING
        record.result = None
        record.error = None
        record.error_code = None
        record.attempts += 1
        record.submitted_at = now
        record.updated_at = now
        JOB_TRANSITIONS.labels(state=JobState.PENDING.value).inc()
        logger.info("job_retried", job_id=job_id, attempts=record.attempts)
        self._schedule(job_id, record.subject)
        return record.model_copy(deep=True)

    async def wait(self, job_id: str) -> JobRecord:
        """Block until the job's in-flight task is done, then return its record."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return await self.poll_status(job_id)

    async def drain(self) -> None:
        """Await every in-flight job task."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def sweep(self) -> int:
        """Drop records older than the retention window. Returns the count removed."""
        cutoff = self._now() - timedelta(seconds=self._settings.job_retention_s)
        expired = [
            job_id
            for job_id, record in self._records.items()
            if record.submitted_at < cutoff and job_id not in self._tasks
        ]
        for job_id in expired:
            del self._records[job_id]
        if expired:
            logger.info("jobs_swept", removed=len(expired), remaining=len(self._records))
        return len(expired)

    # ── Execution ───────────────────────────────────────────────────────
    def _schedule(self, job_id: str, subject: Subject) -> None:
        task = asyncio.create_task(self._run(job_id, subject), name=f"verify-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t, jid=job_id: self._forget(jid, t))

    def _forget(self, job_id: str, task: asyncio.Task) -> None:
        # a retry may already have registered a newer task under this id
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    async def _run(self, job_id: str, subject: Subject) -> None:
        try:
            with log_context(job_id=job_id):
                if isinstance(subject, JobPosting):
                    result = await self._orchestrator.verify_posting(subject)
                else:
                    result = await self._orchestrator.verify(subject)
        except VerificationError as exc:
            logger.warning("job_failed", job_id=job_id, code=exc.code, error=exc.message)
            self._transition(job_id, JobState.FAILED, error=exc.message, error_code=exc.code)
        except Exception as exc:
            logger.error("job_crashed", job_id=job_id, error=str(exc), exc_info=True)
            self._transition(job_id, JobState.FAILED, error=GENERIC_FAILURE, error_code=VerificationError.code)
        else:
            self._transition(job_id, JobState.COMPLETED, result=result)

    def _transition(self, job_id: str, state: JobState, **changes: Any) -> None:
        record = self._records.get(job_id)
        if record is None:
            logger.warning("job_transition_dropped", job_id=job_id, state=state.value)
            return
        record.state = state
        record.result = changes.get("result")
        record.error = changes.get("error")
        record.error_code = changes.get("error_code")
        record.updated_at = self._now()
        JOB_TRANSITIONS.labels(state=state.value).inc()
        logger.info("job_transition", job_id=job_id, state=state.value)
