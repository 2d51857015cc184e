from __future__ import annotations

import asyncio
import logging
import math
from typing import Awaitable, Callable, Protocol

from pathtrack.core.errors import AuthError, JobFailedError, JobTimeoutError, NetworkError
from pathtrack.core.schema import JobStatusPayload
from pathtrack.domain import Job, JobStatus

logger = logging.getLogger(__name__)

COMPLETED_STATUSES = frozenset({"completed", "complete", "succeeded", "success", "done"})
FAILED_STATUSES = frozenset({"failed", "failure", "error", "errored"})

Sleeper = Callable[[float], Awaitable[object]]
CompletionHandler = Callable[[Job, JobStatusPayload], Awaitable[None]]


class StatusSource(Protocol):
    async def get_job_status(self, job_id: str) -> JobStatusPayload: ...


def estimate_progress(attempt: int, max_attempts: int) -> float:
    """Smoothed progress guess for display; approaches 95 and never reaches 100."""

    if max_attempts <= 0:
        return 5.0
    return 5.0 + 90.0 * (1.0 - math.exp(-3.0 * attempt / max_attempts))


class JobLifecycleController:
    """Polls one remote job until it completes, fails or exhausts its budget.

    Polls are strictly sequential: the next status request is only issued
    after the previous one returned and the poll interval elapsed.
    """

    def __init__(
        self,
        job: Job,
        source: StatusSource,
        *,
        on_complete: CompletionHandler | None = None,
        poll_interval: float = 5.0,
        max_attempts: int = 60,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._job = job
        self._source = source
        self._on_complete = on_complete
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._task: asyncio.Task[Job] | None = None

    @property
    def job(self) -> Job:
        return self._job

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[Job]:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def wait(self) -> Job:
        if self._task is None and self._job.status.is_terminal:
            return self._job
        return await self.start()

    def cancel(self) -> None:
        """Stop polling without touching the job's last observed state."""

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            logger.info("Stopped polling job %s in state %s", self._job.job_id, self._job.status.value)

    # ------------------------------------------------------------------
    # state transitions
    # ------------------------------------------------------------------
    def _fail(self, status: JobStatus, reason: str) -> None:
        self._job.status = status
        self._job.error = reason
        logger.warning("Job %s %s: %s", self._job.job_id, status.value, reason)

    async def run(self) -> Job:
        job = self._job
        for attempt in range(1, self._max_attempts + 1):
            await self._sleep(self._poll_interval)
            try:
                payload = await self._source.get_job_status(job.job_id)
            except (NetworkError, AuthError) as exc:
                self._fail(JobStatus.FAILED, str(exc))
                raise

            job.attempts = attempt
            job.remote_status = payload.status

            if payload.status in COMPLETED_STATUSES:
                job.status = JobStatus.COMPLETED
                job.progress = 100.0
                job.terminal_result = payload.model_dump()
                logger.info("Job %s completed after %d status checks", job.job_id, attempt)
                if self._on_complete is not None:
                    await self._on_complete(job, payload)
                return job

            if payload.status in FAILED_STATUSES:
                reason = payload.error or "remote job reported failure"
                self._fail(JobStatus.FAILED, reason)
                raise JobFailedError(job.job_id, reason)

            if job.status is not JobStatus.RUNNING:
                logger.info("Job %s running (remote status %s)", job.job_id, payload.status)
            job.status = JobStatus.RUNNING
            job.progress = max(job.progress, estimate_progress(attempt, self._max_attempts))

        self._fail(JobStatus.TIMED_OUT, f"no terminal status after {self._max_attempts} checks")
        raise JobTimeoutError(job.job_id, self._max_attempts)
