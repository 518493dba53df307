"""Completion channel that polls the remote queue for job status."""

import asyncio
import logging
from dataclasses import dataclass

from apex_test_runner.models.records import AsyncTestRun, JobStatus, QueueItem
from apex_test_runner.remote.base import RemoteConnection
from apex_test_runner.streaming.base import NotificationChannel

log = logging.getLogger(__name__)

QUEUE_ITEM_QUERY = (
    "SELECT Id, Status, ApexClassId, TestRunResultId FROM ApexTestQueueItem "
    "WHERE ParentJobId = '{job_id}'"
)


async def get_job_status(connection: RemoteConnection, job_id: str) -> JobStatus:
    """Read the current queue items of a job."""
    result = await connection.retry_on_expired_session(
        lambda: connection.query(QUEUE_ITEM_QUERY.format(job_id=job_id))
    )
    return JobStatus(
        job_id=job_id,
        queue_items=[QueueItem.model_validate(record) for record in result.records],
    )


@dataclass(frozen=True, kw_only=True)
class PollingChannel(NotificationChannel):
    """Notification channel backed by periodic status queries."""

    connection: RemoteConnection
    timeout: float = 1800
    poll_interval: float = 5

    async def handshake(self) -> None:
        """Polling needs no session."""

    async def subscribe(self, job_id: str) -> AsyncTestRun:
        """Poll until the job is terminal."""
        job_status = await self.wait_for_completion(job_id)
        return AsyncTestRun(run_id=job_id, queue_item=job_status)

    async def poll_status(self, job_id: str) -> JobStatus | None:
        """Check if the job is complete.

        Args:
            job_id: Identifier of the asynchronous run

        Returns:
            Job status if terminal, None if still running

        """
        job_status = await get_job_status(self.connection, job_id)
        if not job_status.is_terminal:
            log.info("Job %s still in status=%s", job_id, job_status.status)
            return None
        return job_status

    async def wait_for_completion(
        self, job_id: str, deadline: float | None = None
    ) -> JobStatus:
        """Wait for the job to complete.

        Args:
            job_id: Identifier of the asynchronous run
            deadline: Event loop time to give up at, defaults to now plus timeout

        Raises:
            TimeoutError: If the job does not complete within timeout

        """
        if deadline is None:
            deadline = asyncio.get_running_loop().time() + self.timeout

        while True:
            if (job_status := await self.poll_status(job_id)) is not None:
                return job_status

            if asyncio.get_running_loop().time() >= deadline:
                raise TimeoutError(
                    f"Job {job_id} did not complete within {self.timeout} seconds"
                )

            await asyncio.sleep(self.poll_interval)
