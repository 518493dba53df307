"""Test service coordinating run submission, completion and reporting."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from apex_test_runner import writer
from apex_test_runner.aggregator import (
    RunContext,
    build_report,
    tests_from_records,
    tests_from_sync_response,
)
from apex_test_runner.fetcher import ResultFetcher
from apex_test_runner.models.records import JobStatus, SyncRunResponse
from apex_test_runner.models.request import RunRequest, TestLevel
from apex_test_runner.models.result import OutputDirConfig, Report
from apex_test_runner.payload import PayloadBuilder
from apex_test_runner.remote.base import RemoteConnection
from apex_test_runner.streaming.base import NotificationChannel

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class TestService:
    """Runs remote tests and turns their results into a report.

    One call processes one run end to end. The remote connection, the
    completion channel and the clock are injected.
    """

    __test__ = False

    connection: RemoteConnection
    channel: NotificationChannel
    clock: Callable[[], float] = field(default=time.time, repr=False)
    timeout: float | None = None

    @property
    def fetcher(self) -> ResultFetcher:
        """Result fetcher bound to the service's connection."""
        return ResultFetcher(connection=self.connection)

    async def build_sync_payload(
        self,
        test_level: TestLevel,
        tests: str | None = None,
        class_names: str | None = None,
    ) -> RunRequest:
        """Build a request for run_test_synchronous."""
        builder = PayloadBuilder(connection=self.connection)
        return await builder.build_sync_payload(test_level, tests, class_names)

    async def build_async_payload(
        self,
        test_level: TestLevel,
        tests: str | None = None,
        class_names: str | None = None,
        suite_names: str | None = None,
    ) -> RunRequest:
        """Build a request for run_test_asynchronous."""
        builder = PayloadBuilder(connection=self.connection)
        return await builder.build_async_payload(
            test_level, tests, class_names, suite_names
        )

    async def run_test_synchronous(
        self, request: RunRequest, with_coverage: bool = False
    ) -> Report:
        """Run tests with a single blocking call.

        Args:
            request: Run request naming a single class
            with_coverage: Also fetch code coverage for the tested classes

        Returns:
            The normalized report

        """
        started_at = self.clock()
        log.info("Running tests synchronously...")

        data = await self.connection.retry_on_expired_session(
            lambda: self.connection.tooling_request(
                "POST", "runTestsSynchronous", request.to_payload()
            )
        )
        response = SyncRunResponse.model_validate(data)
        tests = tests_from_sync_response(response)
        log.info(
            "Synchronous run finished: %d test(s), %d failure(s)",
            response.num_tests_run,
            response.num_failures,
        )

        coverage = None
        if with_coverage:
            coverage = await self.fetcher.get_coverage(
                [test.apex_class.id for test in tests]
            )

        finished_at = self.clock()
        context = RunContext(
            test_run_id="",
            identity=self.connection.identity,
            started_at=started_at,
            finished_at=finished_at,
            test_start_time=format_timestamp(started_at),
            test_time_ms=response.total_time,
        )
        return build_report(tests, context, coverage)

    async def run_test_asynchronous(
        self, request: RunRequest, with_coverage: bool = False
    ) -> Report:
        """Submit a run and wait for its completion notification.

        Args:
            request: Run request
            with_coverage: Also fetch code coverage for the tested classes

        Returns:
            The normalized report

        Raises:
            TimeoutError: If the run does not finish within timeout

        """
        started_at = self.clock()

        await self.channel.handshake()

        job_id: str = await self.connection.retry_on_expired_session(
            lambda: self.connection.tooling_request(
                "POST", "runTestsAsynchronous", request.to_payload()
            )
        )
        log.info("Run %s submitted, waiting for completion...", job_id)

        async with asyncio.timeout(self.timeout):
            test_run = await self.channel.subscribe(job_id)
        log.info("Run %s finished with status=%s", job_id, test_run.queue_item.status)

        return await self.format_async_results(
            test_run.queue_item, test_run.run_id, started_at, with_coverage
        )

    async def format_async_results(
        self,
        job_status: JobStatus,
        job_id: str,
        started_at: float,
        with_coverage: bool = False,
    ) -> Report:
        """Fetch the rows of a finished run and aggregate them.

        Args:
            job_status: Final status of the job
            job_id: Identifier of the run
            started_at: Clock reading taken before the run was submitted
            with_coverage: Also fetch code coverage for the tested classes

        Raises:
            NoTestResultError: If the remote environment has no summary

        """
        summary = await self.fetcher.get_run_summary(job_id)
        records = await self.fetcher.get_test_results(job_status)
        tests = tests_from_records(records)

        coverage = None
        if with_coverage:
            coverage = await self.fetcher.get_coverage(
                [record.apex_class.id for record in records]
            )

        finished_at = self.clock()
        context = RunContext(
            test_run_id=job_id,
            identity=self.connection.identity,
            started_at=started_at,
            finished_at=finished_at,
            test_start_time=summary.start_time or "",
            test_time_ms=summary.test_time,
            user_id=summary.user_id or "",
        )
        return build_report(tests, context, coverage)

    async def write_result_files(
        self,
        report: Report,
        config: OutputDirConfig,
        with_coverage: bool = False,
    ) -> list[Path]:
        """Write the report artifacts, see writer.write_result_files."""
        return await writer.write_result_files(report, config, with_coverage)


def format_timestamp(seconds: float) -> str:
    """ISO 8601 UTC timestamp of a clock reading."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
