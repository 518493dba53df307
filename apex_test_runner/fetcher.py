"""Fetching run summaries, test results and coverage from the remote store."""

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel

from apex_test_runner.batching import MAX_QUERY_LENGTH, chunk_queries
from apex_test_runner.errors import NoTestResultError
from apex_test_runner.models.records import (
    CodeCoverageAggregateRecord,
    CodeCoverageRecord,
    JobStatus,
    OrgWideCoverageRecord,
    TestResultRecord,
    TestRunSummaryRecord,
)
from apex_test_runner.remote.base import RemoteConnection

log = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)

SUMMARY_QUERY = (
    "SELECT AsyncApexJobId, Status, ClassesCompleted, ClassesEnqueued, "
    "MethodsEnqueued, StartTime, EndTime, TestTime, UserId "
    "FROM ApexTestRunResult WHERE AsyncApexJobId = '{job_id}'"
)

TEST_RESULT_QUERY = (
    "SELECT Id, QueueItemId, StackTrace, Message, "
    "RunTime, TestTimestamp, AsyncApexJobId, MethodName, Outcome, ApexLogId, "
    "ApexClass.Id, ApexClass.Name, ApexClass.NamespacePrefix "
    "FROM ApexTestResult WHERE QueueItemId IN "
)

PER_TEST_COVERAGE_QUERY = (
    "SELECT ApexTestClassId, ApexClassOrTrigger.Id, ApexClassOrTrigger.Name, "
    "TestMethodName, NumLinesCovered, NumLinesUncovered, Coverage "
    "FROM ApexCodeCoverage WHERE ApexTestClassId IN "
)

AGGREGATE_COVERAGE_QUERY = (
    "SELECT ApexClassOrTrigger.Id, ApexClassOrTrigger.Name, "
    "NumLinesCovered, NumLinesUncovered, Coverage "
    "FROM ApexCodeCoverageAggregate WHERE ApexClassOrTriggerId IN "
)

ORG_WIDE_COVERAGE_QUERY = "SELECT PercentCovered FROM ApexOrgWideCoverage"


@dataclass(frozen=True, kw_only=True)
class CoverageRows:
    """Coverage rows fetched for one run."""

    per_test: Sequence[CodeCoverageRecord]
    aggregate: Sequence[CodeCoverageAggregateRecord]
    org_wide: int | None


@dataclass(frozen=True, kw_only=True)
class ResultFetcher:
    """Reads run data with queries bounded by the remote length limit."""

    connection: RemoteConnection
    max_query_length: int = MAX_QUERY_LENGTH

    async def get_run_summary(self, job_id: str) -> TestRunSummaryRecord:
        """Read the summary row of a finished run.

        Raises:
            NoTestResultError: If the remote environment has no summary row

        """
        result = await self._query(SUMMARY_QUERY.format(job_id=job_id))
        if not result:
            raise NoTestResultError(job_id)
        return TestRunSummaryRecord.model_validate(result[0])

    async def get_test_results(self, job_status: JobStatus) -> list[TestResultRecord]:
        """Read the result rows of every queue item of the job."""
        queue_item_ids = [item.id for item in job_status.queue_items]
        return await self._batched(TEST_RESULT_QUERY, queue_item_ids, TestResultRecord)

    async def get_coverage(self, test_class_ids: Sequence[str]) -> CoverageRows:
        """Read per-test, per-class and org-wide coverage for a run.

        Args:
            test_class_ids: Ids of the test classes that ran

        """
        per_test = await self.get_per_test_coverage(test_class_ids)
        class_ids = _unique(record.apex_class_or_trigger.id for record in per_test)
        aggregate = await self.get_aggregate_coverage(class_ids)
        org_wide = await self.get_org_wide_coverage()
        return CoverageRows(per_test=per_test, aggregate=aggregate, org_wide=org_wide)

    async def get_per_test_coverage(
        self, test_class_ids: Sequence[str]
    ) -> list[CodeCoverageRecord]:
        """Read coverage produced by each test method of the given classes."""
        return await self._batched(
            PER_TEST_COVERAGE_QUERY, _unique(test_class_ids), CodeCoverageRecord
        )

    async def get_aggregate_coverage(
        self, class_ids: Sequence[str]
    ) -> list[CodeCoverageAggregateRecord]:
        """Read coverage of the given classes across all tests."""
        return await self._batched(
            AGGREGATE_COVERAGE_QUERY, class_ids, CodeCoverageAggregateRecord
        )

    async def get_org_wide_coverage(self) -> int | None:
        """Read the org-wide coverage percentage, if reported."""
        records = await self._query(ORG_WIDE_COVERAGE_QUERY)
        if not records:
            return None
        return OrgWideCoverageRecord.model_validate(records[0]).percent_covered

    async def _batched(
        self,
        query_start: str,
        ids: Sequence[str],
        record_cls: type[R],
    ) -> list[R]:
        """Run one query per batch concurrently and merge in batch order."""
        queries = chunk_queries(query_start, ids, self.max_query_length)
        if len(queries) > 1:
            log.info("Splitting %d ids into %d queries", len(ids), len(queries))

        batches = await asyncio.gather(*(self._query(query) for query in queries))
        return [
            record_cls.model_validate(record)
            for batch in batches
            for record in batch
        ]

    async def _query(self, soql: str) -> Sequence[Mapping[str, Any]]:
        result = await self.connection.retry_on_expired_session(
            lambda: self.connection.query(soql)
        )
        return list(result.records)


def _unique(values: Iterable[str]) -> list[str]:
    """Drop duplicates, keeping first occurrences in order."""
    return list(dict.fromkeys(values))
