"""Pydantic models for rows and responses returned by the remote environment."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from pydantic import Field

from apex_test_runner.models.base import Model, Record

QueueItemStatus: TypeAlias = Literal[
    "Holding",
    "Queued",
    "Preparing",
    "Processing",
    "Completed",
    "Failed",
    "Aborted",
]

JobState: TypeAlias = Literal["Queued", "Processing", "Completed", "Failed", "Aborted"]

TestOutcome: TypeAlias = Literal["Pass", "Fail", "Skip", "CompileFail"]

TERMINAL_STATUSES: frozenset[str] = frozenset(["Completed", "Failed", "Aborted"])


@dataclass(frozen=True, kw_only=True)
class QueryResult:
    """One (possibly merged) response of the remote query interface."""

    records: Sequence[Mapping[str, Any]]
    total_size: int = 0
    done: bool = True


class QueueItem(Record):
    """A class's execution slot within an asynchronous run (ApexTestQueueItem)."""

    id: str
    apex_class_id: str
    status: QueueItemStatus
    test_run_result_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class JobStatus:
    """Observed state of an asynchronous run."""

    job_id: str
    queue_items: Sequence[QueueItem]

    @property
    def status(self) -> JobState:
        """Overall job state derived from the queue items."""
        statuses = {item.status for item in self.queue_items}
        if not statuses:
            return "Queued"
        if not statuses <= TERMINAL_STATUSES:
            if statuses <= {"Holding", "Queued"}:
                return "Queued"
            return "Processing"
        if "Aborted" in statuses:
            return "Aborted"
        if "Failed" in statuses:
            return "Failed"
        return "Completed"

    @property
    def is_terminal(self) -> bool:
        """Whether the remote environment has finished with every queue item."""
        return bool(self.queue_items) and self.status in TERMINAL_STATUSES


@dataclass(frozen=True, kw_only=True)
class AsyncTestRun:
    """Completion signal delivered by a notification channel."""

    run_id: str
    queue_item: JobStatus


class TestRunSummaryRecord(Record):
    """Run-level metadata row (ApexTestRunResult)."""

    __test__ = False

    async_apex_job_id: str
    status: str
    start_time: str | None = None
    end_time: str | None = None
    test_time: int | None = None
    user_id: str | None = None
    classes_completed: int | None = None
    classes_enqueued: int | None = None
    methods_enqueued: int | None = None


class ApexClassRef(Record):
    """Reference to the class a row belongs to."""

    id: str
    name: str
    namespace_prefix: str | None = None
    full_name: str | None = None


class TestResultRecord(Record):
    """Outcome of one test method (ApexTestResult)."""

    __test__ = False

    id: str
    queue_item_id: str
    method_name: str
    outcome: TestOutcome
    apex_class: ApexClassRef
    async_apex_job_id: str | None = None
    message: str | None = None
    stack_trace: str | None = None
    run_time: int | None = None
    apex_log_id: str | None = None
    test_timestamp: str | None = None


class LineCoverage(Model):
    """Covered and uncovered line numbers of one class."""

    covered_lines: Sequence[int] = Field(default_factory=list)
    uncovered_lines: Sequence[int] = Field(default_factory=list)


class ClassOrTriggerRef(Record):
    """Reference to the covered class or trigger."""

    id: str
    name: str


class CodeCoverageRecord(Record):
    """Coverage of one class by one test method (ApexCodeCoverage)."""

    apex_test_class_id: str
    test_method_name: str
    apex_class_or_trigger: ClassOrTriggerRef
    num_lines_covered: int
    num_lines_uncovered: int
    coverage: LineCoverage = Field(default_factory=LineCoverage)


class CodeCoverageAggregateRecord(Record):
    """Coverage of one class by all tests (ApexCodeCoverageAggregate)."""

    apex_class_or_trigger: ClassOrTriggerRef
    num_lines_covered: int
    num_lines_uncovered: int
    coverage: LineCoverage = Field(default_factory=LineCoverage)


class OrgWideCoverageRecord(Record):
    """Org-wide coverage percentage (ApexOrgWideCoverage)."""

    percent_covered: int


class NamespaceRecord(Record):
    """Row carrying a namespace prefix (PackageLicense, Organization)."""

    namespace_prefix: str | None = None


class SyncTestSuccess(Model):
    """A passing method in a runTestsSynchronous response."""

    id: str
    name: str
    method_name: str
    namespace: str | None = None
    time: int | None = None
    see_all_data: bool | None = None


class SyncTestFailure(SyncTestSuccess):
    """A failing method in a runTestsSynchronous response."""

    message: str | None = None
    stack_trace: str | None = None
    type: str | None = None


class SyncRunResponse(Model):
    """Body returned by runTestsSynchronous."""

    num_tests_run: int
    num_failures: int
    total_time: int | None = None
    successes: Sequence[SyncTestSuccess] = Field(default_factory=list)
    failures: Sequence[SyncTestFailure] = Field(default_factory=list)
    apex_log_id: str | None = None
