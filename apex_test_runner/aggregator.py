"""Turning raw result and coverage rows into the normalized report."""

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

from apex_test_runner.fetcher import CoverageRows
from apex_test_runner.models.records import (
    CodeCoverageAggregateRecord,
    CodeCoverageRecord,
    SyncRunResponse,
    TestResultRecord,
)
from apex_test_runner.models.result import (
    ApexClassInfo,
    CodeCoverageResult,
    Diagnostic,
    LineCoverageInfo,
    PerTestCoverage,
    Report,
    RunSummary,
    TestResult,
)
from apex_test_runner.remote.base import OrgIdentity

FAILING_OUTCOMES = frozenset(["Fail", "CompileFail"])

TRIGGER_ID_PREFIX = "01q"

STACK_TRACE_PATTERN = re.compile(
    r"Class\.(?P<class_name>[\w.]+)\.\w+(?::\s*line (?P<line>\d+), column (?P<column>\d+))?"
)


@dataclass(frozen=True, kw_only=True)
class RunContext:
    """Run metadata that does not come from result rows.

    started_at and finished_at are clock readings in seconds taken by the
    caller around the whole run.
    """

    test_run_id: str
    identity: OrgIdentity
    started_at: float
    finished_at: float
    test_start_time: str = ""
    test_time_ms: int | None = None
    user_id: str = ""


def round_half_up(value: float) -> int:
    """Round to the nearest whole number, halves away from zero."""
    return math.floor(value + 0.5)


def percentage(part: int, total: int) -> str:
    """Format part/total as a whole-number percentage, 0% for an empty total."""
    if total == 0:
        return "0%"
    return f"{round_half_up(part / total * 100)}%"


def full_class_name(name: str, namespace: str | None) -> str:
    """Class name as reported by the remote environment (ns__Name)."""
    return f"{namespace}__{name}" if namespace else name


def parse_diagnostic(message: str, stack_trace: str) -> Diagnostic:
    """Extract class, line and column from a failure stack trace.

    Traces look like ``Class.Name.method: line 6, column 1``; the position
    is optional.
    """
    diagnostic = Diagnostic(exception_message=message, exception_stack_trace=stack_trace)
    if match := STACK_TRACE_PATTERN.search(stack_trace):
        line = match.group("line")
        column = match.group("column")
        diagnostic = diagnostic.model_copy(
            update={
                "class_name": match.group("class_name"),
                "line_number": int(line) if line else None,
                "column_number": int(column) if column else None,
            }
        )
    return diagnostic


def tests_from_records(records: Sequence[TestResultRecord]) -> list[TestResult]:
    """Normalize asynchronous result rows."""
    tests: list[TestResult] = []
    for record in records:
        apex_class = record.apex_class
        class_full_name = full_class_name(apex_class.name, apex_class.namespace_prefix)
        message = record.message or ""
        stack_trace = record.stack_trace or ""

        tests.append(
            TestResult(
                id=record.id,
                queue_item_id=record.queue_item_id,
                stack_trace=stack_trace,
                message=message,
                async_apex_job_id=record.async_apex_job_id or "",
                method_name=record.method_name,
                outcome=record.outcome,
                apex_log_id=record.apex_log_id or "",
                apex_class=ApexClassInfo(
                    id=apex_class.id,
                    name=apex_class.name,
                    namespace_prefix=apex_class.namespace_prefix,
                    full_name=class_full_name,
                ),
                run_time=record.run_time or 0,
                test_timestamp=record.test_timestamp or "",
                full_name=f"{class_full_name}.{record.method_name}",
                diagnostic=(
                    parse_diagnostic(message, stack_trace)
                    if record.outcome in FAILING_OUTCOMES and message
                    else None
                ),
            )
        )
    return tests


def tests_from_sync_response(response: SyncRunResponse) -> list[TestResult]:
    """Normalize the successes and failures of a synchronous run."""
    tests: list[TestResult] = []
    entries = [(s, "Pass", "", "") for s in response.successes] + [
        (f, "Fail", f.message or "", f.stack_trace or "") for f in response.failures
    ]

    for entry, outcome, message, stack_trace in entries:
        class_full_name = full_class_name(entry.name, entry.namespace)
        tests.append(
            TestResult(
                id="",
                queue_item_id="",
                stack_trace=stack_trace,
                message=message,
                async_apex_job_id="",
                method_name=entry.method_name,
                outcome=outcome,
                apex_log_id=response.apex_log_id or "",
                apex_class=ApexClassInfo(
                    id=entry.id,
                    name=entry.name,
                    namespace_prefix=entry.namespace,
                    full_name=class_full_name,
                ),
                run_time=entry.time or 0,
                test_timestamp="",
                full_name=f"{class_full_name}.{entry.method_name}",
                diagnostic=(
                    parse_diagnostic(message, stack_trace)
                    if outcome == "Fail" and message
                    else None
                ),
            )
        )
    return tests


def per_test_coverage(record: CodeCoverageRecord) -> PerTestCoverage:
    """Normalize one per-test coverage row."""
    return PerTestCoverage(
        apex_class_or_trigger_name=record.apex_class_or_trigger.name,
        apex_class_or_trigger_id=record.apex_class_or_trigger.id,
        apex_test_class_id=record.apex_test_class_id,
        apex_test_method_name=record.test_method_name,
        num_lines_covered=record.num_lines_covered,
        num_lines_uncovered=record.num_lines_uncovered,
        percentage=percentage(
            record.num_lines_covered,
            record.num_lines_covered + record.num_lines_uncovered,
        ),
        coverage=LineCoverageInfo(
            covered_lines=record.coverage.covered_lines,
            uncovered_lines=record.coverage.uncovered_lines,
        ),
    )


def attach_per_test_coverage(
    tests: Sequence[TestResult], records: Sequence[CodeCoverageRecord]
) -> list[TestResult]:
    """Attach to each test the coverage rows its method produced."""
    by_test: dict[tuple[str, str], list[PerTestCoverage]] = {}
    for record in records:
        key = (record.apex_test_class_id, record.test_method_name)
        by_test.setdefault(key, []).append(per_test_coverage(record))

    return [
        test.model_copy(
            update={
                "per_class_coverage": by_test.get(
                    (test.apex_class.id, test.method_name), []
                )
            }
        )
        for test in tests
    ]


def reduce_coverage(
    records: Sequence[CodeCoverageAggregateRecord],
) -> list[CodeCoverageResult]:
    """Reduce coverage rows to one row per class or trigger.

    A line covered by any row is covered; uncovered lines are those no row
    covers. Rows without line detail contribute their line counts.
    """
    names: dict[str, str] = {}
    covered: dict[str, set[int]] = {}
    uncovered: dict[str, set[int]] = {}
    counts: dict[str, tuple[int, int]] = {}

    for record in records:
        class_id = record.apex_class_or_trigger.id
        names.setdefault(class_id, record.apex_class_or_trigger.name)
        covered.setdefault(class_id, set()).update(record.coverage.covered_lines)
        uncovered.setdefault(class_id, set()).update(record.coverage.uncovered_lines)
        prev_covered, prev_uncovered = counts.get(class_id, (0, 0))
        counts[class_id] = (
            max(prev_covered, record.num_lines_covered),
            max(prev_uncovered, record.num_lines_uncovered),
        )

    results: list[CodeCoverageResult] = []
    for class_id, name in names.items():
        covered_lines = sorted(covered[class_id])
        uncovered_lines = sorted(uncovered[class_id] - covered[class_id])
        if covered_lines or uncovered_lines:
            num_covered, num_uncovered = len(covered_lines), len(uncovered_lines)
        else:
            num_covered, num_uncovered = counts[class_id]

        results.append(
            CodeCoverageResult(
                apex_id=class_id,
                name=name,
                type=(
                    "ApexTrigger"
                    if class_id.startswith(TRIGGER_ID_PREFIX)
                    else "ApexClass"
                ),
                num_lines_covered=num_covered,
                num_lines_uncovered=num_uncovered,
                percentage=percentage(num_covered, num_covered + num_uncovered),
                covered_lines=covered_lines,
                uncovered_lines=uncovered_lines,
            )
        )
    return results


def build_report(
    tests: Sequence[TestResult],
    context: RunContext,
    coverage: CoverageRows | None = None,
) -> Report:
    """Compute the run summary and assemble the report.

    Args:
        tests: Normalized test results
        context: Run metadata and clock readings
        coverage: Coverage rows, when coverage was requested

    """
    tests_ran = len(tests)
    failing = sum(1 for test in tests if test.outcome in FAILING_OUTCOMES)
    skipped = sum(1 for test in tests if test.outcome == "Skip")
    passing = sum(1 for test in tests if test.outcome == "Pass")

    command_time_in_ms = round_half_up((context.finished_at - context.started_at) * 1000)
    test_time_ms = context.test_time_ms

    codecoverage: list[CodeCoverageResult] | None = None
    org_wide_coverage: str | None = None
    test_run_coverage: str | None = None

    if coverage is not None:
        tests = attach_per_test_coverage(tests, coverage.per_test)
        codecoverage = reduce_coverage(coverage.aggregate)
        total_covered = sum(row.num_lines_covered for row in codecoverage)
        total_lines = total_covered + sum(row.num_lines_uncovered for row in codecoverage)
        test_run_coverage = percentage(total_covered, total_lines)
        if coverage.org_wide is not None:
            org_wide_coverage = f"{coverage.org_wide}%"

    summary = RunSummary(
        outcome="Failed" if failing else "Passed",
        tests_ran=tests_ran,
        passing=passing,
        failing=failing,
        skipped=skipped,
        pass_rate=percentage(passing, tests_ran),
        fail_rate=percentage(failing, tests_ran),
        skip_rate=percentage(skipped, tests_ran),
        test_start_time=context.test_start_time,
        test_execution_time_in_ms=(
            test_time_ms if test_time_ms is not None else command_time_in_ms
        ),
        test_total_time_in_ms=test_time_ms or 0,
        command_time_in_ms=command_time_in_ms,
        hostname=context.identity.hostname,
        org_id=context.identity.org_id,
        username=context.identity.username,
        test_run_id=context.test_run_id,
        user_id=context.user_id,
        org_wide_coverage=org_wide_coverage,
        test_run_coverage=test_run_coverage,
    )
    return Report(summary=summary, tests=list(tests), codecoverage=codecoverage)
