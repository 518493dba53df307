"""Models for the normalized test run report."""

from collections.abc import Mapping, Sequence
from enum import StrEnum
from pathlib import Path
from typing import Any, Literal

from pydantic import (
    Field,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    model_serializer,
)

from apex_test_runner.models.base import Model


class ResultFormat(StrEnum):
    """Encodings the report writer can produce."""

    JSON = "json"
    JUNIT = "junit"
    TAP = "tap"


class ApexClassInfo(Model):
    """Class a test method belongs to."""

    id: str
    name: str
    namespace_prefix: str | None = None
    full_name: str

    @model_serializer(mode="wrap")
    def _keep_namespace_prefix(
        self, handler: SerializerFunctionWrapHandler, info: SerializationInfo
    ) -> dict[str, Any]:
        """Always emit the namespace prefix, null when the class has none."""
        data: dict[str, Any] = handler(self)
        key = "namespacePrefix" if info.by_alias else "namespace_prefix"
        data.setdefault(key, self.namespace_prefix)
        return data


class LineCoverageInfo(Model):
    """Line numbers covered and not covered by a test."""

    covered_lines: Sequence[int] = Field(default_factory=list)
    uncovered_lines: Sequence[int] = Field(default_factory=list)


class PerTestCoverage(Model):
    """Coverage of one class produced by one test method."""

    apex_class_or_trigger_name: str
    apex_class_or_trigger_id: str
    apex_test_class_id: str
    apex_test_method_name: str
    num_lines_covered: int
    num_lines_uncovered: int
    percentage: str
    coverage: LineCoverageInfo


class Diagnostic(Model):
    """Structured failure information parsed from a test's message and trace."""

    exception_message: str
    exception_stack_trace: str
    compile_problem: str = ""
    class_name: str = ""
    line_number: int | None = None
    column_number: int | None = None


class TestResult(Model):
    """Normalized outcome of a single test method."""

    __test__ = False

    id: str
    queue_item_id: str
    stack_trace: str
    message: str
    async_apex_job_id: str
    method_name: str
    outcome: Literal["Pass", "Fail", "Skip", "CompileFail"]
    apex_log_id: str
    apex_class: ApexClassInfo
    run_time: int
    test_timestamp: str
    full_name: str
    diagnostic: Diagnostic | None = None
    per_class_coverage: Sequence[PerTestCoverage] | None = None


class CodeCoverageResult(Model):
    """Coverage of one class or trigger across the whole run."""

    apex_id: str
    name: str
    type: Literal["ApexClass", "ApexTrigger"]
    num_lines_covered: int
    num_lines_uncovered: int
    percentage: str
    covered_lines: Sequence[int]
    uncovered_lines: Sequence[int]


class RunSummary(Model):
    """Aggregate numbers for one run."""

    outcome: Literal["Passed", "Failed"]
    tests_ran: int
    passing: int
    failing: int
    skipped: int
    pass_rate: str
    fail_rate: str
    skip_rate: str
    test_start_time: str
    test_execution_time_in_ms: int
    test_total_time_in_ms: int
    command_time_in_ms: int
    hostname: str
    org_id: str
    username: str
    test_run_id: str
    user_id: str
    org_wide_coverage: str | None = None
    test_run_coverage: str | None = None


class Report(Model):
    """The single artifact produced per run."""

    summary: RunSummary
    tests: Sequence[TestResult]
    codecoverage: Sequence[CodeCoverageResult] | None = None

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with wire key names, omitting absent optional sections."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FileInfo(Model):
    """An explicitly requested artifact with caller-supplied content."""

    filename: str
    content: str | Mapping[str, Any]


class OutputDirConfig(Model):
    """Where and how to write report artifacts."""

    dir_path: Path
    result_formats: Sequence[ResultFormat] = Field(default_factory=list)
    file_infos: Sequence[FileInfo] = Field(default_factory=list)


class ExecuteAnonymousResult(Model):
    """Outcome of an anonymous code execution, with its debug log."""

    compiled: bool
    success: bool
    line: int
    column: int
    compile_problem: str = ""
    exception_message: str = ""
    exception_stack_trace: str = ""
    logs: str = ""
