"""Test factories for generating report data."""

from polyfactory import Use
from polyfactory.factories.pydantic_factory import ModelFactory

from apex_test_runner.models.result import (
    ApexClassInfo,
    CodeCoverageResult,
    Report,
    RunSummary,
    TestResult,
)


class ApexClassInfoFactory(ModelFactory[ApexClassInfo]):
    """Factory for ApexClassInfo."""

    namespace_prefix = None


class TestResultFactory(ModelFactory[TestResult]):
    """Factory for TestResult."""

    outcome = "Pass"
    message = ""
    stack_trace = ""
    apex_class = Use(ApexClassInfoFactory.build)
    diagnostic = None
    per_class_coverage = None


class CodeCoverageResultFactory(ModelFactory[CodeCoverageResult]):
    """Factory for CodeCoverageResult."""

    type = "ApexClass"
    num_lines_covered = 2
    num_lines_uncovered = 1
    percentage = "67%"
    covered_lines = Use(lambda: [1, 2])
    uncovered_lines = Use(lambda: [3])


class RunSummaryFactory(ModelFactory[RunSummary]):
    """Factory for RunSummary."""

    outcome = "Passed"
    test_run_id = "707xx0000AGQ3jbQQD"
    org_wide_coverage = None
    test_run_coverage = None


class ReportFactory(ModelFactory[Report]):
    """Factory for Report."""

    summary = Use(RunSummaryFactory.build)
    tests = Use(TestResultFactory.batch, size=2)
    codecoverage = None
