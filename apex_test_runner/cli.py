"""CLI entry point for running remote tests."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from apex_test_runner.errors import ApexTestRunnerError
from apex_test_runner.models.request import TestLevel
from apex_test_runner.models.result import OutputDirConfig, Report, ResultFormat
from apex_test_runner.remote.config import OrgConfig
from apex_test_runner.remote.tooling import ToolingConnection
from apex_test_runner.service import TestService
from apex_test_runner.streaming.cometd import StreamingChannel

OUTCOME_SYMBOLS = {
    "Pass": "✅",
    "Fail": "❌",
    "CompileFail": "❗",
    "Skip": "⏭️",
}


def log_results_summary(log: logging.Logger, report: Report) -> None:
    """Log a formatted summary of the run."""
    summary = report.summary
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for test in report.tests:
        symbol = OUTCOME_SYMBOLS.get(test.outcome, "?")
        log.info("%s %s: %s (%dms)", symbol, test.full_name, test.outcome, test.run_time)
        if test.message:
            log.info("  Message: %s", test.message)

    log.info(
        "Outcome: %s, %d ran, pass rate %s, fail rate %s, skip rate %s",
        summary.outcome,
        summary.tests_ran,
        summary.pass_rate,
        summary.fail_rate,
        summary.skip_rate,
    )
    if summary.test_run_coverage is not None:
        log.info("Test run coverage: %s", summary.test_run_coverage)
    if summary.org_wide_coverage is not None:
        log.info("Org wide coverage: %s", summary.org_wide_coverage)


async def run(
    org_config_json: str,
    test_level: TestLevel,
    tests: str | None = None,
    class_names: str | None = None,
    suite_names: str | None = None,
    synchronous: bool = False,
    code_coverage: bool = False,
    output_dir: Path | None = None,
    result_formats: Sequence[ResultFormat] = (),
    wait_minutes: float | None = None,
) -> int:
    """Run remote tests and return exit code."""
    log = logging.getLogger("apex_test_runner")

    config = OrgConfig(**json.loads(org_config_json))
    timeout = wait_minutes * 60 if wait_minutes is not None else None

    try:
        async with ToolingConnection.from_config(config) as connection:
            channel = StreamingChannel(connection=connection, timeout=timeout or 1800)
            service = TestService(connection=connection, channel=channel, timeout=timeout)

            if synchronous:
                request = await service.build_sync_payload(test_level, tests, class_names)
                report = await service.run_test_synchronous(request, code_coverage)
            else:
                request = await service.build_async_payload(
                    test_level, tests, class_names, suite_names
                )
                report = await service.run_test_asynchronous(request, code_coverage)

            if output_dir is not None:
                await service.write_result_files(
                    report,
                    OutputDirConfig(dir_path=output_dir, result_formats=result_formats),
                    code_coverage,
                )
    except ApexTestRunnerError as e:
        log.error("%s: %s", e.kind, e)
        return 2

    log_results_summary(log, report)
    print(json.dumps(report.summary.model_dump(mode="json", by_alias=True), indent=2))

    return 1 if report.summary.outcome == "Failed" else 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Run tests in a remote org")
    parser.add_argument(
        "--org-config",
        required=True,
        help="JSON configuration for the org connection",
    )
    parser.add_argument(
        "--test-level",
        type=TestLevel,
        choices=list(TestLevel),
        default=TestLevel.RUN_SPECIFIED_TESTS,
        help="Which tests to run",
    )
    selector = parser.add_mutually_exclusive_group()
    selector.add_argument(
        "--tests",
        help="Comma-separated tests (Class, Class.method, ns.Class.method)",
    )
    selector.add_argument(
        "--class-names",
        help="Comma-separated class names",
    )
    selector.add_argument(
        "--suite-names",
        help="Comma-separated suite names",
    )
    parser.add_argument(
        "--synchronous",
        action="store_true",
        help="Run a single class with one blocking call",
    )
    parser.add_argument(
        "--code-coverage",
        action="store_true",
        help="Fetch code coverage for the run",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Directory to write result files to",
    )
    parser.add_argument(
        "--result-format",
        type=ResultFormat,
        choices=list(ResultFormat),
        action="append",
        default=[],
        help="Result file format, may be repeated",
    )
    parser.add_argument(
        "--wait",
        type=float,
        help="Minutes to wait for an asynchronous run to finish",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = asyncio.run(
        run(
            org_config_json=args.org_config,
            test_level=args.test_level,
            tests=args.tests,
            class_names=args.class_names,
            suite_names=args.suite_names,
            synchronous=args.synchronous,
            code_coverage=args.code_coverage,
            output_dir=args.output_dir,
            result_formats=args.result_format,
            wait_minutes=args.wait,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
