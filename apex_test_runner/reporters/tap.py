"""TAP (Test Anything Protocol) formatter for test run reports."""

from apex_test_runner.models.result import Report


def format_tap(report: Report) -> str:
    """Render the report as a TAP stream."""
    lines = [f"1..{len(report.tests)}"]

    for number, test in enumerate(report.tests, start=1):
        if test.outcome == "Pass":
            lines.append(f"ok {number} {test.full_name}")
        elif test.outcome == "Skip":
            lines.append(f"ok {number} {test.full_name} # SKIP")
        else:
            lines.append(f"not ok {number} {test.full_name}")
            for detail in (test.message, test.stack_trace):
                lines.extend(f"# {line}" for line in detail.splitlines())

    lines.append(f"# Run \"{report.summary.test_run_id}\" {report.summary.outcome}")
    return "\n".join(lines) + "\n"
