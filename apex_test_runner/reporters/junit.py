"""JUnit XML formatter for test run reports."""

import xml.etree.ElementTree as ET

from apex_test_runner.models.result import Report

SUITE_NAME = "force.apex"

SUMMARY_PROPERTIES = (
    "outcome",
    "tests_ran",
    "passing",
    "failing",
    "skipped",
    "pass_rate",
    "fail_rate",
    "skip_rate",
    "test_start_time",
    "test_execution_time_in_ms",
    "test_total_time_in_ms",
    "command_time_in_ms",
    "hostname",
    "org_id",
    "username",
    "test_run_id",
    "user_id",
    "test_run_coverage",
    "org_wide_coverage",
)


def format_junit(report: Report) -> str:
    """Render the report as a JUnit XML document."""
    summary = report.summary
    testsuites = ET.Element("testsuites")
    suite = ET.SubElement(testsuites, "testsuite")
    suite.set("name", SUITE_NAME)
    suite.set("timestamp", summary.test_start_time)
    suite.set("hostname", summary.hostname)
    suite.set("tests", str(summary.tests_ran))
    suite.set("failures", str(summary.failing))
    suite.set("errors", "0")
    suite.set("skipped", str(summary.skipped))
    suite.set("time", _seconds(summary.test_execution_time_in_ms))

    properties = ET.SubElement(suite, "properties")
    values = summary.model_dump(
        include=set(SUMMARY_PROPERTIES), by_alias=True, exclude_none=True
    )
    for name, value in values.items():
        prop = ET.SubElement(properties, "property")
        prop.set("name", name)
        prop.set("value", str(value))

    for test in report.tests:
        case = ET.SubElement(suite, "testcase")
        case.set("name", test.method_name)
        case.set("classname", test.apex_class.full_name)
        case.set("time", _seconds(test.run_time))

        if test.outcome in {"Fail", "CompileFail"}:
            failure = ET.SubElement(case, "failure")
            failure.set("message", test.message)
            if test.stack_trace:
                failure.text = test.stack_trace
        elif test.outcome == "Skip":
            ET.SubElement(case, "skipped")

    ET.indent(testsuites, space="    ")
    return ET.tostring(testsuites, encoding="unicode", xml_declaration=True) + "\n"


def _seconds(milliseconds: int) -> str:
    return f"{milliseconds / 1000:.3f}"
