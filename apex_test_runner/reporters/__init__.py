"""Formatters rendering a report as text."""

from apex_test_runner.reporters.junit import format_junit
from apex_test_runner.reporters.tap import format_tap

__all__ = ["format_junit", "format_tap"]
