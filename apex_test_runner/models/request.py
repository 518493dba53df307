"""Models for run request payloads."""

from collections.abc import Sequence
from enum import StrEnum
from typing import Self

from pydantic import Field, model_validator

from apex_test_runner.models.base import Model


class TestLevel(StrEnum):
    """Which tests the remote environment should run."""

    __test__ = False

    RUN_SPECIFIED_TESTS = "RunSpecifiedTests"
    RUN_LOCAL_TESTS = "RunLocalTests"
    RUN_ALL_TESTS_IN_ORG = "RunAllTestsInOrg"


class TestItem(Model):
    """A single class selected for a run, optionally narrowed to methods."""

    __test__ = False

    namespace: str | None = None
    class_name: str
    test_methods: Sequence[str] | None = None

    @property
    def qualified_name(self) -> str:
        """Class name prefixed with its namespace, if any."""
        if self.namespace:
            return f"{self.namespace}.{self.class_name}"
        return self.class_name


class RunRequest(Model):
    """Payload for runTestsSynchronous / runTestsAsynchronous."""

    test_level: TestLevel
    tests: Sequence[TestItem] | None = None
    suite_names: str | None = None
    skip_code_coverage: bool | None = None
    max_failed_tests: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_selector(self) -> Self:
        if self.tests is not None and self.suite_names is not None:
            raise ValueError("Only one of tests or suiteNames may be given")
        return self

    def to_payload(self) -> dict[str, object]:
        """Serialize to the JSON body expected by the remote environment."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
