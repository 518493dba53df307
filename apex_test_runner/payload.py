"""Building run requests from selector strings."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from apex_test_runner.errors import InvalidSelectorError
from apex_test_runner.models.records import NamespaceRecord
from apex_test_runner.models.request import RunRequest, TestItem, TestLevel
from apex_test_runner.remote.base import RemoteConnection

log = logging.getLogger(__name__)

NAMESPACE_QUERIES = (
    "SELECT NamespacePrefix FROM PackageLicense",
    "SELECT NamespacePrefix FROM Organization",
)


@dataclass(frozen=True, kw_only=True)
class PayloadBuilder:
    """Turns selector strings into run requests.

    Selectors name classes (``Cls``), namespaced classes (``ns.Cls``) or
    methods (``Cls.method``, ``ns.Cls.method``), separated by commas. A
    two-part entry is ambiguous and is resolved against the namespaces
    visible in the org, queried at most once per build call.
    """

    connection: RemoteConnection

    async def build_sync_payload(
        self,
        test_level: TestLevel,
        tests: str | None = None,
        class_names: str | None = None,
    ) -> RunRequest:
        """Build a request for a synchronous run, limited to a single class.

        Raises:
            InvalidSelectorError: If the selector names more than one class

        """
        if tests:
            items = await self._parse_tests(tests)
            if len(items) > 1:
                raise InvalidSelectorError(
                    "Cannot combine multiple classes into one synchronous run: "
                    + ", ".join(item.qualified_name for item in items)
                )
            return RunRequest(test_level=test_level, tests=items)

        if class_names:
            names = _split(class_names)
            if len(names) > 1:
                raise InvalidSelectorError(
                    "Cannot combine multiple classes into one synchronous run: "
                    + ", ".join(names)
                )
            return RunRequest(test_level=test_level, tests=[TestItem(class_name=names[0])])

        return RunRequest(test_level=test_level)

    async def build_async_payload(
        self,
        test_level: TestLevel,
        tests: str | None = None,
        class_names: str | None = None,
        suite_names: str | None = None,
    ) -> RunRequest:
        """Build a request for an asynchronous run."""
        if suite_names:
            return RunRequest(test_level=test_level, suite_names=suite_names)

        if tests:
            items = await self._parse_tests(tests)
            return RunRequest(test_level=test_level, tests=items)

        if class_names:
            items = []
            for name in _split(class_names):
                namespace, _, class_name = name.rpartition(".")
                items.append(TestItem(namespace=namespace or None, class_name=class_name))
            return RunRequest(test_level=test_level, tests=items)

        return RunRequest(test_level=test_level)

    async def query_namespaces(self) -> set[str]:
        """Collect namespaces of installed packages and of the org itself."""
        namespaces: set[str] = set()
        for soql in NAMESPACE_QUERIES:
            result = await self.connection.query(soql, tooling=False)
            for record in result.records:
                prefix = NamespaceRecord.model_validate(record).namespace_prefix
                if prefix:
                    namespaces.add(prefix)

        log.debug("Known namespaces: %s", ", ".join(sorted(namespaces)) or "none")
        return namespaces

    async def _parse_tests(self, tests: str) -> list[TestItem]:
        """Parse a method selector, merging entries for the same class."""
        namespaces: set[str] | None = None
        # (namespace, class name) -> selected methods, None for the whole class
        selected: dict[tuple[str | None, str], list[str] | None] = {}

        for entry in _split(tests):
            parts = entry.split(".")
            namespace: str | None = None
            method: str | None = None

            if not all(parts):
                parts = []

            match parts:
                case [class_name]:
                    pass
                case [first, second]:
                    if namespaces is None:
                        namespaces = await self.query_namespaces()
                    if first in namespaces:
                        namespace, class_name = first, second
                    else:
                        class_name, method = first, second
                case [namespace, class_name, method]:
                    pass
                case _:
                    raise InvalidSelectorError(
                        f"Invalid test selector '{entry}': expected "
                        "Class, Class.method, namespace.Class or namespace.Class.method"
                    )

            key = (namespace, class_name)
            if key not in selected:
                selected[key] = [method] if method else None
            elif method and selected[key] is not None:
                methods = selected[key]
                if method not in methods:
                    methods.append(method)
            else:
                selected[key] = None

        return [
            TestItem(namespace=namespace, class_name=class_name, test_methods=methods)
            for (namespace, class_name), methods in selected.items()
        ]


def _split(selector: str) -> Sequence[str]:
    return [part.strip() for part in selector.split(",") if part.strip()]
