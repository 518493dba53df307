"""Anonymous code execution through the SOAP API."""

import asyncio
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from xml.sax.saxutils import escape

from apex_test_runner.errors import SourceNotFoundError
from apex_test_runner.models.result import ExecuteAnonymousResult
from apex_test_runner.remote.base import RemoteConnection

log = logging.getLogger(__name__)

APEX_NS = "http://soap.sforce.com/2006/08/apex"
ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
NAMESPACES = {"soapenv": ENVELOPE_NS, "apex": APEX_NS}

DEBUGGING_HEADER = (
    "<apex:DebuggingHeader>"
    "<apex:categories><apex:category>Apex_code</apex:category>"
    "<apex:level>DEBUG</apex:level></apex:categories>"
    "<apex:debugLevel>DEBUGONLY</apex:debugLevel>"
    "</apex:DebuggingHeader>"
)


@dataclass(frozen=True, kw_only=True)
class ExecuteService:
    """Executes anonymous code blocks and captures their debug log."""

    connection: RemoteConnection

    async def execute_anonymous(
        self,
        *,
        apex_file_path: Path | None = None,
        apex_code: str | bytes | None = None,
    ) -> ExecuteAnonymousResult:
        """Execute code from a file or given inline.

        Args:
            apex_file_path: File holding the code
            apex_code: Code to run, used when no file is given

        Returns:
            Compilation and execution outcome with the debug log

        Raises:
            SourceNotFoundError: If apex_file_path does not exist

        """
        code = await self._read_code(apex_file_path, apex_code)
        body = (
            f'<executeAnonymous xmlns="{APEX_NS}">'
            f"<apexcode>{escape(code)}</apexcode>"
            "</executeAnonymous>"
        )

        reply = await self.connection.retry_on_expired_session(
            lambda: self.connection.soap_request(
                "executeAnonymous", body, headers=DEBUGGING_HEADER
            )
        )
        result = parse_execute_reply(reply)
        log.info(
            "Anonymous execution finished: compiled=%s success=%s",
            result.compiled,
            result.success,
        )
        return result

    @staticmethod
    async def _read_code(
        apex_file_path: Path | None, apex_code: str | bytes | None
    ) -> str:
        if apex_file_path is not None:
            if not apex_file_path.exists():
                raise SourceNotFoundError(str(apex_file_path))
            return await asyncio.to_thread(apex_file_path.read_text, encoding="utf-8")

        if isinstance(apex_code, bytes):
            return apex_code.decode("utf-8")
        if apex_code is None:
            raise ValueError("Either apex_file_path or apex_code is required")
        return apex_code


def parse_execute_reply(reply: str) -> ExecuteAnonymousResult:
    """Parse an executeAnonymous SOAP reply."""
    root = ET.fromstring(reply)
    result = root.find(
        "soapenv:Body/apex:executeAnonymousResponse/apex:result", NAMESPACES
    )
    if result is None:
        raise RuntimeError("Failed to parse executeAnonymous response: no result")

    def text(tag: str) -> str:
        element = result.find(f"apex:{tag}", NAMESPACES)
        return element.text or "" if element is not None else ""

    debug_log = root.findtext(
        "soapenv:Header/apex:DebuggingInfo/apex:debugLog", default="", namespaces=NAMESPACES
    )

    return ExecuteAnonymousResult(
        compiled=text("compiled") == "true",
        success=text("success") == "true",
        line=int(text("line") or -1),
        column=int(text("column") or -1),
        compile_problem=text("compileProblem"),
        exception_message=text("exceptionMessage"),
        exception_stack_trace=text("exceptionStackTrace"),
        logs=debug_log,
    )
