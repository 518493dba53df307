"""Abstract base class for clients of the remote environment."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from apex_test_runner.errors import CredentialExpiredError
from apex_test_runner.models.records import QueryResult

log = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass(frozen=True, kw_only=True)
class OrgIdentity:
    """Who and where the tests run, as reported in the run summary."""

    hostname: str
    org_id: str = ""
    username: str = ""


@dataclass(frozen=True, kw_only=True)
class RemoteConnection(ABC):
    """Abstract client for the remote environment's wire contract.

    Implementations raise CredentialExpiredError when the remote side
    rejects the session, and RuntimeError for any other failed call.
    """

    @property
    @abstractmethod
    def identity(self) -> OrgIdentity:
        """Identity of the connected org and user."""

    @abstractmethod
    async def tooling_request(
        self,
        method: str,
        endpoint: str,
        payload: Any = None,
    ) -> Any:
        """Call a Tooling API endpoint and return its decoded JSON body.

        Args:
            method: HTTP method
            endpoint: Path relative to the Tooling API root
                (e.g., "runTestsAsynchronous")
            payload: JSON body, if any

        """

    @abstractmethod
    async def query(self, soql: str, *, tooling: bool = True) -> QueryResult:
        """Run a query and return every record, following pagination.

        Args:
            soql: Query string
            tooling: Query the Tooling API instead of the data API

        """

    @abstractmethod
    async def soap_request(self, action: str, body: str, headers: str = "") -> str:
        """Post a SOAP body wrapped in a session envelope and return the reply.

        Args:
            action: SOAPAction of the call
            body: XML placed in the envelope body
            headers: Extra XML header elements (e.g., a DebuggingHeader)

        """

    @abstractmethod
    async def refresh_credential(self) -> None:
        """Replace the active session credential with a fresh one."""

    async def retry_on_expired_session(self, call: Callable[[], Awaitable[R]]) -> R:
        """Run call, refreshing the credential and reissuing it once if expired.

        Args:
            call: Zero-argument coroutine factory issuing the remote call

        Returns:
            Result of the first successful call

        Raises:
            CredentialExpiredError: If the refresh or the reissued call fails
                the same way

        """
        try:
            return await call()
        except CredentialExpiredError as e:
            log.warning("Session rejected (%s), refreshing credential", e)

        await self.refresh_credential()
        return await call()
