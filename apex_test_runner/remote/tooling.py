"""aiohttp implementation of the remote environment client."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from xml.sax.saxutils import escape

import aiohttp

from apex_test_runner.errors import CredentialExpiredError
from apex_test_runner.models.records import QueryResult
from apex_test_runner.remote.base import OrgIdentity, RemoteConnection
from apex_test_runner.remote.config import OrgConfig

log = logging.getLogger(__name__)

INVALID_SESSION_MARKER = "INVALID_SESSION_ID"

SOAP_ENVELOPE = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<env:Envelope xmlns:xsd="http://www.w3.org/2001/XMLSchema"'
    ' xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"'
    ' xmlns:env="http://schemas.xmlsoap.org/soap/envelope/"'
    ' xmlns:apex="http://soap.sforce.com/2006/08/apex">'
    "<env:Header>"
    "<apex:SessionHeader><apex:sessionId>{session_id}</apex:sessionId>"
    "</apex:SessionHeader>"
    "{headers}"
    "</env:Header>"
    "<env:Body>{body}</env:Body>"
    "</env:Envelope>"
)


@dataclass(kw_only=True)
class SessionState:
    """Mutable session credential, replaced on refresh."""

    access_token: str = field(repr=False)
    instance_url: str


@dataclass(frozen=True, kw_only=True)
class ToolingConnection(RemoteConnection):
    """Client for the Tooling, data, SOAP and OAuth endpoints of an org."""

    config: OrgConfig
    session: aiohttp.ClientSession = field(repr=False)
    state: SessionState = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: OrgConfig
    ) -> AsyncGenerator["ToolingConnection", None]:
        """Create connection with managed session lifecycle."""
        async with aiohttp.ClientSession() as session:
            yield cls(
                config=config,
                session=session,
                state=SessionState(
                    access_token=config.access_token.get_secret_value(),
                    instance_url=config.instance_url.rstrip("/"),
                ),
            )

    @property
    def identity(self) -> OrgIdentity:
        """Identity of the connected org and user."""
        return OrgIdentity(
            hostname=self.state.instance_url,
            org_id=self.config.org_id,
            username=self.config.username,
        )

    @property
    def data_path(self) -> str:
        """Root path of the versioned REST API."""
        return f"/services/data/v{self.config.api_version}"

    def url(self, path: str) -> str:
        """Absolute URL of a path on the current instance."""
        return f"{self.state.instance_url}{path}"

    def auth_headers(self) -> dict[str, str]:
        """Authorization header for the active credential."""
        return {"Authorization": f"Bearer {self.state.access_token}"}

    async def tooling_request(
        self,
        method: str,
        endpoint: str,
        payload: Any = None,
    ) -> Any:
        """Call a Tooling API endpoint and return its decoded JSON body."""
        url = self.url(f"{self.data_path}/tooling/{endpoint}")

        async with self.session.request(
            method, url, json=payload, headers=self.auth_headers()
        ) as response:
            await raise_for_status(response, f"call {endpoint}")
            if response.status == 204:
                return None
            return await response.json()

    async def query(self, soql: str, *, tooling: bool = True) -> QueryResult:
        """Run a query and merge every page into one result."""
        api = "tooling/query" if tooling else "query"
        url = self.url(f"{self.data_path}/{api}")
        params: dict[str, str] | None = {"q": soql}
        records: list[dict[str, Any]] = []
        total_size = 0

        while True:
            async with self.session.get(
                url, params=params, headers=self.auth_headers()
            ) as response:
                await raise_for_status(response, "query records")
                data = await response.json()

            records.extend(data.get("records", []))
            total_size = data.get("totalSize", len(records))

            next_records_url = data.get("nextRecordsUrl")
            if data.get("done", True) or not next_records_url:
                break

            log.debug("Fetching next page of query results: %s", next_records_url)
            url = self.url(next_records_url)
            params = None

        return QueryResult(records=records, total_size=total_size, done=True)

    async def soap_request(self, action: str, body: str, headers: str = "") -> str:
        """Post a SOAP body in a session envelope and return the raw reply."""
        url = self.url(f"/services/Soap/s/{self.config.api_version}")
        envelope = SOAP_ENVELOPE.format(
            session_id=escape(self.state.access_token),
            headers=headers,
            body=body,
        )
        request_headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": action,
        }

        async with self.session.post(
            url, data=envelope.encode(), headers=request_headers
        ) as response:
            text = await response.text()
            if INVALID_SESSION_MARKER in text:
                raise CredentialExpiredError(f"Session rejected on {action}")
            if response.status != 200:
                raise RuntimeError(
                    f"Failed to call {action}: {response.status} {text}"
                )
            return text

    async def refresh_credential(self) -> None:
        """Exchange the refresh token for a new access token."""
        if self.config.refresh_token is None:
            raise CredentialExpiredError(
                "Session expired and no refresh token is configured"
            )

        url = f"{self.config.login_url.rstrip('/')}/services/oauth2/token"
        form = {
            "grant_type": "refresh_token",
            "client_id": self.config.client_id,
            "refresh_token": self.config.refresh_token.get_secret_value(),
        }

        async with self.session.post(url, data=form) as response:
            if response.status != 200:
                text = await response.text()
                raise CredentialExpiredError(
                    f"Failed to refresh credential: {response.status} {text}"
                )
            data = await response.json()

        self.state.access_token = data["access_token"]
        self.state.instance_url = data.get(
            "instance_url", self.state.instance_url
        ).rstrip("/")
        log.info("Refreshed access token for %s", self.config.username or "org")


async def raise_for_status(response: aiohttp.ClientResponse, operation: str) -> None:
    """Raise the matching error for a non-successful response."""
    if 200 <= response.status < 300:
        return

    text = await response.text()
    if response.status == 401 or INVALID_SESSION_MARKER in text:
        raise CredentialExpiredError(f"Session rejected on {operation}: {text}")
    raise RuntimeError(f"Failed to {operation}: {response.status} {text}")
