"""Completion channel backed by the org's CometD push endpoint."""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from apex_test_runner.errors import HandshakeError
from apex_test_runner.models.records import AsyncTestRun
from apex_test_runner.remote.tooling import ToolingConnection, raise_for_status
from apex_test_runner.streaming.polling import PollingChannel

log = logging.getLogger(__name__)

TEST_RESULT_TOPIC = "/systemTopic/TestResult"


@dataclass(kw_only=True)
class ClientState:
    """CometD client identifier, assigned by the handshake."""

    client_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class StreamingChannel(PollingChannel):
    """Long-polling Bayeux client for test run completion events.

    Every event naming the job, and every connect cycle that ends without
    events, is followed by a status query, so a job that finished before
    the subscription was active is still observed. When the server drops
    the client or the transport fails, the channel falls back to plain
    polling.
    """

    connection: ToolingConnection
    state: ClientState = field(default_factory=ClientState, repr=False)

    async def handshake(self) -> None:
        """Open a CometD session."""
        reply = await self._send_one(
            {
                "channel": "/meta/handshake",
                "version": "1.0",
                "minimumVersion": "1.0",
                "supportedConnectionTypes": ["long-polling"],
            }
        )
        if not reply.get("successful"):
            raise HandshakeError(reply.get("error") or "Handshake rejected")

        self.state.client_id = reply["clientId"]
        log.info("Streaming handshake complete (client_id=%s)", self.state.client_id)

    async def subscribe(self, job_id: str) -> AsyncTestRun:
        """Wait for the completion event of a job."""
        await self._subscribe_topic()

        if (job_status := await self.poll_status(job_id)) is not None:
            return AsyncTestRun(run_id=job_id, queue_item=job_status)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        try:
            while True:
                messages = await self._connect()

                if not self._should_continue(messages):
                    break

                if self._mentions_job(messages, job_id) or not any(
                    m.get("channel") == TEST_RESULT_TOPIC for m in messages
                ):
                    if (job_status := await self.poll_status(job_id)) is not None:
                        return AsyncTestRun(run_id=job_id, queue_item=job_status)

                if loop.time() >= deadline:
                    raise TimeoutError(
                        f"Job {job_id} did not complete within {self.timeout} seconds"
                    )

                if (delay := self._retry_delay(messages)) is not None:
                    log.info("Connect failed, retrying in %.1fs", delay)
                    await asyncio.sleep(delay)

                if self._needs_handshake(messages):
                    log.info("Server requested a new handshake, reconnecting")
                    await self.handshake()
                    await self._subscribe_topic()
        except aiohttp.ClientError as e:
            log.warning("Streaming connection lost (%s), falling back to polling", e)

        log.info("Polling job %s for completion", job_id)
        job_status = await self.wait_for_completion(job_id, deadline)
        return AsyncTestRun(run_id=job_id, queue_item=job_status)

    async def _subscribe_topic(self) -> None:
        reply = await self._send_one(
            {
                "channel": "/meta/subscribe",
                "clientId": self.state.client_id,
                "subscription": TEST_RESULT_TOPIC,
            }
        )
        if not reply.get("successful"):
            raise RuntimeError(
                f"Failed to subscribe to {TEST_RESULT_TOPIC}: {reply.get('error')}"
            )
        log.info("Subscribed to %s", TEST_RESULT_TOPIC)

    async def _connect(self) -> Sequence[Mapping[str, Any]]:
        return await self._send(
            {
                "channel": "/meta/connect",
                "clientId": self.state.client_id,
                "connectionType": "long-polling",
            }
        )

    async def _send_one(self, message: Mapping[str, Any]) -> Mapping[str, Any]:
        replies = await self._send(message)
        for reply in replies:
            if reply.get("channel") == message["channel"]:
                return reply
        raise RuntimeError(f"No reply for {message['channel']} from streaming channel")

    async def _send(self, message: Mapping[str, Any]) -> Sequence[Mapping[str, Any]]:
        message_type = message["channel"].rsplit("/", 1)[-1]
        url = self.connection.url(
            f"/cometd/{self.connection.config.api_version}/{message_type}"
        )

        async with self.connection.session.post(
            url, json=[message], headers=self.connection.auth_headers()
        ) as response:
            await raise_for_status(response, f"send {message_type} to streaming channel")
            data: Sequence[Mapping[str, Any]] = await response.json()
        return data

    @staticmethod
    def _mentions_job(messages: Sequence[Mapping[str, Any]], job_id: str) -> bool:
        return any(
            m.get("channel") == TEST_RESULT_TOPIC
            and m.get("data", {}).get("sobject", {}).get("Id") == job_id
            for m in messages
        )

    @staticmethod
    def _connect_reply(
        messages: Sequence[Mapping[str, Any]],
    ) -> Mapping[str, Any] | None:
        for m in messages:
            if m.get("channel") == "/meta/connect":
                return m
        return None

    def _should_continue(self, messages: Sequence[Mapping[str, Any]]) -> bool:
        reply = self._connect_reply(messages)
        if reply is None or reply.get("successful", True):
            return True
        return reply.get("advice", {}).get("reconnect") != "none"

    def _retry_delay(self, messages: Sequence[Mapping[str, Any]]) -> float | None:
        reply = self._connect_reply(messages)
        if reply is None or reply.get("successful", True):
            return None
        interval = reply.get("advice", {}).get("interval") or 0
        return max(interval / 1000, self.poll_interval)

    def _needs_handshake(self, messages: Sequence[Mapping[str, Any]]) -> bool:
        reply = self._connect_reply(messages)
        if reply is None or reply.get("successful", True):
            return False
        return reply.get("advice", {}).get("reconnect") == "handshake"
