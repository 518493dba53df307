"""Tests for PollingChannel."""

import asyncio

import pytest

from apex_test_runner.streaming.polling import (
    QUEUE_ITEM_QUERY,
    PollingChannel,
    get_job_status,
)
from apex_test_runner.testing import payloads
from apex_test_runner.testing.fakes import FakeConnection


async def test_get_job_status() -> None:
    """Reads the queue items of a job."""
    connection = FakeConnection().reply(
        [payloads.queue_item(status="Completed"), payloads.queue_item(status="Failed")]
    )

    job_status = await get_job_status(connection, payloads.JOB_ID)

    assert job_status.status == "Failed"
    assert job_status.is_terminal
    assert connection.queries == [QUEUE_ITEM_QUERY.format(job_id=payloads.JOB_ID)]


class TestPollStatus:
    """Tests for poll_status."""

    async def test_returns_none_while_running(self) -> None:
        """Returns None while a queue item is still processing."""
        connection = FakeConnection().reply(
            [payloads.queue_item(status="Completed"), payloads.queue_item(status="Processing")]
        )

        assert await PollingChannel(connection=connection).poll_status(payloads.JOB_ID) is None

    async def test_returns_none_without_queue_items(self) -> None:
        """Treats a job without queue items as not yet started."""
        connection = FakeConnection().reply([])

        assert await PollingChannel(connection=connection).poll_status(payloads.JOB_ID) is None

    async def test_returns_terminal_status(self) -> None:
        """Returns the status once every item is terminal."""
        connection = FakeConnection().reply([payloads.queue_item(status="Aborted")])

        job_status = await PollingChannel(connection=connection).poll_status(payloads.JOB_ID)

        assert job_status is not None
        assert job_status.status == "Aborted"


class TestSubscribe:
    """Tests for subscribe."""

    async def test_polls_until_complete(self) -> None:
        """Keeps polling until the job is terminal."""
        connection = FakeConnection().reply(
            [payloads.queue_item(status="Queued")],
            [payloads.queue_item(status="Processing")],
            [payloads.queue_item(status="Completed")],
        )
        channel = PollingChannel(connection=connection, poll_interval=0.01)

        await channel.handshake()
        test_run = await channel.subscribe(payloads.JOB_ID)

        assert test_run.run_id == payloads.JOB_ID
        assert test_run.queue_item.status == "Completed"
        assert len(connection.calls) == 3

    async def test_raises_timeout_error(self) -> None:
        """Raises TimeoutError when the job never finishes."""
        connection = FakeConnection().reply(
            *([[payloads.queue_item(status="Processing")]] * 10)
        )
        channel = PollingChannel(connection=connection, timeout=0.05, poll_interval=0.02)

        with pytest.raises(TimeoutError, match="did not complete within"):
            await channel.subscribe(payloads.JOB_ID)

    async def test_honors_given_deadline(self) -> None:
        """Stops after one poll when the given deadline has passed."""
        connection = FakeConnection().reply([payloads.queue_item(status="Processing")])
        channel = PollingChannel(connection=connection, timeout=60, poll_interval=0.01)
        deadline = asyncio.get_running_loop().time()

        with pytest.raises(TimeoutError):
            await channel.wait_for_completion(payloads.JOB_ID, deadline)

        assert len(connection.calls) == 1
