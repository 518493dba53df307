"""Tests for RemoteConnection.retry_on_expired_session."""

from unittest.mock import AsyncMock

import pytest

from apex_test_runner.errors import CredentialExpiredError
from apex_test_runner.testing.fakes import FakeConnection


async def test_returns_first_result_without_refresh() -> None:
    """Does not refresh when the call succeeds."""
    connection = FakeConnection()
    call = AsyncMock(return_value="ok")

    assert await connection.retry_on_expired_session(call) == "ok"

    call.assert_awaited_once()
    assert connection.calls == []


async def test_refreshes_and_reissues_once() -> None:
    """Refreshes once and returns the reissued call's result."""
    connection = FakeConnection()
    call = AsyncMock(side_effect=[CredentialExpiredError("expired"), "ok"])

    assert await connection.retry_on_expired_session(call) == "ok"

    assert call.await_count == 2
    assert connection.calls == [("refresh",)]


async def test_surfaces_second_rejection() -> None:
    """Raises when the reissued call is rejected too."""
    connection = FakeConnection()
    second = CredentialExpiredError("still expired")
    call = AsyncMock(side_effect=[CredentialExpiredError("expired"), second])

    with pytest.raises(CredentialExpiredError) as exc_info:
        await connection.retry_on_expired_session(call)

    assert exc_info.value is second
    assert call.await_count == 2


async def test_surfaces_refresh_failure() -> None:
    """Raises the refresh error without reissuing the call."""
    refresh_error = CredentialExpiredError("no refresh token")
    connection = FakeConnection(refresh_error=refresh_error)
    call = AsyncMock(side_effect=CredentialExpiredError("expired"))

    with pytest.raises(CredentialExpiredError) as exc_info:
        await connection.retry_on_expired_session(call)

    assert exc_info.value is refresh_error
    call.assert_awaited_once()


async def test_does_not_retry_other_errors() -> None:
    """Propagates errors other than an expired session."""
    connection = FakeConnection()
    call = AsyncMock(side_effect=RuntimeError("Failed to query records: 500"))

    with pytest.raises(RuntimeError):
        await connection.retry_on_expired_session(call)

    call.assert_awaited_once()
    assert connection.calls == []
