"""Fixtures for integration tests."""

from collections.abc import AsyncGenerator

import pytest
from aioresponses import aioresponses as aioresponses_cls
from pydantic import SecretStr

from apex_test_runner.remote.config import OrgConfig
from apex_test_runner.remote.tooling import ToolingConnection


@pytest.fixture
def config() -> OrgConfig:
    """Create test configuration."""
    return OrgConfig(
        instance_url="https://na1.example.my.salesforce.com",
        access_token=SecretStr("old-access-token"),
        refresh_token=SecretStr("refresh-token"),
        username="test@example.com",
        org_id="00Dxx0000001gPFEAY",
    )


@pytest.fixture
async def connection(
    config: OrgConfig, aioresponses: aioresponses_cls
) -> AsyncGenerator[ToolingConnection, None]:
    """Create connection with managed session."""
    async with ToolingConnection.from_config(config) as impl:
        yield impl
