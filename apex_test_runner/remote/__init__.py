"""Clients for the remote environment."""

from apex_test_runner.remote.base import OrgIdentity, RemoteConnection
from apex_test_runner.remote.config import OrgConfig
from apex_test_runner.remote.tooling import ToolingConnection

__all__ = ["OrgConfig", "OrgIdentity", "RemoteConnection", "ToolingConnection"]
