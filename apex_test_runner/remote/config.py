"""Configuration for the remote environment connection."""

from pydantic import BaseModel, SecretStr


class OrgConfig(BaseModel):
    """Configuration for connecting to an org.

    The access token is used as-is. When the remote environment reports it
    as expired, the refresh token (if any) is exchanged for a new one at
    ``login_url``.
    """

    instance_url: str
    access_token: SecretStr
    refresh_token: SecretStr | None = None
    client_id: str = "PlatformCLI"
    login_url: str = "https://login.salesforce.com"
    api_version: str = "61.0"
    username: str = ""
    org_id: str = ""
