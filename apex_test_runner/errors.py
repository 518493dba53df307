"""Errors raised while running remote tests."""


class ApexTestRunnerError(Exception):
    """Base class for errors with a stable machine-checkable kind."""

    kind = "error"


class InvalidSelectorError(ApexTestRunnerError):
    """Raised when a selector cannot be turned into a valid run request."""

    kind = "invalid_selector"


class CredentialExpiredError(ApexTestRunnerError):
    """Raised when the remote environment rejects the session as invalid or expired."""

    kind = "credential_expired"


class HandshakeError(ApexTestRunnerError):
    """Raised when the push-notification channel refuses the handshake."""

    kind = "handshake_failed"


class NoTestResultError(ApexTestRunnerError):
    """Raised when the remote environment has no summary for a finished run."""

    kind = "no_test_result"

    def __init__(self, job_id: str) -> None:
        super().__init__(f"No test run summary found for job {job_id}")
        self.job_id = job_id


class SourceNotFoundError(ApexTestRunnerError):
    """Raised when a local source file for anonymous execution does not exist."""

    kind = "source_not_found"

    def __init__(self, path: str) -> None:
        super().__init__(f"Source file not found: {path}")
        self.path = path
