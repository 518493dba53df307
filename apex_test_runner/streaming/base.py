"""Abstract base class for run completion notification channels."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from apex_test_runner.models.records import AsyncTestRun


@dataclass(frozen=True, kw_only=True)
class NotificationChannel(ABC):
    """Delivers the completion of an asynchronous run.

    A channel moves from idle to handshaking on handshake(), and from
    subscribed to completed when subscribe() resolves. A failed handshake
    is fatal and must surface unchanged to the caller.
    """

    @abstractmethod
    async def handshake(self) -> None:
        """Open a session with the channel using the active credential."""

    @abstractmethod
    async def subscribe(self, job_id: str) -> AsyncTestRun:
        """Wait for the given job to reach a terminal state.

        Args:
            job_id: Identifier returned by the asynchronous submission

        Returns:
            The job identifier with its final status

        """
