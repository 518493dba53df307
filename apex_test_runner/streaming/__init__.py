"""Channels reporting the completion of asynchronous runs."""

from apex_test_runner.streaming.base import NotificationChannel
from apex_test_runner.streaming.cometd import StreamingChannel
from apex_test_runner.streaming.polling import PollingChannel, get_job_status

__all__ = ["NotificationChannel", "PollingChannel", "StreamingChannel", "get_job_status"]
