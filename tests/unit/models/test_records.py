"""Tests for remote row models."""

import pytest
from pydantic import ValidationError

from apex_test_runner.models.records import JobStatus, QueueItem, TestResultRecord
from apex_test_runner.testing import payloads


def job(*statuses: str) -> JobStatus:
    """Job whose queue items have the given statuses."""
    return JobStatus(
        job_id=payloads.JOB_ID,
        queue_items=[
            QueueItem.model_validate(payloads.queue_item(status=status))
            for status in statuses
        ],
    )


@pytest.mark.parametrize(
    ("statuses", "expected", "terminal"),
    [
        ((), "Queued", False),
        (("Holding", "Queued"), "Queued", False),
        (("Completed", "Preparing"), "Processing", False),
        (("Completed", "Completed"), "Completed", True),
        (("Completed", "Failed"), "Failed", True),
        (("Failed", "Aborted"), "Aborted", True),
    ],
)
def test_job_status(statuses: tuple[str, ...], expected: str, terminal: bool) -> None:
    """Derives the job state from its queue items."""
    status = job(*statuses)

    assert status.status == expected
    assert status.is_terminal is terminal


def test_queue_item_rejects_unknown_status() -> None:
    """Rejects rows with a status outside the closed set."""
    with pytest.raises(ValidationError):
        QueueItem.model_validate(payloads.queue_item(status="Exploded"))


def test_test_result_record_requires_class() -> None:
    """Rejects result rows missing their class reference."""
    row = payloads.test_result()
    del row["ApexClass"]

    with pytest.raises(ValidationError):
        TestResultRecord.model_validate(row)


def test_test_result_record_reads_nested_class() -> None:
    """Reads PascalCase columns and the nested class reference."""
    record = TestResultRecord.model_validate(payloads.test_result())

    assert record.queue_item_id == payloads.QUEUE_ITEM_ID
    assert record.apex_class.namespace_prefix == "t3st"
    assert record.message is None
