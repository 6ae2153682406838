from __future__ import annotations

import re
from datetime import datetime
from types import SimpleNamespace

import pytest

from knowledge_bot.services.ingestion import (
    MAX_PROCESSABLE_BYTES,
    calculate_processing_metrics,
    generate_batch_id,
    peak_hour,
    should_process_file,
)


def _event(status: str, hour: int = 0, seconds=None, file_type: str = ".pdf") -> SimpleNamespace:
    return SimpleNamespace(
        processing_status=status,
        file_type=file_type,
        processing_time_seconds=seconds,
        created_at=datetime(2024, 1, 1, hour),
    )


def test_batch_id_format() -> None:
    assert re.fullmatch(r"batch_\d+_[0-9a-f]{9}", generate_batch_id())


@pytest.mark.parametrize(
    "mime,size,enabled,expected",
    [
        ("application/pdf", 10, True, {"shouldProcess": True}),
        ("image/png", 10, True, {"shouldProcess": False, "reason": "Unsupported file type"}),
        ("text/plain", MAX_PROCESSABLE_BYTES + 1, True, {"shouldProcess": False, "reason": "File too large (max 50MB)"}),
        ("text/plain", 10, False, {"shouldProcess": False, "reason": "Processing disabled for bot"}),
    ],
)
def test_should_process_file(mime, size, enabled, expected) -> None:
    bot = SimpleNamespace(processing_enabled=enabled)
    assert should_process_file(mime, size, bot) == expected


def test_should_process_file_without_bot() -> None:
    assert should_process_file("application/pdf", 1, None)["shouldProcess"] is False


def test_processing_metrics() -> None:
    events = [_event("completed", seconds=10), _event("completed", seconds=20), _event("failed"), _event("pending")]
    metrics = calculate_processing_metrics(events)
    assert metrics["totalEvents"] == 4
    assert metrics["byStatus"] == {"completed": 2, "failed": 1, "pending": 1}
    assert metrics["avgProcessingTime"] == 15
    assert metrics["successRate"] == 50


def test_processing_metrics_empty() -> None:
    assert calculate_processing_metrics([])["successRate"] == 0


def test_peak_hour_prefers_earliest_tie() -> None:
    events = [_event("completed", hour=14), _event("completed", hour=9), _event("completed", hour=14), _event("completed", hour=9)]
    assert peak_hour(events) == "9:00"
    assert peak_hour([]) == "0:00"
