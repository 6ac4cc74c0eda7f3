"""
Tests for storage helpers
Copyright 2025 Jurden Bruce
"""

import logging
from datetime import datetime

import pytest

from wake_memory.utils import clamp, decode_string_list, timestamp_from_db, timestamp_to_db


def test_timestamps_survive_the_column_format():
    moment = datetime(2025, 6, 1, 12, 30, 15, 250)
    assert timestamp_from_db(timestamp_to_db(moment).encode()) == moment


def test_corrupt_timestamp_reads_as_none(caplog):
    with caplog.at_level(logging.WARNING, logger="wake-memory.utils"):
        assert timestamp_from_db(b"yesterday-ish") is None
    assert "Unreadable timestamp" in caplog.text


@pytest.mark.parametrize("raw, expected", [
    (None, []),
    ("", []),
    ('["a", "b"]', ["a", "b"]),
    ("[not json", []),
    ('{"a": 1}', []),
])
def test_decode_string_list(raw, expected):
    assert decode_string_list(raw, "dependencies", "snap-1") == expected


def test_decode_string_list_names_the_snapshot(caplog):
    with caplog.at_level(logging.WARNING, logger="wake-memory.utils"):
        decode_string_list("[oops", "propagation_reasons", "snap-9")
    assert "Bad propagation_reasons JSON for snap-9" in caplog.text


def test_clamp():
    assert clamp(-0.5) == 0.0
    assert clamp(0.42) == 0.42
    assert clamp(3.0) == 1.0
