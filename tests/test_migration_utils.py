"""Unit tests for migration_utils.py"""

from unittest import mock

import pytest

import migration_utils


class TestChunked:
    """Tests for chunked function"""

    def test_even_split(self):
        """Sequences divisible by the size split evenly"""
        assert list(migration_utils.chunked([1, 2, 3, 4], 2)) == [[1, 2], [3, 4]]

    def test_remainder_in_last_chunk(self):
        """The last chunk holds the remainder"""
        assert list(migration_utils.chunked((1, 2, 3, 4, 5), 2)) == [(1, 2), (3, 4), (5,)]

    def test_size_larger_than_sequence(self):
        """A size above the length yields the whole sequence once"""
        assert list(migration_utils.chunked([1, 2], 500)) == [[1, 2]]

    def test_empty_sequence(self):
        """Empty input yields nothing"""
        assert not list(migration_utils.chunked([], 3))

    @pytest.mark.parametrize("size", [0, -1])
    def test_invalid_size(self, size):
        """Non-positive sizes are rejected"""
        with pytest.raises(ValueError):
            list(migration_utils.chunked([1], size))


class TestFormatDuration:
    """Tests for format_duration function"""

    def test_seconds(self):
        """Durations below a minute show seconds"""
        assert migration_utils.format_duration(45) == "45s"

    def test_minutes(self):
        """Durations below an hour show minutes and seconds"""
        assert migration_utils.format_duration(125) == "2m 5s"

    def test_hours(self):
        """Durations below a day show hours and minutes"""
        assert migration_utils.format_duration(3 * 3600 + 120) == "3h 2m"

    def test_days(self):
        """Long durations show days and hours"""
        assert migration_utils.format_duration(2 * 86400 + 5 * 3600) == "2d 5h"


def test_get_utc_now_is_iso_format():
    """Timestamps carry the UTC offset"""
    assert migration_utils.get_utc_now().endswith("+00:00")


class TestProgressTracker:
    """Tests for ProgressTracker class"""

    def test_advance_counts(self, mock_print):
        """advance() accumulates progress"""
        tracker = migration_utils.ProgressTracker(total=10, label="Copied")

        tracker.advance(3)
        tracker.advance()

        assert tracker.current == 4
        assert mock_print.called

    def test_advance_throttled(self, mock_print):
        """Redraws inside the interval are skipped until the total is reached"""
        with mock.patch("migration_utils.time.time", return_value=1000.0):
            tracker = migration_utils.ProgressTracker(total=10, label="Copied", update_interval=5)
            tracker.advance(1)
            tracker.advance(1)
            assert mock_print.call_count == 1
            tracker.advance(8)
        assert mock_print.call_count == 2
        assert "10/10 (100.0%)" in mock_print.call_args[0][0]

    def test_zero_total(self, mock_print):
        """A zero total prints the bare count"""
        tracker = migration_utils.ProgressTracker(total=0, label="Deleted")

        tracker.advance(0)

        assert "Deleted: 0" in mock_print.call_args[0][0]

    def test_finish_ends_line(self, mock_print):
        """finish() draws the final state and ends the line"""
        tracker = migration_utils.ProgressTracker(total=2, label="Copied")
        tracker.finish()

        assert mock_print.call_args == mock.call()
