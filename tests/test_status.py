"""Tests for task status classification."""

from __future__ import annotations

import pytest

from sprintboard.models.status import TaskStatus, classify_status, is_done_status, normalize_status


class TestClassifyStatus:
    """Test mapping raw status strings onto the closed status set."""

    @pytest.mark.parametrize("raw", ["Done", "done", "Closed", "closed", " DONE "])
    def test_done_equivalents(self, raw):
        assert classify_status(raw) is TaskStatus.DONE
        assert is_done_status(raw) is True

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("To Do", TaskStatus.TODO),
            ("todo", TaskStatus.TODO),
            ("In Progress", TaskStatus.IN_PROGRESS),
            ("in_progress", TaskStatus.IN_PROGRESS),
            ("IN-PROGRESS", TaskStatus.IN_PROGRESS),
            ("In Review", TaskStatus.IN_REVIEW),
            ("Blocked", TaskStatus.BLOCKED),
        ],
    )
    def test_known_statuses(self, raw, expected):
        assert classify_status(raw) is expected

    def test_substring_does_not_match(self):
        """Statuses are matched whole, not by what they contain."""
        assert classify_status("Progress report pending") is TaskStatus.UNKNOWN
        assert classify_status("Not done") is TaskStatus.UNKNOWN
        assert is_done_status("Not done") is False

    def test_empty_and_none_are_unknown(self):
        assert classify_status("") is TaskStatus.UNKNOWN
        assert classify_status(None) is TaskStatus.UNKNOWN

    def test_normalize_collapses_separators(self):
        assert normalize_status("  In__Progress ") == "in progress"
