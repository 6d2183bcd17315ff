"""
Off-hours classification tests.
"""

import pytest
from datetime import datetime

from motorpool.app.services.off_hours import is_off_hours


@pytest.mark.parametrize("value,expected", [
    ("2024-03-04T07:59", True),   # Monday, before opening
    ("2024-03-04T08:00", False),  # opening hour is inclusive
    ("2024-03-04T15:59", False),
    ("2024-03-04T16:00", True),   # closing hour is exclusive
    ("2024-03-04 09:30:00", False),
    ("2024-03-04 20:15", True),
    ("2024-03-09T10:00", True),   # Saturday
    ("2024-03-10T10:00", True),   # Sunday
])
def test_string_values(value, expected):
    assert is_off_hours(value) is expected


def test_datetime_values():
    assert is_off_hours(datetime(2024, 3, 5, 12, 0)) is False
    assert is_off_hours(datetime(2024, 3, 5, 6, 0)) is True
    assert is_off_hours(datetime(2024, 3, 9, 12, 0)) is True


@pytest.mark.parametrize("value", [None, "", "2024-03-04", "not a date"])
def test_unclassifiable_values_are_not_flagged(value):
    assert is_off_hours(value) is False


def test_offset_is_ignored():
    # Wall-clock hour is used as written
    assert is_off_hours("2024-03-04T09:00:00+00:00") is False
    assert is_off_hours("2024-03-04T17:00:00+07:00") is True


def test_custom_bounds():
    assert is_off_hours("2024-03-04T08:30", start_hour=9, end_hour=17) is True
    assert is_off_hours("2024-03-04T16:30", start_hour=9, end_hour=17) is False
