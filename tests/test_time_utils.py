"""Tests for date and time parsing helpers."""

from datetime import date, datetime, time, timezone

import pytest

from clinicops.core.exceptions import ValidationError
from clinicops.utils.time import ensure_utc, format_datetime, format_time_12h, parse_date, parse_time


class TestParseTime:
    """Appointment times accept 24-hour and 12-hour input."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("09:00", time(9, 0)),
            ("14:30:15", time(14, 30, 15)),
            ("2:30 PM", time(14, 30)),
            ("12:00 AM", time(0, 0)),
            ("12:15 pm", time(12, 15)),
            (time(8, 45), time(8, 45)),
        ],
    )
    def test_valid(self, raw, expected) -> None:
        assert parse_time(raw) == expected

    @pytest.mark.parametrize("raw", ["", "24:00", "9", "0:30 AM", "10:75 PM", "half past"])
    def test_invalid(self, raw) -> None:
        with pytest.raises(ValidationError):
            parse_time(raw)


class TestParseDate:
    def test_iso(self) -> None:
        assert parse_date("2030-02-14") == date(2030, 2, 14)

    def test_datetime_truncated(self) -> None:
        assert parse_date(datetime(2030, 2, 14, 9, 0)) == date(2030, 2, 14)

    @pytest.mark.parametrize("raw", ["14/02/2030", "2030-02-30", "tomorrow"])
    def test_invalid(self, raw) -> None:
        with pytest.raises(ValidationError):
            parse_date(raw)


def test_format_time_12h() -> None:
    assert format_time_12h(time(0, 5)) == "12:05 AM"
    assert format_time_12h(time(13, 0)) == "1:00 PM"


def test_naive_datetimes_treated_as_utc() -> None:
    naive = datetime(2030, 1, 1, 8, 0)

    assert ensure_utc(naive).tzinfo == timezone.utc
    assert format_datetime(naive) == "2030-01-01T08:00:00Z"
