"""Utility functions."""

from clinicops.utils.time import (
    ensure_utc,
    format_datetime,
    format_time_12h,
    parse_date,
    parse_time,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "format_datetime",
    "format_time_12h",
    "parse_date",
    "parse_time",
]
