"""Tests for common.datetime module."""

from datetime import datetime, timezone, timedelta

from common.datetime import normalize_datetime, to_http, to_sql, utcnow


class TestNormalizeDatetime:
    def test_none_and_empty_return_none(self) -> None:
        assert normalize_datetime(None) is None
        assert normalize_datetime("") is None

    def test_naive_datetime_is_utc(self) -> None:
        result = normalize_datetime(datetime(2024, 1, 1, 12, 0, 0))
        assert result == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self) -> None:
        dt = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone(timedelta(hours=-5)))
        result = normalize_datetime(dt)
        assert result == datetime(2024, 1, 1, 17, 0, 0, tzinfo=timezone.utc)
        assert result.utcoffset() == timedelta(0)

    def test_epoch_seconds(self) -> None:
        assert normalize_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_sql_string(self) -> None:
        result = normalize_datetime("2024-01-01 12:00:00")
        assert result == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestFormatting:
    def test_to_sql_matches_current_timestamp_format(self) -> None:
        dt = datetime(2024, 3, 5, 7, 8, 9, tzinfo=timezone.utc)
        assert to_sql(dt) == "2024-03-05 07:08:09"

    def test_to_sql_none(self) -> None:
        assert to_sql(None) is None

    def test_to_http(self) -> None:
        dt = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert to_http(dt) == "Mon, 01 Jan 2024 12:00:00 GMT"

    def test_utcnow_has_no_microseconds(self) -> None:
        now = utcnow()
        assert now.microsecond == 0
        assert now.tzinfo is not None
