"""Tests for record derivation helpers."""

from datetime import UTC, date, datetime
from unittest.mock import patch

from fleetbooks.services.reports.records import ReportWarnings, as_date, day_after


class TestReportWarnings:
    def test_duplicates_logged_once(self) -> None:
        warnings = ReportWarnings("revenue")

        with patch("fleetbooks.services.reports.records.logger") as mock_logger:
            warnings.add("Booking 7 has no vehicle", booking_id=7)
            warnings.add("Booking 7 has no vehicle", booking_id=7)
            warnings.add("Expense 3 has no category", expense_id=3)

        assert warnings.as_list() == [
            "Booking 7 has no vehicle",
            "Expense 3 has no category",
        ]
        assert mock_logger.warning.call_count == 2

    def test_context_passed_to_log_event(self) -> None:
        warnings = ReportWarnings("pnl")

        with patch("fleetbooks.services.reports.records.logger") as mock_logger:
            warnings.add("Category RENT is inactive", category_id=4)

        mock_logger.warning.assert_called_once_with(
            "partial_data", report="pnl", detail="Category RENT is inactive", category_id=4
        )


class TestDayBounds:
    def test_day_after_is_next_midnight_utc(self) -> None:
        assert day_after(date(2024, 2, 29)) == datetime(2024, 3, 1, tzinfo=UTC)

    def test_as_date_drops_time(self) -> None:
        assert as_date(datetime(2024, 5, 2, 23, 59, tzinfo=UTC)) == date(2024, 5, 2)
        assert as_date(date(2024, 5, 2)) == date(2024, 5, 2)
