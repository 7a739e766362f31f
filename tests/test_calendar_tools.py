"""Tests for the Google Calendar tools and their input validation."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from booking_assistant.services.calendar_client import CalendarAPIError
from booking_assistant.tools.calendar import (
    _validate_email,
    build_calendar_tools,
    to_rfc3339,
)
from booking_assistant.tools.registry import ToolDispatcher, ToolRegistry

TIMEZONE = "America/Los_Angeles"


@pytest.fixture
def calendar():
    client = MagicMock()
    client.query_free_busy.return_value = []
    client.insert_event.return_value = {
        "id": "evt_123",
        "htmlLink": "https://calendar.google.com/event?eid=evt_123",
    }
    client.list_events.return_value = []
    return client


@pytest.fixture
def invoke(calendar):
    dispatcher = ToolDispatcher(
        ToolRegistry(build_calendar_tools(lambda: calendar, timezone=TIMEZONE)),
    )

    def _invoke(name: str, arguments: dict):
        return asyncio.run(dispatcher.invoke(name, arguments))

    return _invoke


# ── Email validation ─────────────────────────────────────────────────


class TestValidateEmail:
    """Unit tests for the _validate_email helper."""

    @pytest.mark.parametrize(
        "email",
        [
            "alice@example.com",
            "bob.jones@clinic.co.uk",
            "jane+tag@gmail.com",
            "user@sub.domain.org",
            "UPPER@CASE.COM",
            "digits123@test456.io",
        ],
    )
    def test_accepts_valid_emails(self, email: str):
        assert _validate_email(email) is None

    @pytest.mark.parametrize(
        "email",
        [
            "",
            "   ",
            "not-an-email",
            "missing@",
            "@no-local.com",
            "spaces in@email.com",
            "double@@at.com",
            "no-tld@localhost",
            "user@.leading-dot.com",
        ],
    )
    def test_rejects_invalid_emails(self, email: str):
        result = _validate_email(email)
        assert result is not None
        assert "does not look like a valid email" in result or "No email" in result


# ── Time handling ────────────────────────────────────────────────────


class TestToRfc3339:
    def test_naive_time_gets_calendar_offset(self):
        assert to_rfc3339("2026-01-15T10:00:00", TIMEZONE) == "2026-01-15T10:00:00-08:00"

    def test_daylight_saving_offset(self):
        assert to_rfc3339("2026-07-15T10:00:00", TIMEZONE) == "2026-07-15T10:00:00-07:00"

    def test_utc_suffix_is_kept_as_utc(self):
        assert to_rfc3339("2026-01-15T18:00:00Z", TIMEZONE) == "2026-01-15T18:00:00+00:00"

    def test_explicit_offset_is_preserved(self):
        assert to_rfc3339("2026-01-15T10:00:00+02:00", TIMEZONE) == "2026-01-15T10:00:00+02:00"


# ── check_availability ───────────────────────────────────────────────


class TestCheckAvailability:
    def test_free_slot(self, invoke, calendar):
        result = invoke(
            "check_availability",
            {"start_date_time": "2026-01-15T10:00:00", "end_date_time": "2026-01-15T11:00:00"},
        )
        assert result["is_available"] is True
        assert result["busy_slots"] == []
        calendar.query_free_busy.assert_called_once_with(
            "2026-01-15T10:00:00-08:00", "2026-01-15T11:00:00-08:00", "primary",
        )

    def test_busy_slot(self, invoke, calendar):
        busy = [{"start": "2026-01-15T18:00:00Z", "end": "2026-01-15T19:00:00Z"}]
        calendar.query_free_busy.return_value = busy
        result = invoke(
            "check_availability",
            {"start_date_time": "2026-01-15T10:00:00", "end_date_time": "2026-01-15T11:00:00"},
        )
        assert result["is_available"] is False
        assert result["busy_slots"] == busy

    def test_bad_date_is_an_error_payload(self, invoke):
        result = invoke(
            "check_availability",
            {"start_date_time": "next tuesday", "end_date_time": "2026-01-15T11:00:00"},
        )
        assert "Failed to check availability" in result["error"]


# ── create_appointment ───────────────────────────────────────────────


class TestCreateAppointment:
    ARGS = {
        "summary": "Consultation",
        "start_date_time": "2026-01-15T10:00:00",
        "end_date_time": "2026-01-15T11:00:00",
        "attendees": ["alice@example.com"],
        "description": "First visit",
    }

    def test_creates_event_when_slot_is_free(self, invoke, calendar):
        result = invoke("create_appointment", self.ARGS)

        assert result["success"] is True
        assert result["event_id"] == "evt_123"
        assert result["html_link"].endswith("evt_123")

        event, calendar_id = calendar.insert_event.call_args.args
        assert calendar_id == "primary"
        assert event["summary"] == "Consultation"
        assert event["start"] == {"dateTime": "2026-01-15T10:00:00", "timeZone": TIMEZONE}
        assert event["attendees"] == [{"email": "alice@example.com"}]
        assert event["description"] == "First visit"
        assert "location" not in event

    def test_conflict_is_reported_without_booking(self, invoke, calendar):
        busy = [{"start": "2026-01-15T18:30:00Z", "end": "2026-01-15T19:00:00Z"}]
        calendar.query_free_busy.return_value = busy

        result = invoke("create_appointment", self.ARGS)

        assert result["success"] is False
        assert result["conflicting_events"] == busy
        assert "not available" in result["message"]
        calendar.insert_event.assert_not_called()

    def test_invalid_attendee_email_is_rejected(self, invoke, calendar):
        result = invoke("create_appointment", {**self.ARGS, "attendees": ["not-an-email"]})
        assert "does not look like a valid email" in result["error"]
        calendar.query_free_busy.assert_not_called()

    def test_api_failure_is_an_error_payload(self, invoke, calendar):
        calendar.insert_event.side_effect = CalendarAPIError("Client error 403", 403)
        result = invoke("create_appointment", self.ARGS)
        assert "Failed to create appointment" in result["error"]


# ── cancel / list ────────────────────────────────────────────────────


class TestCancelAndList:
    def test_cancel(self, invoke, calendar):
        result = invoke("cancel_appointment", {"event_id": "evt_123"})
        assert result == {
            "success": True,
            "message": "Appointment successfully cancelled",
            "event_id": "evt_123",
        }
        calendar.delete_event.assert_called_once_with("evt_123", "primary")

    def test_cancel_unknown_event(self, invoke, calendar):
        calendar.delete_event.side_effect = CalendarAPIError("Client error 404", 404)
        result = invoke("cancel_appointment", {"event_id": "missing"})
        assert "Failed to cancel appointment" in result["error"]

    def test_list_maps_events(self, invoke, calendar):
        calendar.list_events.return_value = [
            {
                "id": "e1",
                "summary": "Checkup",
                "start": {"dateTime": "2026-01-20T09:00:00-08:00"},
                "end": {"dateTime": "2026-01-20T09:30:00-08:00"},
                "attendees": [{"email": "bob@example.com"}],
            },
            {"id": "e2", "summary": "Closed", "start": {"date": "2026-01-21"}, "end": {"date": "2026-01-22"}},
        ]
        result = invoke("list_upcoming_appointments", {"max_results": 5})

        assert result["count"] == 2
        first, second = result["events"]
        assert first["start_date_time"] == "2026-01-20T09:00:00-08:00"
        assert first["attendees"] == ["bob@example.com"]
        assert second["start_date_time"] == "2026-01-21"
        assert calendar.list_events.call_args.kwargs["max_results"] == 5

    def test_list_rejects_out_of_range_max_results(self, invoke):
        result = invoke("list_upcoming_appointments", {"max_results": 500})
        assert "error" in result
