"""Google Calendar tools: availability, booking, cancellation and listing.

Handlers raise :class:`CalendarToolError` on failure; the dispatcher turns
that into an ``{"error": ...}`` tool result the model can relay.

Date-times without an explicit offset are interpreted in the configured
``CALENDAR_TIMEZONE`` for every operation, so a slot checked for
availability is exactly the slot that gets booked.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator

from booking_assistant.config import CALENDAR_TIMEZONE
from booking_assistant.services.calendar_client import (
    CalendarAPIError,
    GoogleCalendarClient,
    get_calendar_client,
)
from booking_assistant.tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# RFC 5322-ish pattern; covers the vast majority of real-world emails
# without requiring an external dependency.
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

_ISO_HINT = "Start date and time in ISO format (YYYY-MM-DDTHH:MM:SS)"


class CalendarToolError(Exception):
    """A calendar operation could not be completed."""


def _validate_email(email: str) -> str | None:
    """Return an error message if *email* looks invalid, else ``None``."""
    if not email or not email.strip():
        return "No email address was provided. Please ask the user for the attendee's email."
    email = email.strip()
    if not _EMAIL_RE.match(email):
        return (
            f'"{email}" does not look like a valid email address. '
            "Please ask the user to double-check and provide a corrected email."
        )
    return None


def to_rfc3339(value: str, timezone: str = CALENDAR_TIMEZONE) -> str:
    """Give *value* an explicit offset (naive times are local to *timezone*)."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(timezone))
    return dt.isoformat()


# ── Argument and result models ──────────────────────────────────────


class CheckAvailabilityArgs(BaseModel):
    start_date_time: str = Field(..., description=_ISO_HINT)
    end_date_time: str = Field(
        ..., description="End date and time in ISO format (YYYY-MM-DDTHH:MM:SS)",
    )
    calendar_id: str = Field("primary", description="Calendar ID to check (default: primary)")


class CreateAppointmentArgs(BaseModel):
    summary: str = Field(..., min_length=1, description="Title of the appointment")
    start_date_time: str = Field(..., description=_ISO_HINT)
    end_date_time: str = Field(
        ..., description="End date and time in ISO format (YYYY-MM-DDTHH:MM:SS)",
    )
    description: str | None = Field(None, description="Description or notes for the appointment")
    location: str | None = Field(None, description="Location of the appointment")
    attendees: list[str] = Field(
        default_factory=list, description="List of attendee email addresses",
    )
    calendar_id: str = Field(
        "primary", description="Calendar ID to create event on (default: primary)",
    )

    @field_validator("attendees")
    @classmethod
    def _check_attendees(cls, value: list[str]) -> list[str]:
        for email in value:
            error = _validate_email(email)
            if error:
                raise ValueError(error)
        return [email.strip() for email in value]


class CancelAppointmentArgs(BaseModel):
    event_id: str = Field(..., min_length=1, description="ID of the event to cancel")
    calendar_id: str = Field(
        "primary", description="Calendar ID containing the event (default: primary)",
    )


class ListAppointmentsArgs(BaseModel):
    max_results: int = Field(10, ge=1, le=50, description="Maximum number of events to return")
    calendar_id: str = Field(
        "primary", description="Calendar ID to list events from (default: primary)",
    )


class AvailabilityResult(BaseModel):
    is_available: bool
    busy_slots: list[dict[str, Any]] = Field(default_factory=list)
    start_date_time: str
    end_date_time: str


class AppointmentResult(BaseModel):
    success: bool
    message: str | None = None
    event_id: str | None = None
    html_link: str | None = None
    summary: str | None = None
    start_date_time: str | None = None
    end_date_time: str | None = None
    conflicting_events: list[dict[str, Any]] | None = None


class CancelAppointmentResult(BaseModel):
    success: bool
    message: str
    event_id: str


class AppointmentEvent(BaseModel):
    id: str
    summary: str = ""
    description: str | None = None
    start_date_time: str = ""
    end_date_time: str = ""
    location: str | None = None
    attendees: list[str] = Field(default_factory=list)

    @classmethod
    def from_api(cls, event: dict[str, Any]) -> AppointmentEvent:
        """Map a Calendar API event; all-day events only carry a ``date``."""
        start = event.get("start") or {}
        end = event.get("end") or {}
        return cls(
            id=event.get("id", ""),
            summary=event.get("summary", ""),
            description=event.get("description") or None,
            start_date_time=start.get("dateTime") or start.get("date") or "",
            end_date_time=end.get("dateTime") or end.get("date") or "",
            location=event.get("location") or None,
            attendees=[a.get("email", "") for a in event.get("attendees") or []],
        )


class ListAppointmentsResult(BaseModel):
    events: list[AppointmentEvent]
    count: int


# ── Handlers ────────────────────────────────────────────────────────


def build_calendar_tools(
    client_factory: Callable[[], GoogleCalendarClient] = get_calendar_client,
    timezone: str = CALENDAR_TIMEZONE,
) -> list[ToolSpec]:
    """Create the calendar tools.  The client is resolved lazily per call."""

    def check_availability(
        start_date_time: str, end_date_time: str, calendar_id: str = "primary",
    ) -> AvailabilityResult:
        try:
            busy = client_factory().query_free_busy(
                to_rfc3339(start_date_time, timezone),
                to_rfc3339(end_date_time, timezone),
                calendar_id,
            )
        except (CalendarAPIError, ValueError) as exc:
            logger.error("Failed to check availability: %s", exc)
            raise CalendarToolError(f"Failed to check availability: {exc}") from exc
        return AvailabilityResult(
            is_available=not busy,
            busy_slots=busy,
            start_date_time=start_date_time,
            end_date_time=end_date_time,
        )

    def create_appointment(
        summary: str,
        start_date_time: str,
        end_date_time: str,
        description: str | None = None,
        location: str | None = None,
        attendees: list[str] | None = None,
        calendar_id: str = "primary",
    ) -> AppointmentResult:
        availability = check_availability(start_date_time, end_date_time, calendar_id)
        if not availability.is_available:
            return AppointmentResult(
                success=False,
                message="The requested time slot is not available",
                conflicting_events=availability.busy_slots,
            )

        event: dict[str, Any] = {
            "summary": summary,
            "start": {"dateTime": start_date_time, "timeZone": timezone},
            "end": {"dateTime": end_date_time, "timeZone": timezone},
            "attendees": [{"email": email} for email in attendees or []],
        }
        if description:
            event["description"] = description
        if location:
            event["location"] = location

        try:
            created = client_factory().insert_event(event, calendar_id)
        except CalendarAPIError as exc:
            logger.error("Failed to create appointment: %s", exc)
            raise CalendarToolError(f"Failed to create appointment: {exc}") from exc

        return AppointmentResult(
            success=True,
            event_id=created.get("id", ""),
            html_link=created.get("htmlLink", ""),
            summary=summary,
            start_date_time=start_date_time,
            end_date_time=end_date_time,
        )

    def cancel_appointment(event_id: str, calendar_id: str = "primary") -> CancelAppointmentResult:
        try:
            client_factory().delete_event(event_id, calendar_id)
        except CalendarAPIError as exc:
            logger.error("Failed to cancel appointment %s: %s", event_id, exc)
            raise CalendarToolError(f"Failed to cancel appointment: {exc}") from exc
        return CancelAppointmentResult(
            success=True,
            message="Appointment successfully cancelled",
            event_id=event_id,
        )

    def list_upcoming_appointments(
        max_results: int = 10, calendar_id: str = "primary",
    ) -> ListAppointmentsResult:
        try:
            items = client_factory().list_events(
                datetime.now(UTC).isoformat(),
                max_results=max_results,
                calendar_id=calendar_id,
            )
        except CalendarAPIError as exc:
            logger.error("Failed to list appointments: %s", exc)
            raise CalendarToolError(f"Failed to list appointments: {exc}") from exc
        events = [AppointmentEvent.from_api(item) for item in items]
        return ListAppointmentsResult(events=events, count=len(events))

    return [
        ToolSpec(
            name="check_availability",
            description="Check if a specific time slot is available on the calendar",
            args_schema=CheckAvailabilityArgs,
            handler=check_availability,
        ),
        ToolSpec(
            name="create_appointment",
            description=(
                "Create a new appointment on Google Calendar. The slot is "
                "checked for availability first; conflicts are reported "
                "instead of double-booking."
            ),
            args_schema=CreateAppointmentArgs,
            handler=create_appointment,
        ),
        ToolSpec(
            name="cancel_appointment",
            description="Cancel an existing appointment on Google Calendar",
            args_schema=CancelAppointmentArgs,
            handler=cancel_appointment,
        ),
        ToolSpec(
            name="list_upcoming_appointments",
            description="List upcoming appointments on Google Calendar",
            args_schema=ListAppointmentsArgs,
            handler=list_upcoming_appointments,
        ),
    ]
