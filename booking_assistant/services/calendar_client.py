"""HTTP client for the Google Calendar API v3 with retry logic and
OAuth refresh-token handling.

Calendar API docs: https://developers.google.com/calendar/api/v3/reference
Requests are authorised with a short-lived access token obtained from a
long-lived refresh token (``GOOGLE_REFRESH_TOKEN``); the token is cached
until shortly before it expires.
"""

from __future__ import annotations

import logging
import threading
import time
from urllib.parse import quote
from typing import Any

import httpx

from booking_assistant.config import (
    GOOGLE_CALENDAR_BASE_URL,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REFRESH_TOKEN,
    GOOGLE_TOKEN_URL,
)
from booking_assistant.services.metrics import metrics

logger = logging.getLogger(__name__)


def _events_path(calendar_id: str, event_id: str | None = None) -> str:
    # Calendar ids such as "en.usa#holiday@group.v.calendar.google.com" need escaping
    path = f"/calendars/{quote(calendar_id, safe='')}/events"
    if event_id is not None:
        path += f"/{quote(event_id, safe='')}"
    return path


# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0

# Refresh the access token this many seconds before it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class CalendarAPIError(Exception):
    """Raised when a Google Calendar API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class GoogleCalendarClient:
    """Thin wrapper around the Calendar REST API with automatic retries.

    Only the handful of endpoints the assistant needs are exposed:
    free/busy queries, event insert/delete/list and the calendar list.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        *,
        base_url: str = GOOGLE_CALENDAR_BASE_URL,
        token_url: str = GOOGLE_TOKEN_URL,
    ):
        self._client_id = client_id or GOOGLE_CLIENT_ID
        self._client_secret = client_secret or GOOGLE_CLIENT_SECRET
        self._refresh_token = refresh_token or GOOGLE_REFRESH_TOKEN
        self._token_url = token_url
        self._client = httpx.Client(base_url=base_url, timeout=REQUEST_TIMEOUT_SECONDS)
        self._access_token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    # ── Auth ─────────────────────────────────────────────────────────

    def _get_access_token(self) -> str:
        """Return a valid access token, exchanging the refresh token if needed."""
        with self._token_lock:
            if self._access_token and time.monotonic() < self._token_expires_at:
                return self._access_token

            if not (self._client_id and self._client_secret and self._refresh_token):
                raise CalendarAPIError(
                    "Google Calendar is not configured "
                    "(GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_REFRESH_TOKEN)."
                )

            try:
                with metrics.track("google_calendar", "POST /token"):
                    response = self._client.post(
                        self._token_url,
                        data={
                            "client_id": self._client_id,
                            "client_secret": self._client_secret,
                            "refresh_token": self._refresh_token,
                            "grant_type": "refresh_token",
                        },
                    )
            except httpx.HTTPError as exc:
                raise CalendarAPIError(f"Token refresh failed: {exc}") from exc

            if response.status_code >= 400:
                raise CalendarAPIError(
                    f"Token refresh failed {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )

            data = response.json()
            self._access_token = data["access_token"]
            expires_in = float(data.get("expires_in", 3600))
            self._token_expires_at = (
                time.monotonic() + expires_in - TOKEN_EXPIRY_MARGIN_SECONDS
            )
            return self._access_token

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute an HTTP request with exponential-backoff retries."""
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            headers = {"Authorization": f"Bearer {self._get_access_token()}"}
            try:
                with metrics.track("google_calendar", f"{method} {path}"):
                    response = self._client.request(
                        method, path, params=params, json=json_body, headers=headers,
                    )
                    if response.status_code >= 500:
                        raise CalendarAPIError(
                            f"Server error {response.status_code}: {response.text}",
                            status_code=response.status_code,
                        )
                    if response.status_code >= 400:
                        raise CalendarAPIError(
                            f"Client error {response.status_code}: {response.text}",
                            status_code=response.status_code,
                        )
                # DELETE answers 204 with an empty body
                if response.status_code == 204 or not response.content:
                    return {}
                return response.json()

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                logger.warning(
                    "Calendar API attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except CalendarAPIError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Calendar API server error on attempt %d/%d. Retrying…",
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    raise

            time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise CalendarAPIError(
            f"Calendar API request failed after {MAX_RETRIES} retries: {last_error}"
        )

    # ── Public API methods ───────────────────────────────────────────

    def query_free_busy(
        self, time_min: str, time_max: str, calendar_id: str = "primary",
    ) -> list[dict[str, Any]]:
        """Return the busy intervals (``{"start", "end"}``) in the range."""
        data = self._request(
            "POST",
            "/freeBusy",
            json_body={
                "timeMin": time_min,
                "timeMax": time_max,
                "items": [{"id": calendar_id}],
            },
        )
        calendar = data.get("calendars", {}).get(calendar_id, {})
        return calendar.get("busy", [])

    def insert_event(
        self, event: dict[str, Any], calendar_id: str = "primary",
    ) -> dict[str, Any]:
        """Create an event and notify its attendees."""
        return self._request(
            "POST",
            _events_path(calendar_id),
            params={"sendUpdates": "all"},
            json_body=event,
        )

    def delete_event(self, event_id: str, calendar_id: str = "primary") -> None:
        self._request("DELETE", _events_path(calendar_id, event_id))

    def list_events(
        self,
        time_min: str,
        *,
        max_results: int = 10,
        calendar_id: str = "primary",
    ) -> list[dict[str, Any]]:
        """Upcoming single events from *time_min*, ordered by start time."""
        data = self._request(
            "GET",
            _events_path(calendar_id),
            params={
                "timeMin": time_min,
                "maxResults": max_results,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        return data.get("items", [])

    def list_calendars(self) -> list[dict[str, Any]]:
        data = self._request("GET", "/users/me/calendarList")
        return data.get("items", [])


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: GoogleCalendarClient | None = None
_client_lock = threading.Lock()


def get_calendar_client() -> GoogleCalendarClient:
    """Return a module-level GoogleCalendarClient singleton.

    Uses double-checked locking so that the lock is only acquired during
    the first initialisation, not on every subsequent call.
    """
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = GoogleCalendarClient()
    return _client
