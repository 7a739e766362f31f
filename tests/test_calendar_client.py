"""Tests for the GoogleCalendarClient service."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from booking_assistant.services.calendar_client import (
    INITIAL_BACKOFF_SECONDS,
    MAX_RETRIES,
    CalendarAPIError,
    GoogleCalendarClient,
)

# ── Helpers ──────────────────────────────────────────────────────────


def _mock_response(data: dict | None, status_code: int = 200) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status_code
    mock.json.return_value = data
    mock.text = str(data)
    mock.content = b"" if data is None else str(data).encode()
    return mock


def _authorised_client() -> GoogleCalendarClient:
    """A client whose access token is already cached, so no refresh happens."""
    client = GoogleCalendarClient("id", "secret", "refresh")
    client._access_token = "test-access-token"
    client._token_expires_at = float("inf")
    return client


# ── Tests: endpoints ─────────────────────────────────────────────────


class TestQueryFreeBusy:
    def test_returns_busy_intervals(self):
        client = _authorised_client()
        busy = [{"start": "2026-02-17T10:00:00Z", "end": "2026-02-17T11:00:00Z"}]
        data = {"calendars": {"primary": {"busy": busy}}}

        with patch.object(client._client, "request", return_value=_mock_response(data)) as mock_req:
            result = client.query_free_busy("2026-02-17T00:00:00Z", "2026-02-18T00:00:00Z")

        assert result == busy
        method, path = mock_req.call_args.args
        assert (method, path) == ("POST", "/freeBusy")
        assert mock_req.call_args.kwargs["json"]["items"] == [{"id": "primary"}]
        assert mock_req.call_args.kwargs["headers"]["Authorization"] == "Bearer test-access-token"

    def test_unknown_calendar_has_no_busy_slots(self):
        client = _authorised_client()
        with patch.object(
            client._client, "request", return_value=_mock_response({"calendars": {}}),
        ):
            assert client.query_free_busy("a", "b", "other") == []


class TestEvents:
    def test_insert_notifies_attendees(self):
        client = _authorised_client()
        created = {"id": "evt1", "htmlLink": "https://calendar.google.com/evt1"}

        with patch.object(client._client, "request", return_value=_mock_response(created)) as mock_req:
            result = client.insert_event({"summary": "Visit"})

        assert result == created
        assert mock_req.call_args.args[1] == "/calendars/primary/events"
        assert mock_req.call_args.kwargs["params"] == {"sendUpdates": "all"}

    def test_delete_accepts_empty_204(self):
        client = _authorised_client()
        with patch.object(
            client._client, "request", return_value=_mock_response(None, 204),
        ) as mock_req:
            assert client.delete_event("evt1") is None
        assert mock_req.call_args.args == ("DELETE", "/calendars/primary/events/evt1")

    def test_list_events_orders_single_events(self):
        client = _authorised_client()
        items = [{"id": "evt1"}, {"id": "evt2"}]

        with patch.object(
            client._client, "request", return_value=_mock_response({"items": items}),
        ) as mock_req:
            result = client.list_events("2026-02-17T00:00:00Z", max_results=2)

        assert result == items
        params = mock_req.call_args.kwargs["params"]
        assert params["singleEvents"] == "true"
        assert params["orderBy"] == "startTime"
        assert params["maxResults"] == 2

    def test_calendar_and_event_ids_are_escaped(self):
        client = _authorised_client()
        with patch.object(
            client._client, "request", return_value=_mock_response(None, 204),
        ) as mock_req:
            client.delete_event("evt/1", "en.usa#holiday@group.v.calendar.google.com")
        assert mock_req.call_args.args[1] == (
            "/calendars/en.usa%23holiday%40group.v.calendar.google.com/events/evt%2F1"
        )

    def test_hash_in_calendar_id_reaches_the_events_resource(self):
        seen: list[httpx.URL] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return httpx.Response(200, json={"items": []})

        client = _authorised_client()
        client._client = httpx.Client(
            base_url="https://cal.test/v3", transport=httpx.MockTransport(handler),
        )
        client.list_events(
            "2026-02-17T00:00:00Z",
            calendar_id="en.usa#holiday@group.v.calendar.google.com",
        )

        url = seen[0]
        assert url.fragment == ""
        assert url.raw_path.split(b"?")[0] == (
            b"/v3/calendars/en.usa%23holiday%40group.v.calendar.google.com/events"
        )
        assert url.params["orderBy"] == "startTime"

    def test_list_calendars(self):
        client = _authorised_client()
        with patch.object(
            client._client, "request",
            return_value=_mock_response({"items": [{"id": "primary"}]}),
        ):
            assert client.list_calendars() == [{"id": "primary"}]


# ── Tests: auth ──────────────────────────────────────────────────────


class TestAccessToken:
    def test_refreshes_and_caches_token(self):
        client = GoogleCalendarClient("id", "secret", "refresh")
        token_response = _mock_response({"access_token": "fresh", "expires_in": 3600})

        with patch.object(client._client, "post", return_value=token_response) as mock_post:
            assert client._get_access_token() == "fresh"
            assert client._get_access_token() == "fresh"

        assert mock_post.call_count == 1
        assert mock_post.call_args.kwargs["data"]["grant_type"] == "refresh_token"

    def test_expired_token_is_refreshed(self):
        client = _authorised_client()
        client._token_expires_at = 0.0
        token_response = _mock_response({"access_token": "second", "expires_in": 3600})

        with patch.object(client._client, "post", return_value=token_response):
            assert client._get_access_token() == "second"

    def test_missing_credentials(self):
        client = GoogleCalendarClient()
        client._client_id = None
        with pytest.raises(CalendarAPIError, match="not configured"):
            client._get_access_token()

    def test_rejected_refresh_token(self):
        client = GoogleCalendarClient("id", "secret", "revoked")
        with patch.object(
            client._client, "post",
            return_value=_mock_response({"error": "invalid_grant"}, 400),
        ):
            with pytest.raises(CalendarAPIError) as exc_info:
                client._get_access_token()
        assert exc_info.value.status_code == 400


# ── Tests: retry logic ───────────────────────────────────────────────


class TestRetryLogic:
    @patch("booking_assistant.services.calendar_client.time.sleep")
    def test_retries_on_timeout(self, mock_sleep):
        client = _authorised_client()

        with patch.object(
            client._client,
            "request",
            side_effect=[
                httpx.TimeoutException("timeout"),
                _mock_response({"items": []}),
            ],
        ):
            assert client.list_calendars() == []
            mock_sleep.assert_called_once_with(INITIAL_BACKOFF_SECONDS)

    @patch("booking_assistant.services.calendar_client.time.sleep")
    def test_retries_on_500_error(self, mock_sleep):
        client = _authorised_client()

        with patch.object(
            client._client,
            "request",
            side_effect=[
                _mock_response({"error": "backendError"}, 503),
                _mock_response({"items": [{"id": "primary"}]}),
            ],
        ):
            assert client.list_calendars() == [{"id": "primary"}]

    @patch("booking_assistant.services.calendar_client.time.sleep")
    def test_does_not_retry_on_400_error(self, mock_sleep):
        client = _authorised_client()

        with patch.object(
            client._client, "request",
            return_value=_mock_response({"error": "Bad Request"}, 400),
        ):
            with pytest.raises(CalendarAPIError) as exc_info:
                client.list_calendars()
            assert "400" in str(exc_info.value)
            mock_sleep.assert_not_called()

    @patch("booking_assistant.services.calendar_client.time.sleep")
    def test_raises_after_max_retries(self, mock_sleep):
        client = _authorised_client()

        with patch.object(
            client._client,
            "request",
            side_effect=httpx.TimeoutException("timeout"),
        ):
            with pytest.raises(CalendarAPIError) as exc_info:
                client.list_calendars()
            assert "after" in str(exc_info.value).lower()
            assert mock_sleep.call_count == MAX_RETRIES

    @patch("booking_assistant.services.calendar_client.time.sleep")
    def test_backoff_doubles(self, mock_sleep):
        client = _authorised_client()

        with patch.object(
            client._client, "request", side_effect=httpx.ConnectError("refused"),
        ):
            with pytest.raises(CalendarAPIError):
                client.list_calendars()

        delays = [c.args[0] for c in mock_sleep.call_args_list]
        assert delays == [INITIAL_BACKOFF_SECONDS * 2**i for i in range(MAX_RETRIES)]
