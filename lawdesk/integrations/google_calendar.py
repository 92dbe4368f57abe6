"""
Google Calendar integration - REST v3 events API and OAuth token refresh.

Auth: Bearer access token per lawyer, refreshed with the stored refresh token.
Docs: https://developers.google.com/calendar/api/v3/reference/events
All calls have a 10-second timeout.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

API_BASE = "https://www.googleapis.com/calendar/v3"
TOKEN_URL = "https://oauth2.googleapis.com/token"
TIMEOUT = 10.0


class CalendarAuthError(Exception):
    """Token missing, expired or rejected (HTTP 401)."""
    pass


class CalendarAPIError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


async def refresh_access_token(
    refresh_token: str,
    client_id: str,
    client_secret: str,
) -> dict:
    """Exchange a refresh token. Returns {access_token, expires_at}."""
    try:
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            response = await client.post(
                TOKEN_URL,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
    except httpx.HTTPError as e:
        raise CalendarAuthError(f"Token refresh request failed: {e}")

    if response.status_code >= 400:
        raise CalendarAuthError(f"Token refresh failed: {response.status_code} {response.text[:200]}")

    data = response.json()
    access_token = data.get("access_token")
    if not access_token:
        raise CalendarAuthError("Token refresh returned no access token")
    expires_in = int(data.get("expires_in", 3600))
    return {
        "access_token": access_token,
        "expires_at": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }


class GoogleCalendarClient:
    """Events API for one lawyer's calendar."""

    def __init__(self, access_token: str, calendar_id: str = "primary"):
        self.access_token = access_token
        self.calendar_id = calendar_id or "primary"

    @property
    def _events_url(self) -> str:
        return f"{API_BASE}/calendars/{quote(self.calendar_id, safe='@.')}/events"

    @property
    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=TIMEOUT) as client:
                response = await client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            raise CalendarAPIError(f"Google Calendar request failed: {e}")

        if response.status_code == 401:
            raise CalendarAuthError("Google Calendar rejected the access token")
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.status_code >= 400:
            raise CalendarAPIError(
                f"Failed to {action} event: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

    async def create_event(self, payload: dict) -> dict:
        response = await self._request("POST", self._events_url, json=payload)
        self._raise_for_status(response, "create")
        return response.json()

    async def update_event(self, event_id: str, payload: dict) -> Optional[dict]:
        """PUT by id. None if the event no longer exists."""
        response = await self._request("PUT", f"{self._events_url}/{event_id}", json=payload)
        if response.status_code in (404, 410):
            return None
        self._raise_for_status(response, "update")
        return response.json()

    async def delete_event(self, event_id: str) -> bool:
        """False if the event was already gone."""
        response = await self._request("DELETE", f"{self._events_url}/{event_id}")
        if response.status_code in (404, 410):
            return False
        self._raise_for_status(response, "delete")
        return True

    async def find_event(self, title: str, day: date) -> Optional[dict]:
        """First event on `day` whose summary equals `title` exactly."""
        params = {
            "q": title,
            "timeMin": f"{day.isoformat()}T00:00:00Z",
            "timeMax": f"{day.isoformat()}T23:59:59Z",
            "singleEvents": "true",
        }
        response = await self._request("GET", self._events_url, params=params)
        self._raise_for_status(response, "search")
        for event in response.json().get("items", []):
            if event.get("summary") == title:
                return event
        return None
