"""Google Calendar provider used to enrich samples with current events."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Optional, Protocol, Sequence
from urllib.parse import quote

import httpx

from .config import GoogleCalendarConfig
from .errors import CalendarFetchError
from .models import CalendarEvent

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3"
TOKEN_EXPIRY_MARGIN = timedelta(seconds=60)


class CalendarProvider(Protocol):
    def get_events(self, start: datetime, end: datetime) -> Sequence[CalendarEvent]: ...

    def close(self) -> None: ...


class GoogleCalendarProvider:
    """Lists events from one or more Google calendars using a refresh token."""

    def __init__(
        self,
        config: GoogleCalendarConfig,
        *,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._config = config
        self._client = client or httpx.Client(timeout=timeout)
        self._clock = clock
        self._access_token: Optional[str] = None
        self._token_expiry: Optional[datetime] = None

    def close(self) -> None:
        self._client.close()

    def get_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        token = self._ensure_token()
        events: dict[str, CalendarEvent] = {}
        for calendar_id in self._config.calendar_id_list:
            for item in self._list_calendar(token, calendar_id, start, end):
                event = _event_from_item(item, calendar_id)
                if event is not None and event.id not in events:
                    events[event.id] = event
        return sorted(events.values(), key=lambda event: event.start)

    def _ensure_token(self) -> str:
        now = self._clock()
        if self._access_token and self._token_expiry and now < self._token_expiry:
            return self._access_token

        try:
            response = self._client.post(
                TOKEN_URL,
                data={
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                    "refresh_token": self._config.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as exc:
            raise CalendarFetchError(f"Token refresh request failed: {exc}") from exc
        if not response.is_success:
            raise CalendarFetchError(
                f"Token refresh rejected: HTTP {response.status_code} {response.text}"
            )

        payload = _json_object(response, "Token response")
        token = payload.get("access_token")
        if not isinstance(token, str) or not token:
            raise CalendarFetchError("Token response did not include an access_token")
        try:
            expires_in = int(payload.get("expires_in", 3600))
        except (TypeError, ValueError) as exc:
            raise CalendarFetchError(f"Token response has an invalid expires_in: {exc}") from exc
        self._access_token = token
        self._token_expiry = now + timedelta(seconds=expires_in) - TOKEN_EXPIRY_MARGIN
        logger.debug("Obtained calendar access token (expires in %ss)", expires_in)
        return token

    def _list_calendar(
        self, token: str, calendar_id: str, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        url = f"{CALENDAR_API_URL}/calendars/{quote(calendar_id, safe='')}/events"
        params = {
            "timeMin": start.astimezone(timezone.utc).isoformat(),
            "timeMax": end.astimezone(timezone.utc).isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        try:
            response = self._client.get(
                url, params=params, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as exc:
            raise CalendarFetchError(f"Calendar {calendar_id} request failed: {exc}") from exc
        if not response.is_success:
            raise CalendarFetchError(
                f"Calendar {calendar_id} rejected: HTTP {response.status_code} {response.text}"
            )
        items = _json_object(response, f"Calendar {calendar_id} response").get("items") or []
        if not isinstance(items, list):
            raise CalendarFetchError(f"Calendar {calendar_id} response has no item list")
        return [item for item in items if isinstance(item, dict)]


def _json_object(response: httpx.Response, what: str) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise CalendarFetchError(f"{what} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise CalendarFetchError(f"{what} is not a JSON object")
    return payload


def _event_from_item(item: dict[str, Any], calendar_id: str) -> Optional[CalendarEvent]:
    try:
        start = _parse_event_time(item.get("start"))
        end = _parse_event_time(item.get("end"))
    except (TypeError, ValueError):
        logger.debug("Skipping calendar event with unreadable times: %s", item.get("id"))
        return None
    if start is None or end is None or "id" not in item:
        return None
    return CalendarEvent(
        id=str(item["id"]),
        title=str(item.get("summary") or ""),
        start=start,
        end=end,
        calendar_id=calendar_id,
        description=item.get("description"),
    )


def _parse_event_time(value: Optional[dict[str, Any]]) -> Optional[datetime]:
    if not value:
        return None
    if value.get("dateTime"):
        parsed = datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    if value.get("date"):
        day = date.fromisoformat(value["date"])
        return datetime.combine(day, time.min, tzinfo=timezone.utc)
    return None
