"""Toggl Track client used as the system of record for time entries."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Sequence

import httpx

from .errors import LedgerTransportError
from .models import LedgerEntry, Project

logger = logging.getLogger(__name__)

TOGGL_API_URL = "https://api.track.toggl.com/api/v9"
TOGGL_TIME_FMT = "%Y-%m-%dT%H:%M:%SZ"


class LedgerClient(Protocol):
    def list_projects(self) -> Sequence[Project]: ...

    def list_entries(
        self, workspace_id: int, start: datetime, end: datetime
    ) -> Sequence[LedgerEntry]: ...

    def create_entry(self, entry: LedgerEntry) -> int: ...

    def update_entry_stop(self, entry_id: int, new_stop: datetime) -> None: ...

    def close(self) -> None: ...


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(TOGGL_TIME_FMT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class TogglClient:
    """Thin synchronous wrapper around the Toggl Track v9 REST API."""

    def __init__(
        self,
        api_token: str,
        workspace_id: int,
        *,
        base_url: str = TOGGL_API_URL,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ) -> None:
        self.workspace_id = workspace_id
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._auth = httpx.BasicAuth(api_token, "api_token")

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        logger.debug("Toggl request: %s %s", method, url)
        try:
            response = self._client.request(
                method, url, params=params, json=payload, auth=self._auth
            )
        except httpx.HTTPError as exc:
            raise LedgerTransportError(f"{method} {path} failed: {exc}") from exc

        if not response.is_success:
            raise LedgerTransportError(
                f"{method} {path} was rejected",
                status=response.status_code,
                body=response.text,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise LedgerTransportError(
                f"{method} {path} returned invalid JSON",
                status=response.status_code,
                body=response.text,
            ) from exc

    def list_workspaces(self) -> list[dict[str, Any]]:
        return list(self._request("GET", "/me/workspaces") or [])

    def list_projects(self) -> list[Project]:
        rows = self._request("GET", f"/workspaces/{self.workspace_id}/projects") or []
        return [
            Project(
                id=int(row["id"]),
                name=str(row.get("name") or ""),
                workspace_id=int(row.get("workspace_id") or row.get("wid") or self.workspace_id),
            )
            for row in rows
        ]

    def list_entries(
        self, workspace_id: int, start: datetime, end: datetime
    ) -> list[LedgerEntry]:
        rows = self._request(
            "GET",
            "/me/time_entries",
            params={"start_date": format_timestamp(start), "end_date": format_timestamp(end)},
        ) or []
        entries = [_entry_from_row(row) for row in rows]
        return [entry for entry in entries if entry.workspace_id in (None, workspace_id)]

    def create_entry(self, entry: LedgerEntry) -> int:
        workspace_id = entry.workspace_id or self.workspace_id
        payload: dict[str, Any] = {
            "description": entry.description,
            "workspace_id": workspace_id,
            "project_id": entry.project_id,
            "start": format_timestamp(entry.start),
            "stop": format_timestamp(entry.stop) if entry.stop else None,
            "duration": entry.duration,
            "tags": entry.tags,
            "created_with": entry.created_with or "autotrack",
            "event_metadata": entry.metadata,
        }
        payload = {key: value for key, value in payload.items() if value is not None}
        data = self._request("POST", f"/workspaces/{workspace_id}/time_entries", payload=payload)
        if not isinstance(data, dict) or "id" not in data:
            raise LedgerTransportError("Time entry response did not include an id")
        entry_id = int(data["id"])
        logger.debug("Created time entry %d", entry_id)
        return entry_id

    def update_entry_stop(self, entry_id: int, new_stop: datetime) -> None:
        self._request(
            "PUT",
            f"/workspaces/{self.workspace_id}/time_entries/{entry_id}",
            payload={"stop": format_timestamp(new_stop)},
        )


def _entry_from_row(row: dict[str, Any]) -> LedgerEntry:
    workspace_id = row.get("workspace_id") or row.get("wid")
    project_id = row.get("project_id") or row.get("pid")
    return LedgerEntry(
        id=int(row["id"]),
        description=str(row.get("description") or ""),
        start=parse_timestamp(row["start"]),
        stop=parse_timestamp(row.get("stop")),
        duration=row.get("duration"),
        project_id=int(project_id) if project_id is not None else None,
        workspace_id=int(workspace_id) if workspace_id is not None else None,
        tags=row.get("tags"),
    )
