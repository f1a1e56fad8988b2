"""
Microsoft Graph client for calendars and calendar views.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

import httpx

from cal365_tui.models import Calendar, Event

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
EVENT_FIELDS = "subject,start,end,body,attendees,location,organizer"


class RemoteError(Exception):
    """Base class for Graph request failures"""


class AuthorizationExpired(RemoteError):
    """Graph answered 401; the access token must be refreshed"""


class TransportError(RemoteError):
    """Network failure, unexpected status or undecodable response"""


def format_utc(value: datetime) -> str:
    """Format a UTC datetime the way calendarView expects it"""
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


class GraphClient:
    """Async Graph client; use as ``async with GraphClient() as graph:``"""

    def __init__(self, base_url: str = GRAPH_BASE_URL, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _get_json(self, token: str, url: str, params: Optional[Dict] = None) -> Dict:
        """GET a Graph URL and decode the JSON body"""
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

        if response.status_code == 401:
            raise AuthorizationExpired("Access token rejected by Graph")
        if response.status_code >= 400:
            raise TransportError(f"Graph returned HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {url}") from e
        if not isinstance(data, dict):
            raise TransportError(f"Unexpected response shape from {url}")
        return data

    async def list_calendars(self, token: str) -> List[Calendar]:
        """Return the signed-in user's calendars"""
        data = await self._get_json(token, f"{self.base_url}/me/calendars")
        calendars = []
        for item in data.get('value') or []:
            if not isinstance(item, dict) or 'id' not in item:
                logger.debug(f"Skipping malformed calendar entry: {item!r}")
                continue
            calendars.append(Calendar.from_graph(item))
        logger.debug(f"Fetched {len(calendars)} calendars")
        return calendars

    async def list_events(self, token: str, calendar_id: str,
                          start_utc: datetime, end_utc: datetime) -> List[Event]:
        """Return every event of a calendar view in [start_utc, end_utc).

        Follows @odata.nextLink until the last page.
        """
        url: Optional[str] = f"{self.base_url}/me/calendars/{calendar_id}/calendarView"
        params: Optional[Dict] = {
            "startDateTime": format_utc(start_utc),
            "endDateTime": format_utc(end_utc),
            "$select": EVENT_FIELDS,
            "$orderby": "start/dateTime",
        }

        events: List[Event] = []
        pages = 0
        while url:
            data = await self._get_json(token, url, params)
            pages += 1
            for item in data.get('value') or []:
                if not isinstance(item, dict) or 'id' not in item:
                    logger.debug(f"Skipping malformed event entry in calendar {calendar_id}")
                    continue
                events.append(Event.from_graph(item))
            # continuation links already carry the query
            url = data.get('@odata.nextLink')
            params = None

        logger.debug(f"Calendar {calendar_id}: {len(events)} events in {pages} page(s)")
        return events
