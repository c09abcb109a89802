from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .google_clients import build_calendar_service, google_call


def rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


class CalendarGateway:
    """Google Calendar events API, one instance per access token.

    Every method raises NotAuthenticated, RemoteNotFound or ProviderUnavailable
    instead of the client library's own errors.
    """

    def __init__(self, service):
        self.service = service

    @classmethod
    def for_token(cls, access_token: str) -> 'CalendarGateway':
        return cls(build_calendar_service(access_token))

    def create_event(self, calendar_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        with google_call('calendar.events.insert'):
            return self.service.events().insert(calendarId=calendar_id, body=payload).execute()

    def update_event(self, calendar_id: str, remote_event_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        with google_call('calendar.events.update'):
            return self.service.events().update(calendarId=calendar_id, eventId=remote_event_id, body=payload).execute()

    def delete_event(self, calendar_id: str, remote_event_id: str) -> None:
        with google_call('calendar.events.delete'):
            self.service.events().delete(calendarId=calendar_id, eventId=remote_event_id).execute()

    def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
        max_results: int = 10,
        private_extended_property: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params = dict(
            calendarId=calendar_id,
            timeMin=rfc3339(time_min),
            timeMax=rfc3339(time_max),
            maxResults=max_results,
            singleEvents=True,
            orderBy='startTime',
        )
        if private_extended_property:
            params['privateExtendedProperty'] = private_extended_property
        with google_call('calendar.events.list'):
            result = self.service.events().list(**params).execute()
        return result.get('items', [])
