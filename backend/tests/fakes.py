"""Fakes and row builders shared by the test modules."""
import base64
from datetime import datetime, timedelta, timezone
from typing import Optional

from backend.app.core.config import GoogleConfig
from backend.app.core.errors import ProviderUnavailable, RemoteNotFound
from backend.app.models.calendar_event_model import CalendarEvent
from backend.app.services.credential_store import CredentialStore

TEST_CONFIG = GoogleConfig(client_id=None, client_secret=None)


class FakeCalendarGateway:
    """In-memory stand-in for CalendarGateway; fails on request."""

    def __init__(self):
        self.created = []          # (calendar_id, payload)
        self.updated = []
        self.deleted = []
        self.remote = {}           # remote id -> payload
        self.fail_titles = set()   # create_event raises ProviderUnavailable for these summaries
        self.delete_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.tokens = []
        self._seq = 0

    def factory(self, token):
        self.tokens.append(token)
        return self

    def create_event(self, calendar_id, payload):
        self.created.append((calendar_id, payload))
        if payload['summary'] in self.fail_titles:
            raise ProviderUnavailable('calendar.events.insert: TimeoutError: timed out')
        self._seq += 1
        remote_id = f"g-{self._seq}"
        self.remote[remote_id] = payload
        return {'id': remote_id, **payload}

    def update_event(self, calendar_id, remote_event_id, payload):
        self.updated.append((calendar_id, remote_event_id, payload))
        if self.update_error:
            raise self.update_error
        self.remote[remote_event_id] = payload
        return {'id': remote_event_id, **payload}

    def delete_event(self, calendar_id, remote_event_id):
        self.deleted.append((calendar_id, remote_event_id))
        if self.delete_error:
            raise self.delete_error
        if remote_event_id not in self.remote:
            raise RemoteNotFound('calendar.events.delete: remote resource not found')
        del self.remote[remote_event_id]

    def list_events(self, calendar_id, time_min, time_max, max_results=10, private_extended_property=None):
        items = [{'id': k, **v} for k, v in self.remote.items()]
        if private_extended_property:
            key, value = private_extended_property.split('=', 1)
            items = [i for i in items if i['extendedProperties']['private'].get(key) == value]
        return items[:max_results]


def gmail_message(gmail_id, subject='Interview invite', sender='Recruiter <jobs@acme.io>',
                  body='See you Monday', labels=('INBOX', 'UNREAD'), thread_id='t-1'):
    data = base64.urlsafe_b64encode(body.encode()).decode().rstrip('=')
    return {
        'id': gmail_id,
        'threadId': thread_id,
        'labelIds': list(labels),
        'snippet': body[:40],
        'payload': {
            'mimeType': 'multipart/alternative',
            'headers': [
                {'name': 'From', 'value': sender},
                {'name': 'To', 'value': 'me@example.com'},
                {'name': 'Subject', 'value': subject},
                {'name': 'Date', 'value': 'Mon, 06 Oct 2025 09:30:00 +0000'},
            ],
            'parts': [
                {'mimeType': 'text/plain', 'body': {'data': data}},
                {'mimeType': 'text/html', 'body': {'data': base64.urlsafe_b64encode(f'<p>{body}</p>'.encode()).decode()}},
            ],
        },
    }


class FakeGmailGateway:
    def __init__(self, messages=()):
        self.messages = {m['id']: m for m in messages}
        self.broken = set()
        self.list_calls = []
        self.sent = []
        self.list_error: Optional[Exception] = None
        self.next_page_token = None

    def factory(self, token):
        return self

    def list_messages(self, max_results=20, query='', label_ids=None, page_token=None):
        self.list_calls.append({'max_results': max_results, 'query': query, 'label_ids': label_ids, 'page_token': page_token})
        if self.list_error:
            raise self.list_error
        refs = [{'id': k, 'threadId': v.get('threadId')} for k, v in self.messages.items()]
        return refs[:max_results], self.next_page_token

    def get_message(self, message_id):
        if message_id in self.broken:
            raise ProviderUnavailable('gmail.messages.get: Google returned HTTP 503', status=503)
        return self.messages[message_id]

    def send_message(self, raw):
        self.sent.append(raw)
        return {'id': f"sent-{len(self.sent)}", 'threadId': 'thread-sent', 'labelIds': ['SENT']}

    def list_labels(self):
        return [{'id': 'INBOX', 'name': 'INBOX'}, {'id': 'Label_1', 'name': 'Jobs'}]


def connect_google(db, user, expired=False, refresh_token='refresh-1'):
    expires_at = datetime.now(timezone.utc) + (timedelta(hours=-1) if expired else timedelta(hours=1))
    return CredentialStore(db, TEST_CONFIG).set(user.id, 'access-1', refresh_token, expires_at, 'https://www.googleapis.com/auth/calendar')


def make_event(db, user, application, title, start=None, remote_id=None, created_at=None):
    start = start or datetime(2025, 11, 3, 15, 0, tzinfo=timezone.utc)
    ev = CalendarEvent(
        title=title,
        description=f"{title} details",
        location='Video call',
        start_time=start,
        end_time=start + timedelta(hours=1),
        event_type='interview',
        user_id=user.id,
        application_id=application.id,
        calendar_id='primary' if remote_id else None,
        calendar_event_id=remote_id,
    )
    if created_at is not None:
        ev.created_at = created_at
    db.add(ev)
    db.commit()
    db.refresh(ev)
    return ev




class FakeFlow:
    """Stands in for google_auth_oauthlib's Flow in the consent round trip."""

    def __init__(self, credentials=None, error=None):
        self.credentials = credentials
        self.error = error
        self.codes = []

    def fetch_token(self, code):
        self.codes.append(code)
        if self.error:
            raise self.error

    def authorization_url(self, **kwargs):
        self.auth_kwargs = kwargs
        return 'https://accounts.google.com/o/oauth2/auth?state=abc', 'abc'
