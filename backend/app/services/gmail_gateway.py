from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple

from .google_clients import build_gmail_service, google_call


class GmailGateway:
    """users.messages / users.labels for the authenticated user ('me')."""

    def __init__(self, service):
        self.service = service

    @classmethod
    def for_token(cls, access_token: str) -> 'GmailGateway':
        return cls(build_gmail_service(access_token))

    def list_messages(
        self,
        max_results: int = 20,
        query: str = '',
        label_ids: Optional[List[str]] = None,
        page_token: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        params: Dict[str, Any] = dict(userId='me', maxResults=max_results)
        if query:
            params['q'] = query
        if label_ids:
            params['labelIds'] = label_ids
        if page_token:
            params['pageToken'] = page_token
        with google_call('gmail.messages.list'):
            result = self.service.users().messages().list(**params).execute()
        return result.get('messages', []), result.get('nextPageToken')

    def get_message(self, message_id: str) -> Dict[str, Any]:
        with google_call('gmail.messages.get'):
            return self.service.users().messages().get(userId='me', id=message_id, format='full').execute()

    def send_message(self, raw: str) -> Dict[str, Any]:
        with google_call('gmail.messages.send'):
            return self.service.users().messages().send(userId='me', body={'raw': raw}).execute()

    def list_labels(self) -> List[Dict[str, Any]]:
        with google_call('gmail.labels.list'):
            result = self.service.users().labels().list(userId='me').execute()
        return result.get('labels', [])
