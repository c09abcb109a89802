"""Gmail API message parsing and MIME building.

Gmail returns ``format=full`` messages as a payload tree whose part bodies are
base64url encoded. We keep the first text/plain body, fall back to text/html
converted to plain text, and read From/To/Subject/Date from the headers.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional
import base64
import html as _html
import re


@dataclass
class ParsedMessage:
    gmail_id: str
    thread_id: Optional[str]
    subject: str
    sender: str
    recipients: str
    date: datetime
    body: str
    html_body: str = ''
    label_ids: List[str] = field(default_factory=list)

    @property
    def is_read(self) -> bool:
        return 'UNREAD' not in self.label_ids


def decode_body(data: Optional[str]) -> str:
    if not data:
        return ''
    padded = data + '=' * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode('ascii')).decode('utf-8', errors='ignore')


def html_to_text(markup: str) -> str:
    txt = re.sub(r'<\s*br\s*/?>', '\n', markup, flags=re.I)
    txt = re.sub(r'</(p|div|tr|table|li|h[1-6])\s*>', '\n', txt, flags=re.I)
    txt = re.sub(r'<(script|style)[^>]*>.*?</\1\s*>', ' ', txt, flags=re.I | re.S)
    txt = re.sub(r'<[^>]+>', ' ', txt)
    txt = _html.unescape(txt)
    txt = re.sub(r'[ \t\r\f\v]+', ' ', txt)
    return re.sub(r'\n\s*\n+', '\n\n', txt).strip()


def _walk(part: Dict[str, Any]):
    yield part
    for child in part.get('parts') or []:
        yield from _walk(child)


def _header(headers: List[Dict[str, str]], name: str) -> str:
    name = name.lower()
    for h in headers:
        if h.get('name', '').lower() == name:
            return h.get('value', '')
    return ''


def _parse_date(value: str, internal_ms: Optional[str]) -> datetime:
    if value:
        try:
            dt = parsedate_to_datetime(value)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt.astimezone(timezone.utc)
        except (TypeError, ValueError):
            pass
    if internal_ms:
        return datetime.fromtimestamp(int(internal_ms) / 1000, tz=timezone.utc)
    return datetime.now(timezone.utc)


def parse_gmail_message(message: Dict[str, Any]) -> ParsedMessage:
    payload = message.get('payload') or {}
    headers = payload.get('headers') or []
    body = ''
    html_body = ''
    for part in _walk(payload):
        mime = part.get('mimeType', '')
        data = (part.get('body') or {}).get('data')
        if not data or part.get('filename'):
            continue
        if mime == 'text/plain' and not body:
            body = decode_body(data)
        elif mime == 'text/html' and not html_body:
            html_body = decode_body(data)
    if not body and html_body:
        body = html_to_text(html_body)

    return ParsedMessage(
        gmail_id=message['id'],
        thread_id=message.get('threadId'),
        subject=_header(headers, 'subject'),
        sender=_header(headers, 'from'),
        recipients=_header(headers, 'to'),
        date=_parse_date(_header(headers, 'date'), message.get('internalDate')),
        body=body,
        html_body=html_body,
        label_ids=list(message.get('labelIds') or []),
    )


def build_raw_message(to: str, subject: str, body: str, cc: Optional[str] = None,
                      bcc: Optional[str] = None, is_html: bool = False) -> str:
    """base64url encoded RFC 2822 message as expected by users.messages.send."""
    msg = EmailMessage()
    msg['To'] = to
    msg['Subject'] = subject
    if cc:
        msg['Cc'] = cc
    if bcc:
        msg['Bcc'] = bcc
    msg.set_content(body, subtype='html' if is_html else 'plain', charset='utf-8')
    return base64.urlsafe_b64encode(msg.as_bytes()).decode('ascii').rstrip('=')
