"""Gmail -> local email ingestion and outbound mail.

Ingestion is idempotent: a message is inserted only when its Gmail id is not
yet stored for the user, and the (user_id, gmail_id) unique constraint backs
that check. Page tokens are passed through untouched; following them is up to
the caller.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import GoogleConfig
from ..core.errors import ProviderUnavailable, SyncError
from ..core.locks import UserLocks, user_locks
from ..models.email_model import Email
from . import sync_ledger
from .credential_store import CredentialStore
from .email_parser import ParsedMessage, build_raw_message, parse_gmail_message
from .email_service import create_email, email_exists
from .gmail_gateway import GmailGateway

log = logging.getLogger(__name__)

GatewayFactory = Callable[[str], GmailGateway]


@dataclass
class IngestResult:
    fetched: int
    stored: int
    failed: int
    next_page_token: Optional[str] = None


class EmailIngestor:
    def __init__(
        self,
        db: Session,
        config: GoogleConfig,
        gateway_factory: Optional[GatewayFactory] = None,
        credentials: Optional[CredentialStore] = None,
        locks: UserLocks = user_locks,
    ):
        self.db = db
        self.config = config
        self.gateway_factory = gateway_factory or GmailGateway.for_token
        self.credentials = credentials or CredentialStore(db, config)
        self.locks = locks

    def _gateway(self, user_id: int) -> GmailGateway:
        return self.gateway_factory(self.credentials.valid_access_token(user_id))

    def fetch_and_store_emails(
        self,
        user_id: int,
        max_results: int = 50,
        query: str = '',
        label_ids: Optional[List[str]] = None,
        page_token: Optional[str] = None,
    ) -> IngestResult:
        if label_ids is None:
            label_ids = ['INBOX']
        with self.locks.hold(sync_ledger.GMAIL, user_id):
            gateway = self._gateway(user_id)
            try:
                refs, next_token = gateway.list_messages(max_results, query, label_ids, page_token)
                stored = failed = 0
                for ref in refs:
                    parsed = self._fetch(gateway, user_id, ref['id'])
                    if parsed is None:
                        failed += 1
                    elif self._store(user_id, parsed):
                        stored += 1
            except Exception as e:
                self.db.rollback()
                sync_ledger.append(self.db, user_id, sync_ledger.GMAIL, f"Sync failed: {e}", False)
                log.warning("gmail_sync_failed", exc_info=e, extra={"user_id": user_id, "service": sync_ledger.GMAIL})
                raise
            result = IngestResult(fetched=len(refs), stored=stored, failed=failed, next_page_token=next_token)
            sync_ledger.append(
                self.db, user_id, sync_ledger.GMAIL,
                f"Synced {result.fetched} emails ({result.stored} new, {result.failed} failed)",
                result.fetched > result.failed or result.failed == 0,
            )
            log.info("gmail_sync_done", extra={"user_id": user_id, "service": sync_ledger.GMAIL, "total": result.fetched, "stored": result.stored, "failed": result.failed})
            return result

    def _fetch(self, gateway: GmailGateway, user_id: int, message_id: str) -> Optional[ParsedMessage]:
        try:
            return parse_gmail_message(gateway.get_message(message_id))
        except SyncError as e:
            log.warning("gmail_message_fetch_failed", extra={"user_id": user_id, "gmail_id": message_id, "error_type": type(e).__name__})
        except (KeyError, ValueError) as e:
            log.warning("gmail_message_parse_failed", exc_info=e, extra={"user_id": user_id, "gmail_id": message_id})
        return None

    def _store(self, user_id: int, parsed: ParsedMessage) -> bool:
        if email_exists(self.db, user_id, parsed.gmail_id):
            return False
        try:
            create_email(
                self.db, user_id,
                gmail_id=parsed.gmail_id,
                subject=parsed.subject,
                body=parsed.body or parsed.html_body,
                sender=parsed.sender,
                recipients=parsed.recipients,
                date=parsed.date,
                is_read=parsed.is_read,
                thread_id=parsed.thread_id,
            )
        except IntegrityError:
            # stored by a concurrent request between the check and the insert
            self.db.rollback()
            return False
        return True

    def send_email(
        self,
        user_id: int,
        to: str,
        subject: str,
        body: str,
        cc: Optional[str] = None,
        bcc: Optional[str] = None,
        is_html: bool = False,
        application_id: Optional[int] = None,
    ) -> Email:
        """Send through Gmail and store the sent message right away (marked read)."""
        gateway = self._gateway(user_id)
        sent = gateway.send_message(build_raw_message(to, subject, body, cc=cc, bcc=bcc, is_html=is_html))
        gmail_id = sent.get('id')
        if not gmail_id:
            raise ProviderUnavailable('Gmail returned a sent message without id')
        log.info("gmail_message_sent", extra={"user_id": user_id, "gmail_id": gmail_id})
        return create_email(
            self.db, user_id,
            gmail_id=gmail_id,
            subject=subject,
            body=body,
            sender='me',
            recipients=to,
            date=datetime.now(timezone.utc),
            is_read=True,
            thread_id=sent.get('threadId'),
            application_id=application_id,
        )

    def list_labels(self, user_id: int) -> List[Dict[str, Any]]:
        return self._gateway(user_id).list_labels()
