"""Local -> Google Calendar reconciliation.

A sync run pushes every event without a remote id, one at a time, and writes
the returned id back. The "no remote id" predicate is what makes re-runs safe:
an event whose id was stored is never selected (and never created) again, and
an event whose push failed stays a candidate for the next run.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import GoogleConfig
from ..core.errors import (
    NotAuthenticated,
    PersistenceError,
    ProviderUnavailable,
    RecordNotFound,
    RemoteNotFound,
    SyncError,
)
from ..core.locks import UserLocks, user_locks
from ..db.database import as_utc, utcnow
from ..models.calendar_event_model import CalendarEvent
from ..schemas.calendar import SyncResult
from . import event_repository, sync_ledger
from .calendar_gateway import CalendarGateway, rfc3339
from .credential_store import CredentialStore

EVENT_SOURCE = 'jobtracker-crm'
REMINDERS = {
    'useDefault': False,
    'overrides': [
        {'method': 'email', 'minutes': 24 * 60},
        {'method': 'popup', 'minutes': 30},
    ],
}
EDITABLE_FIELDS = ('title', 'description', 'location', 'start_time', 'end_time', 'event_type')
REQUIRED_FIELDS = ('title', 'start_time', 'end_time')

log = logging.getLogger(__name__)

GatewayFactory = Callable[[str], CalendarGateway]


@dataclass(frozen=True)
class SyncOutcome:
    event_id: int
    ok: bool
    remote_event_id: Optional[str] = None
    reason: Optional[str] = None  # provider | auth | persistence | unexpected
    error: Optional[str] = None

    @classmethod
    def synced(cls, event_id: int, remote_event_id: str) -> 'SyncOutcome':
        return cls(event_id=event_id, ok=True, remote_event_id=remote_event_id)

    @classmethod
    def failed(cls, event_id: int, reason: str, error: str) -> 'SyncOutcome':
        return cls(event_id=event_id, ok=False, reason=reason, error=error)


def fold_outcomes(outcomes: Iterable[SyncOutcome]) -> SyncResult:
    outcomes = list(outcomes)
    synced = sum(1 for o in outcomes if o.ok)
    return SyncResult(synced=synced, failed=len(outcomes) - synced, total=len(outcomes))


def run_succeeded(result: SyncResult) -> bool:
    # an empty run is a success; a non-empty one fails only if nothing got through
    return result.synced > 0 or result.failed == 0


def build_remote_event(event: CalendarEvent) -> Dict[str, Any]:
    """Google Calendar resource for a local event.

    The application link travels as private extended properties, which Google
    returns untouched and can filter on (privateExtendedProperty=applicationId=...).
    """
    private = {
        'applicationId': str(event.application_id),
        'localEventId': str(event.id),
        'source': EVENT_SOURCE,
    }
    if event.event_type:
        private['eventType'] = event.event_type
    application = event.application
    if application is not None:
        private['company'] = application.company
        private['jobTitle'] = application.job_title
    return {
        'summary': event.title,
        'description': event.description or '',
        'location': event.location or '',
        'start': {'dateTime': rfc3339(event.start_time), 'timeZone': 'UTC'},
        'end': {'dateTime': rfc3339(event.end_time), 'timeZone': 'UTC'},
        'reminders': REMINDERS,
        'extendedProperties': {'private': private},
    }


class CalendarReconciler:
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
        self.gateway_factory = gateway_factory or CalendarGateway.for_token
        self.credentials = credentials or CredentialStore(db, config)
        self.locks = locks

    def _gateway(self, user_id: int) -> CalendarGateway:
        return self.gateway_factory(self.credentials.valid_access_token(user_id))

    def sync_user_calendar(self, user_id: int) -> SyncResult:
        """Push all unsynced events of a user to Google Calendar.

        NotConnected / NotAuthenticated / SyncInProgress are raised before any
        provider call and leave no ledger entry. Past that point exactly one
        ledger entry is written, including when an unexpected error escapes.
        """
        with self.locks.hold(sync_ledger.CALENDAR, user_id):
            gateway = self._gateway(user_id)
            try:
                candidates = [(ev.id, build_remote_event(ev)) for ev in event_repository.list_unsynced(self.db, user_id)]
                outcomes = [self._push(gateway, user_id, event_id, payload) for event_id, payload in candidates]
            except Exception as e:
                self.db.rollback()
                sync_ledger.append(self.db, user_id, sync_ledger.CALENDAR, f"Sync failed: {e}", False)
                log.exception("calendar_sync_aborted", extra={"user_id": user_id})
                raise
            result = fold_outcomes(outcomes)
            sync_ledger.append(
                self.db, user_id, sync_ledger.CALENDAR,
                f"Synced {result.synced} events successfully, {result.failed} failed",
                run_succeeded(result),
            )
            log.info("calendar_sync_done", extra={"user_id": user_id, "service": sync_ledger.CALENDAR, **result.model_dump()})
            return result

    def _push(self, gateway: CalendarGateway, user_id: int, event_id: int, payload: Dict[str, Any]) -> SyncOutcome:
        calendar_id = self.config.calendar_id
        try:
            remote = gateway.create_event(calendar_id, payload)
        except NotAuthenticated as e:
            log.warning("calendar_sync_event_failed", extra={"user_id": user_id, "event_id": event_id, "reason": "auth", "error_type": type(e).__name__})
            return SyncOutcome.failed(event_id, 'auth', str(e))
        except SyncError as e:
            log.warning("calendar_sync_event_failed", extra={"user_id": user_id, "event_id": event_id, "reason": "provider", "error_type": type(e).__name__})
            return SyncOutcome.failed(event_id, 'provider', str(e))
        except Exception as e:
            log.exception("calendar_sync_event_failed", extra={"user_id": user_id, "event_id": event_id, "reason": "unexpected"})
            return SyncOutcome.failed(event_id, 'unexpected', f"{type(e).__name__}: {e}")

        remote_id = (remote or {}).get('id')
        if not remote_id:
            log.warning("calendar_sync_event_failed", extra={"user_id": user_id, "event_id": event_id, "reason": "provider"})
            return SyncOutcome.failed(event_id, 'provider', 'Google returned an event without id')

        try:
            event_repository.backfill_remote_id(self.db, event_id, calendar_id, remote_id)
        except PersistenceError as e:
            # the Google event now exists with no local reference; the next run would create it again
            log.error(
                "calendar_sync_orphaned_remote_event",
                exc_info=e,
                extra={"user_id": user_id, "event_id": event_id, "remote_event_id": remote_id, "reason": "persistence"},
            )
            self._discard_orphan(gateway, user_id, event_id, calendar_id, remote_id)
            return SyncOutcome.failed(event_id, 'persistence', str(e))
        return SyncOutcome.synced(event_id, remote_id)

    def _discard_orphan(self, gateway: CalendarGateway, user_id: int, event_id: int, calendar_id: str, remote_id: str):
        try:
            gateway.delete_event(calendar_id, remote_id)
        except RemoteNotFound:
            pass
        except SyncError as e:
            log.error(
                "calendar_sync_orphan_cleanup_failed",
                exc_info=e,
                extra={"user_id": user_id, "event_id": event_id, "remote_event_id": remote_id},
            )
        else:
            log.info("calendar_sync_orphan_removed", extra={"user_id": user_id, "event_id": event_id, "remote_event_id": remote_id})

    def delete_event(self, user_id: int, event_id: int) -> None:
        """Delete remote first, then local. A remote failure other than not-found keeps the local row."""
        event = event_repository.get_event(self.db, user_id, event_id)
        if event is None:
            raise RecordNotFound(f"calendar event {event_id} not found")
        if event.calendar_event_id:
            gateway = self._gateway(user_id)
            remote_id = event.calendar_event_id
            try:
                gateway.delete_event(event.calendar_id or self.config.calendar_id, remote_id)
            except RemoteNotFound:
                log.info("calendar_remote_event_already_gone", extra={"user_id": user_id, "event_id": event_id, "remote_event_id": remote_id})
            except ProviderUnavailable:
                log.warning("calendar_remote_delete_failed", extra={"user_id": user_id, "event_id": event_id, "remote_event_id": remote_id})
                raise
        event_repository.delete_event(self.db, event)
        log.info("calendar_event_deleted", extra={"user_id": user_id, "event_id": event_id})

    def update_event(self, user_id: int, event_id: int, changes: Dict[str, Any]) -> CalendarEvent:
        """Apply local changes and mirror them to Google when the event is synced.

        If Google no longer has the event, the remote id is dropped so the next
        sync run recreates it.
        """
        event = event_repository.get_event(self.db, user_id, event_id)
        if event is None:
            raise RecordNotFound(f"calendar event {event_id} not found")
        for key, value in changes.items():
            if key not in EDITABLE_FIELDS:
                continue
            if value is None and key in REQUIRED_FIELDS:
                self.db.rollback()
                raise ValueError(f"{key} cannot be null")
            setattr(event, key, value)
        if as_utc(event.start_time) > as_utc(event.end_time):
            self.db.rollback()
            raise ValueError('start_time must not be after end_time')
        # write locally first so a rejected row never reaches Google
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"could not update event {event_id}: {e}") from e
        if event.calendar_event_id:
            gateway = self._gateway(user_id)
            try:
                gateway.update_event(event.calendar_id or self.config.calendar_id, event.calendar_event_id, build_remote_event(event))
            except RemoteNotFound:
                log.info("calendar_remote_event_missing_on_update", extra={"user_id": user_id, "event_id": event_id})
                event_repository.clear_remote_id(self.db, event)
            except SyncError:
                self.db.rollback()
                raise
        event.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(event)
        return event

    def list_remote_events(
        self,
        user_id: int,
        days: int = 30,
        max_results: int = 10,
        application_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        gateway = self._gateway(user_id)
        now = utcnow()
        prop = f"applicationId={application_id}" if application_id is not None else None
        return gateway.list_events(self.config.calendar_id, now, now + timedelta(days=days), max_results, prop)

