from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from backend.app.core.errors import (
    NotAuthenticated,
    NotConnected,
    PersistenceError,
    ProviderUnavailable,
    RecordNotFound,
    RemoteNotFound,
    SyncInProgress,
)
from backend.app.core.locks import user_locks
from backend.app.models.calendar_event_model import CalendarEvent
from backend.app.models.sync_log_model import SyncLog
from backend.app.services import event_repository, sync_ledger
from backend.app.services.calendar_sync import EVENT_SOURCE, CalendarReconciler, build_remote_event
from backend.app.services.credential_store import CredentialStore

from backend.tests.fakes import TEST_CONFIG, connect_google, make_event


def reconciler(db, gateway, refresher=None):
    creds = CredentialStore(db, TEST_CONFIG, refresher) if refresher else None
    return CalendarReconciler(db, TEST_CONFIG, gateway_factory=gateway.factory, credentials=creds)


def ledger(db, user):
    return db.query(SyncLog).filter(SyncLog.user_id == user.id).order_by(SyncLog.id).all()


def test_partial_failure_is_isolated(db, user, application, calendar_gateway):
    connect_google(db, user)
    base = datetime(2025, 1, 1, tzinfo=timezone.utc)
    first = make_event(db, user, application, 'Phone screen', created_at=base)
    second = make_event(db, user, application, 'Onsite', created_at=base + timedelta(minutes=1))
    third = make_event(db, user, application, 'Offer call', created_at=base + timedelta(minutes=2))
    calendar_gateway.fail_titles.add('Onsite')

    result = reconciler(db, calendar_gateway).sync_user_calendar(user.id)

    assert (result.synced, result.failed, result.total) == (2, 1, 3)
    assert [p['summary'] for _, p in calendar_gateway.created] == ['Phone screen', 'Onsite', 'Offer call']
    db.expire_all()
    assert db.get(CalendarEvent, first.id).calendar_event_id == 'g-1'
    assert db.get(CalendarEvent, second.id).calendar_event_id is None
    assert db.get(CalendarEvent, third.id).calendar_event_id == 'g-2'
    rows = ledger(db, user)
    assert len(rows) == 1
    assert rows[0].service == 'calendar'
    assert rows[0].success is True
    assert rows[0].details == 'Synced 2 events successfully, 1 failed'


def test_rerun_only_pushes_previous_failures(db, user, application, calendar_gateway):
    connect_google(db, user)
    make_event(db, user, application, 'Phone screen')
    make_event(db, user, application, 'Onsite')
    calendar_gateway.fail_titles.add('Onsite')
    rec = reconciler(db, calendar_gateway)
    rec.sync_user_calendar(user.id)

    calendar_gateway.fail_titles.clear()
    calendar_gateway.created.clear()
    result = rec.sync_user_calendar(user.id)

    assert (result.synced, result.failed, result.total) == (1, 0, 1)
    assert [p['summary'] for _, p in calendar_gateway.created] == ['Onsite']

    calendar_gateway.created.clear()
    result = rec.sync_user_calendar(user.id)
    assert (result.synced, result.failed, result.total) == (0, 0, 0)
    assert calendar_gateway.created == []
    assert len(calendar_gateway.remote) == 2


def test_already_synced_events_are_not_candidates(db, user, application, calendar_gateway):
    connect_google(db, user)
    make_event(db, user, application, 'Synced before', remote_id='remote-old')
    result = reconciler(db, calendar_gateway).sync_user_calendar(user.id)
    assert result.total == 0
    assert calendar_gateway.created == []


def test_zero_candidates_still_logged_as_success(db, user, calendar_gateway):
    connect_google(db, user)
    result = reconciler(db, calendar_gateway).sync_user_calendar(user.id)
    assert (result.synced, result.failed, result.total) == (0, 0, 0)
    rows = ledger(db, user)
    assert len(rows) == 1 and rows[0].success is True


def test_all_failed_run_logged_as_failure(db, user, application, calendar_gateway):
    connect_google(db, user)
    make_event(db, user, application, 'Onsite')
    calendar_gateway.fail_titles.add('Onsite')
    result = reconciler(db, calendar_gateway).sync_user_calendar(user.id)
    assert (result.synced, result.failed) == (0, 1)
    assert ledger(db, user)[0].success is False


def test_only_own_events_are_pushed(db, user, other_user, application, calendar_gateway):
    connect_google(db, user)
    make_event(db, user, application, 'Mine')
    foreign = CalendarEvent(
        title='Theirs', start_time=datetime(2025, 2, 1, tzinfo=timezone.utc),
        end_time=datetime(2025, 2, 1, 1, tzinfo=timezone.utc), user_id=other_user.id, application_id=application.id,
    )
    db.add(foreign)
    db.commit()
    result = reconciler(db, calendar_gateway).sync_user_calendar(user.id)
    assert result.total == 1
    assert [p['summary'] for _, p in calendar_gateway.created] == ['Mine']


def test_not_connected_raises_before_any_call(db, user, application, calendar_gateway):
    make_event(db, user, application, 'Phone screen')
    with pytest.raises(NotConnected):
        reconciler(db, calendar_gateway).sync_user_calendar(user.id)
    assert calendar_gateway.tokens == []
    assert ledger(db, user) == []


def test_expired_token_without_working_refresh(db, user, application, calendar_gateway):
    # no client id configured, so the refresh cannot happen
    connect_google(db, user, expired=True)
    make_event(db, user, application, 'Phone screen')
    with pytest.raises(NotAuthenticated):
        reconciler(db, calendar_gateway).sync_user_calendar(user.id)
    assert calendar_gateway.tokens == []
    assert calendar_gateway.created == []
    assert ledger(db, user) == []


def test_rejected_refresh_token(db, user, application, calendar_gateway):
    connect_google(db, user, expired=True)
    make_event(db, user, application, 'Phone screen')

    def stale(config, refresh_token):
        raise NotAuthenticated('token_refresh: credentials could not be refreshed')

    with pytest.raises(NotAuthenticated):
        reconciler(db, calendar_gateway, refresher=stale).sync_user_calendar(user.id)
    assert calendar_gateway.created == []
    assert ledger(db, user) == []


def test_expired_token_is_refreshed_and_stored(db, user, application, calendar_gateway):
    connect_google(db, user, expired=True)
    make_event(db, user, application, 'Phone screen')
    new_expiry = datetime.now(timezone.utc) + timedelta(hours=1)

    result = reconciler(db, calendar_gateway, refresher=lambda config, rt: ('access-2', new_expiry)).sync_user_calendar(user.id)

    assert result.synced == 1
    assert calendar_gateway.tokens == ['access-2']
    cred = CredentialStore(db, TEST_CONFIG).get(user.id)
    assert cred.access_token == 'access-2'
    assert cred.refresh_token == 'refresh-1'
    assert not cred.is_expired()


def test_concurrent_run_for_same_user_rejected(db, user, calendar_gateway):
    connect_google(db, user)
    with user_locks.hold(sync_ledger.CALENDAR, user.id):
        with pytest.raises(SyncInProgress):
            reconciler(db, calendar_gateway).sync_user_calendar(user.id)
    assert not user_locks.is_held(sync_ledger.CALENDAR, user.id)
    assert ledger(db, user) == []


def test_unexpected_error_is_counted_not_raised(db, user, application, calendar_gateway, monkeypatch):
    connect_google(db, user)
    make_event(db, user, application, 'Phone screen')

    def boom(calendar_id, payload):
        raise TypeError('bad payload')

    monkeypatch.setattr(calendar_gateway, 'create_event', boom)
    result = reconciler(db, calendar_gateway).sync_user_calendar(user.id)
    assert (result.synced, result.failed) == (0, 1)


def test_backfill_failure_removes_orphaned_remote_event(db, user, application, calendar_gateway, monkeypatch):
    connect_google(db, user)
    ev = make_event(db, user, application, 'Phone screen')

    def fail(db_, event_id, calendar_id, remote_event_id):
        raise PersistenceError('disk full', remote_id=remote_event_id)

    monkeypatch.setattr(event_repository, 'backfill_remote_id', fail)
    result = reconciler(db, calendar_gateway).sync_user_calendar(user.id)

    assert (result.synced, result.failed) == (0, 1)
    assert calendar_gateway.deleted == [('primary', 'g-1')]
    assert calendar_gateway.remote == {}
    db.expire_all()
    assert db.get(CalendarEvent, ev.id).calendar_event_id is None


def test_backfill_is_conditional_on_unsynced_row(db, user, application):
    ev = make_event(db, user, application, 'Already synced', remote_id='remote-a')
    with pytest.raises(PersistenceError) as exc:
        event_repository.backfill_remote_id(db, ev.id, 'primary', 'remote-b')
    assert exc.value.remote_id == 'remote-b'
    db.expire_all()
    assert db.get(CalendarEvent, ev.id).calendar_event_id == 'remote-a'


def test_remote_payload_carries_application_link(db, user, application):
    ev = make_event(db, user, application, 'Interview: Acme - Backend Engineer')
    payload = build_remote_event(ev)
    private = payload['extendedProperties']['private']
    assert private['applicationId'] == str(application.id)
    assert private['localEventId'] == str(ev.id)
    assert private['source'] == EVENT_SOURCE
    assert private['company'] == 'Acme'
    assert payload['start']['dateTime'] == '2025-11-03T15:00:00Z'
    assert payload['end']['dateTime'] == '2025-11-03T16:00:00Z'
    assert payload['reminders']['useDefault'] is False


def test_delete_tolerates_remote_not_found(db, user, application, calendar_gateway):
    connect_google(db, user)
    ev = make_event(db, user, application, 'Phone screen', remote_id='gone-already')
    reconciler(db, calendar_gateway).delete_event(user.id, ev.id)
    assert calendar_gateway.deleted == [('primary', 'gone-already')]
    assert db.query(CalendarEvent).count() == 0


def test_delete_keeps_local_row_on_provider_error(db, user, application, calendar_gateway):
    connect_google(db, user)
    ev = make_event(db, user, application, 'Phone screen', remote_id='remote-1')
    calendar_gateway.delete_error = ProviderUnavailable('calendar.events.delete: Google returned HTTP 503', status=503)
    with pytest.raises(ProviderUnavailable):
        reconciler(db, calendar_gateway).delete_event(user.id, ev.id)
    assert db.query(CalendarEvent).count() == 1


def test_delete_unsynced_event_needs_no_google_account(db, user, application, calendar_gateway):
    ev = make_event(db, user, application, 'Local only')
    reconciler(db, calendar_gateway).delete_event(user.id, ev.id)
    assert calendar_gateway.tokens == []
    assert db.query(CalendarEvent).count() == 0


def test_delete_foreign_event_not_found(db, user, other_user, application, calendar_gateway):
    ev = make_event(db, user, application, 'Phone screen')
    with pytest.raises(RecordNotFound):
        reconciler(db, calendar_gateway).delete_event(other_user.id, ev.id)
    assert db.query(CalendarEvent).count() == 1


def test_update_synced_event_is_mirrored(db, user, application, calendar_gateway):
    connect_google(db, user)
    ev = make_event(db, user, application, 'Phone screen', remote_id='remote-1')
    updated = reconciler(db, calendar_gateway).update_event(user.id, ev.id, {'title': 'Phone screen (moved)', 'location': 'Office'})
    assert updated.title == 'Phone screen (moved)'
    assert calendar_gateway.updated[0][1] == 'remote-1'
    assert calendar_gateway.updated[0][2]['location'] == 'Office'


def test_update_clears_remote_id_when_remote_event_gone(db, user, application, calendar_gateway):
    connect_google(db, user)
    ev = make_event(db, user, application, 'Phone screen', remote_id='remote-1')
    calendar_gateway.update_error = RemoteNotFound('calendar.events.update: remote resource not found')
    updated = reconciler(db, calendar_gateway).update_event(user.id, ev.id, {'title': 'Renamed'})
    assert updated.calendar_event_id is None
    assert [e.id for e in event_repository.list_unsynced(db, user.id)] == [ev.id]


def test_update_rejects_inverted_window(db, user, application, calendar_gateway):
    ev = make_event(db, user, application, 'Phone screen')
    with pytest.raises(ValueError):
        reconciler(db, calendar_gateway).update_event(
            user.id, ev.id, {'start_time': datetime(2025, 11, 4, tzinfo=timezone.utc)}
        )
    db.expire_all()
    assert db.get(CalendarEvent, ev.id).start_time.day == 3


def test_list_remote_events_filters_by_application(db, user, application, calendar_gateway):
    connect_google(db, user)
    make_event(db, user, application, 'Phone screen')
    rec = reconciler(db, calendar_gateway)
    rec.sync_user_calendar(user.id)
    assert len(rec.list_remote_events(user.id, application_id=application.id)) == 1
    assert rec.list_remote_events(user.id, application_id=application.id + 100) == []


def test_application_event_title_and_default_length(db, user, application):
    start = datetime(2025, 12, 1, 10, tzinfo=timezone.utc)
    ev = event_repository.create_for_application(db, application, 'interview', start)
    assert ev.title == 'Interview: Acme - Backend Engineer'
    assert ev.end_time - ev.start_time == timedelta(hours=1)
    assert 'Backend Engineer at Acme' in ev.description
    assert ev.location == 'Remote'


def test_update_refuses_to_clear_required_fields(db, user, application, calendar_gateway):
    connect_google(db, user)
    ev = make_event(db, user, application, 'Phone screen', remote_id='remote-1')
    rec = reconciler(db, calendar_gateway)
    for field in ('title', 'start_time', 'end_time'):
        with pytest.raises(ValueError):
            rec.update_event(user.id, ev.id, {field: None})
    assert calendar_gateway.updated == []
    db.expire_all()
    assert db.get(CalendarEvent, ev.id).title == 'Phone screen'


def test_update_local_write_failure_never_reaches_google(db, user, application, calendar_gateway, monkeypatch):
    connect_google(db, user)
    ev = make_event(db, user, application, 'Phone screen', remote_id='remote-1')

    def failing_flush(*args, **kwargs):
        raise IntegrityError('UPDATE calendar_events', {}, Exception('constraint failed'))

    monkeypatch.setattr(db, 'flush', failing_flush)
    with pytest.raises(PersistenceError):
        reconciler(db, calendar_gateway).update_event(user.id, ev.id, {'title': 'Renamed'})
    assert calendar_gateway.updated == []
