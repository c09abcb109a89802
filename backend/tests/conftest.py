import os

os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['JWT_SECRET'] = 'test-secret'

import pytest
from fastapi.testclient import TestClient

from backend.app.db.database import Base, SessionLocal, engine, init_db
from backend.app.main import app
from backend.app.models.application_model import JobApplication
from backend.app.models.user_model import User
from backend.app.security.session import create_session_token
from backend.tests.fakes import FakeCalendarGateway


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    u = User(email='alex@example.com', name='Alex')
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def other_user(db):
    u = User(email='sam@example.com', name='Sam')
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def application(db, user):
    app_row = JobApplication(user_id=user.id, job_title='Backend Engineer', company='Acme', location='Remote', status='Interview')
    db.add(app_row)
    db.commit()
    db.refresh(app_row)
    return app_row


@pytest.fixture
def calendar_gateway():
    return FakeCalendarGateway()


@pytest.fixture
def client():
    c = TestClient(app)
    yield c
    app.dependency_overrides.clear()


@pytest.fixture
def authed_client(client, user):
    client.cookies.set('token', create_session_token(user.id))
    return client
