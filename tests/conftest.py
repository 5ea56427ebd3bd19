import os
import threading
import time

os.environ.setdefault("REALTIME_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from models.notification import NotificationStore
from models.profile import Profile
from models.user import Session, SessionUser
from models.visitor_event import VisitorEvent, VisitorSnapshot
from services.auth_session import AuthSession
from services.notification_listener import NotificationListener
from services.session_registry import DashboardContext
from services.supabase_service import SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED, Subscription, session_expiring


class FakeAuthProvider:
    def __init__(self, accounts=None):
        # email -> (password, SessionUser)
        self.accounts = dict(accounts or {})
        self.session = None
        self.listeners = []
        self.sign_out_error = None
        self.session_error = None
        self.signed_up = []
        self.passwords = {}
        self.refresh_error = None
        self.refreshes = 0

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        return Subscription(lambda _sub: self.listeners.remove(callback))

    def emit(self, event, session):
        for listener in list(self.listeners):
            listener(event, session)

    def get_session(self):
        if self.session_error:
            raise self.session_error
        return self.session

    @property
    def access_token(self):
        return self.session.access_token if self.session else None

    def restore_session(self, access_token, refresh_token=None, expires_at=None):
        # Refreshed tokens look like "token-<id>.<n>"
        for _password, user in self.accounts.values():
            if access_token.split('.')[0] == f"token-{user.id}":
                self.session = Session(access_token, refresh_token, user, expires_at)
                return self.session
        return None

    def sign_in_with_password(self, email, password):
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            return None, 'Invalid login credentials'
        user = account[1]
        self.session = Session(f"token-{user.id}", f"refresh-{user.id}", user)
        self.emit(SIGNED_IN, self.session)
        return self.session, None

    def refresh_if_expiring(self, margin=60, now=None):
        current = self.session
        if not session_expiring(current, margin, now):
            return current
        if self.refresh_error:
            if session_expiring(current, 0, now):
                self.session = None
                self.emit(SIGNED_OUT, None)
            return self.session
        self.refreshes += 1
        user = current.user
        self.session = Session(f"token-{user.id}.{self.refreshes}", f"refresh-{user.id}.{self.refreshes}",
                               user, time.time() + 3600)
        self.emit(TOKEN_REFRESHED, self.session)
        return self.session

    def sign_up(self, email, password, data=None):
        user = SessionUser(f"new-{len(self.signed_up) + 1}", email, data or {})
        self.signed_up.append((email, password, data))
        return user, None

    def sign_out(self):
        self.session = None
        self.emit(SIGNED_OUT, None)
        return self.sign_out_error

    def update_user(self, password=None, data=None):
        if self.session is None:
            return 'Not signed in'
        self.passwords[self.session.user.id] = password
        return None


class FakeProfileStore:
    def __init__(self, rows=None):
        self.rows = dict(rows or {})
        self.calls = []
        self.updates = []
        self.error = None
        self.update_error = None
        self.block = None

    def get_profile(self, user_id):
        self.calls.append(user_id)
        if self.block is not None:
            self.block.wait(5)
        if self.error is not None:
            raise self.error
        return self.rows.get(user_id)

    def update_profile(self, user_id, fields):
        if self.update_error is not None:
            raise self.update_error
        self.updates.append((user_id, fields))
        return True


class FakeRealtime:
    def __init__(self):
        self.subscribers = []
        self.subscribe_calls = 0

    def subscribe_to_visitors(self, callback):
        self.subscribe_calls += 1
        self.subscribers.append(callback)
        return Subscription(lambda _sub: self.subscribers.remove(callback))

    def push(self, event):
        for callback in list(self.subscribers):
            callback(event)

    def get_state(self):
        return {'running': True, 'connected': True, 'subscribers': len(self.subscribers)}


def make_user(user_id, email, **metadata):
    return SessionUser(user_id, email, metadata, '2026-01-01T00:00:00+00:00')


def make_profile(profile_id, role, floors=None, email=None):
    return Profile(profile_id, email or f"{profile_id}@example.com", full_name=profile_id.title(),
                   role=role, assigned_floors=floors or [])


def make_event(event_type='insert', **record):
    record.setdefault('name', 'Jane Visitor')
    record.setdefault('company', 'Acme')
    return VisitorEvent(event_type, VisitorSnapshot.from_record(record))


@pytest.fixture
def accounts():
    return {
        'admin@example.com': ('Secret#123', make_user('u-admin', 'admin@example.com')),
        'front@example.com': ('Secret#123', make_user('u-front', 'front@example.com')),
        'hank@example.com': ('Secret#123', make_user('u-host', 'hank@example.com')),
        'sam@example.com': ('Secret#123', make_user('u-sec', 'sam@example.com')),
    }


@pytest.fixture
def profile_rows():
    return {
        'u-admin': {'id': 'u-admin', 'email': 'admin@example.com', 'full_name': 'Ada Admin', 'role': 'admin'},
        'u-front': {'id': 'u-front', 'email': 'front@example.com', 'full_name': 'Fran Front',
                    'role': 'reception', 'assigned_floors': '[1, 2]'},
        'u-host': {'id': 'u-host', 'email': 'hank@example.com', 'full_name': 'Hank Host', 'role': 'host'},
        'u-sec': {'id': 'u-sec', 'email': 'sam@example.com', 'full_name': 'Sam Guard', 'role': 'security'},
    }


@pytest.fixture
def provider(accounts):
    return FakeAuthProvider(accounts)


@pytest.fixture
def profile_store(profile_rows):
    return FakeProfileStore(profile_rows)


@pytest.fixture
def auth_session(provider, profile_store):
    session = AuthSession(provider, profile_store, profile_timeout=0.5)
    yield session
    session.teardown()


@pytest.fixture
def realtime():
    return FakeRealtime()


@pytest.fixture
def app(accounts, profile_rows, realtime):
    from app import create_app

    contexts = []

    def factory():
        provider = FakeAuthProvider(accounts)
        store = NotificationStore(10)
        context = DashboardContext(
            provider,
            AuthSession(provider, FakeProfileStore(profile_rows), profile_timeout=0.5),
            store,
            NotificationListener(realtime, store)
        )
        contexts.append(context)
        return context

    flask_app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'REALTIME_SERVICE': realtime,
        'CONTEXT_FACTORY': factory,
    })
    flask_app.contexts = contexts
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(email, password='Secret#123'):
        return client.post('/login', data={'email': email, 'password': password})
    return _login


@pytest.fixture
def blocker():
    event = threading.Event()
    yield event
    event.set()
