import pytest
import requests

from services.supabase_service import (
    SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED, BackendError, ProfileStore, SupabaseAuthProvider
)

USER_JSON = {'id': 'u1', 'email': 'front@example.com', 'user_metadata': {'role': 'reception'}}
SESSION_JSON = {'access_token': 'a1', 'refresh_token': 'r1', 'expires_at': 1, 'user': USER_JSON}


class FakeResponse:
    def __init__(self, status_code, body=None, text=''):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError('no body')
        return self._body


class FakeHttp:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def _next(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self._next('GET', url, **kwargs)

    def post(self, url, **kwargs):
        return self._next('POST', url, **kwargs)

    def put(self, url, **kwargs):
        return self._next('PUT', url, **kwargs)

    def patch(self, url, **kwargs):
        return self._next('PATCH', url, **kwargs)


def _provider(*responses):
    http = FakeHttp(*responses)
    return SupabaseAuthProvider('https://demo.supabase.co/', 'anon', http=http), http


def test_sign_in_stores_session_and_emits_event():
    provider, http = _provider(FakeResponse(200, SESSION_JSON))
    events = []
    provider.on_auth_state_change(lambda event, session: events.append((event, session.user.id)))

    session, error = provider.sign_in_with_password('front@example.com', 'pw')

    assert error is None
    assert session.user.email == 'front@example.com'
    assert provider.access_token == 'a1'
    assert events == [(SIGNED_IN, 'u1')]
    method, url, kwargs = http.requests[0]
    assert url == 'https://demo.supabase.co/auth/v1/token?grant_type=password'
    assert kwargs['headers']['apikey'] == 'anon'


def test_sign_in_rejection_returns_message():
    provider, _ = _provider(FakeResponse(400, {'error_description': 'Invalid login credentials'}))
    session, error = provider.sign_in_with_password('x@example.com', 'bad')
    assert session is None
    assert error == 'Invalid login credentials'
    assert provider.get_session() is None


def test_sign_in_network_error_does_not_raise():
    provider, _ = _provider(requests.ConnectionError('refused'))
    session, error = provider.sign_in_with_password('x@example.com', 'pw')
    assert session is None
    assert 'refused' in error


def test_refresh_emits_token_refreshed():
    provider, _ = _provider(FakeResponse(200, SESSION_JSON), FakeResponse(200, dict(SESSION_JSON, access_token='a2')))
    provider.sign_in_with_password('front@example.com', 'pw')
    events = []
    provider.on_auth_state_change(lambda event, session: events.append(event))

    session, error = provider.refresh_session()

    assert error is None
    assert session.access_token == 'a2'
    assert events == [TOKEN_REFRESHED]


def test_sign_out_clears_session_even_on_error():
    provider, _ = _provider(FakeResponse(200, SESSION_JSON), requests.Timeout('slow'))
    provider.sign_in_with_password('front@example.com', 'pw')
    events = []
    provider.on_auth_state_change(lambda event, session: events.append(event))

    error = provider.sign_out()

    assert 'slow' in error
    assert provider.get_session() is None
    assert events == [SIGNED_OUT]


def test_unsubscribed_listener_gets_nothing():
    provider, _ = _provider(FakeResponse(200, SESSION_JSON))
    events = []
    subscription = provider.on_auth_state_change(lambda event, session: events.append(event))
    subscription.unsubscribe()
    provider.sign_in_with_password('front@example.com', 'pw')
    assert events == []


def test_restore_session():
    provider, http = _provider(FakeResponse(200, USER_JSON))
    session = provider.restore_session('a1', 'r1')
    assert session.user.id == 'u1'
    assert http.requests[0][2]['headers']['Authorization'] == 'Bearer a1'


def test_refresh_if_expiring_leaves_fresh_token_alone():
    provider, http = _provider(FakeResponse(200, dict(SESSION_JSON, expires_at=1000)))
    provider.sign_in_with_password('front@example.com', 'pw')

    session = provider.refresh_if_expiring(margin=60, now=500)

    assert session.access_token == 'a1'
    assert len(http.requests) == 1


def test_refresh_if_expiring_exchanges_refresh_token():
    provider, http = _provider(
        FakeResponse(200, dict(SESSION_JSON, expires_at=1000)),
        FakeResponse(200, dict(SESSION_JSON, access_token='a2', refresh_token='r2', expires_at=5000))
    )
    provider.sign_in_with_password('front@example.com', 'pw')
    events = []
    provider.on_auth_state_change(lambda event, session: events.append(event))

    session = provider.refresh_if_expiring(margin=60, now=980)

    assert session.access_token == 'a2'
    assert provider.get_session().refresh_token == 'r2'
    assert events == [TOKEN_REFRESHED]
    _method, url, kwargs = http.requests[1]
    assert url.endswith('/auth/v1/token?grant_type=refresh_token')
    assert kwargs['json'] == {'refresh_token': 'r1'}


def test_expired_session_signs_out_when_refresh_is_rejected():
    provider, _ = _provider(
        FakeResponse(200, dict(SESSION_JSON, expires_at=1000)),
        FakeResponse(400, {'error_description': 'Invalid Refresh Token'})
    )
    provider.sign_in_with_password('front@example.com', 'pw')
    events = []
    provider.on_auth_state_change(lambda event, session: events.append(event))

    assert provider.refresh_if_expiring(margin=60, now=2000) is None
    assert provider.get_session() is None
    assert events == [SIGNED_OUT]


def test_restore_session_refreshes_rejected_token():
    provider, http = _provider(
        FakeResponse(401, {'msg': 'JWT expired'}),
        FakeResponse(200, dict(SESSION_JSON, access_token='a2'))
    )

    session = provider.restore_session('a1', 'r1', 1)

    assert session.access_token == 'a2'
    assert provider.access_token == 'a2'
    assert http.requests[1][1].endswith('grant_type=refresh_token')


def test_restore_session_without_refresh_token_gives_up():
    provider, _ = _provider(FakeResponse(401, {'msg': 'JWT expired'}))
    assert provider.restore_session('a1') is None
    assert provider.get_session() is None


def test_sign_up_handles_nested_user():
    provider, http = _provider(FakeResponse(200, {'user': USER_JSON, 'session': None}))
    user, error = provider.sign_up('front@example.com', 'pw', {'role': 'reception'})
    assert error is None
    assert user.id == 'u1'
    assert http.requests[0][2]['json']['data'] == {'role': 'reception'}


def test_update_user_requires_session():
    provider, _ = _provider()
    assert provider.update_user(password='x') == 'Not signed in'


def test_profile_store_returns_first_row():
    http = FakeHttp(FakeResponse(200, [{'id': 'u1', 'role': 'host'}]))
    store = ProfileStore('https://demo.supabase.co', 'anon', token_source=lambda: 'jwt', http=http)

    assert store.get_profile('u1') == {'id': 'u1', 'role': 'host'}
    _method, url, kwargs = http.requests[0]
    assert url == 'https://demo.supabase.co/rest/v1/users'
    assert kwargs['params']['id'] == 'eq.u1'
    assert kwargs['headers']['Authorization'] == 'Bearer jwt'


def test_profile_store_missing_row():
    store = ProfileStore('https://demo.supabase.co', 'anon', http=FakeHttp(FakeResponse(200, [])))
    assert store.get_profile('nobody') is None


def test_profile_store_http_error_raises_backend_error():
    store = ProfileStore('https://demo.supabase.co', 'anon', http=FakeHttp(FakeResponse(401, {'message': 'JWT expired'})))
    with pytest.raises(BackendError) as excinfo:
        store.get_profile('u1')
    assert excinfo.value.status_code == 401
    assert 'JWT expired' in str(excinfo.value)
