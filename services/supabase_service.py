"""
HTTP clients for the hosted backend: GoTrue auth and PostgREST profile rows.
"""
import logging
import threading
import time
import traceback

import requests

from config.settings import HTTP_TIMEOUT, TOKEN_REFRESH_MARGIN
from models.user import Session, SessionUser

logger = logging.getLogger(__name__)

SIGNED_IN = 'SIGNED_IN'
SIGNED_OUT = 'SIGNED_OUT'
TOKEN_REFRESHED = 'TOKEN_REFRESHED'
USER_UPDATED = 'USER_UPDATED'


class BackendError(Exception):
  """HTTP failure talking to the backend"""

  def __init__(self, message, status_code=None):
    super().__init__(message)
    self.status_code = status_code


class Subscription:
  """Handle returned by subscribe calls; unsubscribe() may be called repeatedly"""

  def __init__(self, on_unsubscribe):
    self._on_unsubscribe = on_unsubscribe
    self._lock = threading.Lock()
    self.active = True

  def unsubscribe(self):
    with self._lock:
      if not self.active:
        return
      self.active = False
    self._on_unsubscribe(self)


def _error_message(response):
  """Pull a readable message out of a GoTrue/PostgREST error body"""
  try:
    body = response.json()
  except ValueError:
    return response.text or f"HTTP {response.status_code}"
  if isinstance(body, dict):
    for key in ('error_description', 'msg', 'message', 'error'):
      if body.get(key):
        return str(body[key])
  return f"HTTP {response.status_code}"


def session_expiring(session, margin=TOKEN_REFRESH_MARGIN, now=None):
  """True when the access token expires within ``margin`` seconds.

  Sessions without an ``expires_at`` are treated as fresh.
  """
  if session is None or not session.expires_at:
    return False
  now = time.time() if now is None else now
  try:
    return float(session.expires_at) - now <= margin
  except (TypeError, ValueError):
    return False


class SupabaseAuthProvider:
  """Auth provider for one browser session.

  Holds the current session in memory and reports changes to listeners as
  (event, session) pairs, in the order they happen.
  """

  def __init__(self, url, anon_key, timeout=HTTP_TIMEOUT, http=None):
    self.url = url.rstrip('/')
    self.anon_key = anon_key
    self.timeout = timeout
    self.http = http or requests.Session()
    self._session = None
    self._listeners = []
    self._lock = threading.Lock()

  def _headers(self, access_token=None):
    headers = {
      'apikey': self.anon_key,
      'Content-Type': 'application/json'
    }
    if access_token:
      headers['Authorization'] = f"Bearer {access_token}"
    return headers

  def _auth_url(self, path):
    return f"{self.url}/auth/v1/{path}"

  def _emit(self, event, session):
    with self._lock:
      listeners = list(self._listeners)
    logger.debug(f"Auth event {event} for {session.user.email if session else None}")
    for listener in listeners:
      try:
        listener(event, session)
      except Exception as e:
        logger.error(f"Auth listener error on {event}: {e}")
        logger.error(f"Traceback: {traceback.format_exc()}")

  def on_auth_state_change(self, callback):
    with self._lock:
      self._listeners.append(callback)

    def _remove(_subscription):
      with self._lock:
        if callback in self._listeners:
          self._listeners.remove(callback)

    return Subscription(_remove)

  def get_session(self):
    with self._lock:
      return self._session

  @property
  def access_token(self):
    session = self.get_session()
    return session.access_token if session else None

  def restore_session(self, access_token, refresh_token=None, expires_at=None):
    """Rebuild the in-memory session from stored tokens.

    A rejected access token is exchanged through ``refresh_token`` when one
    is stored. No event is emitted.
    """
    logger.info("=== RESTORING SESSION ===")
    try:
      response = self.http.get(
        self._auth_url('user'),
        headers=self._headers(access_token),
        timeout=self.timeout
      )
      if response.status_code != 200:
        logger.warning(f"✗ Stored token rejected: {_error_message(response)}")
        if not refresh_token:
          return None
        session, error = self._exchange_refresh_token(refresh_token)
        if error:
          return None
        with self._lock:
          self._session = session
        logger.info(f"✓ Session restored with refreshed token for {session.user.email}")
        return session
      session = Session(access_token, refresh_token, SessionUser.from_json(response.json()), expires_at)
      with self._lock:
        self._session = session
      logger.info(f"✓ Session restored for {session.user.email}")
      return session
    except requests.RequestException as e:
      logger.error(f"✗ Session restore error: {e}")
      return None

  def sign_in_with_password(self, email, password):
    """Returns (session, error)"""
    logger.info(f"=== SIGNING IN: {email} ===")
    try:
      response = self.http.post(
        self._auth_url('token?grant_type=password'),
        json={'email': email, 'password': password},
        headers=self._headers(),
        timeout=self.timeout
      )
    except requests.RequestException as e:
      logger.error(f"✗ Sign-in request failed for {email}: {e}")
      return None, str(e)

    if response.status_code != 200:
      message = _error_message(response)
      logger.warning(f"✗ Sign-in rejected for {email}: {message}")
      return None, message

    session = Session.from_json(response.json())
    with self._lock:
      self._session = session
    logger.info(f"✓ Signed in {email}")
    self._emit(SIGNED_IN, session)
    return session, None

  def _exchange_refresh_token(self, refresh_token):
    """POST the refresh grant. Returns (session, error) without touching state"""
    try:
      response = self.http.post(
        self._auth_url('token?grant_type=refresh_token'),
        json={'refresh_token': refresh_token},
        headers=self._headers(),
        timeout=self.timeout
      )
    except requests.RequestException as e:
      logger.error(f"✗ Token refresh failed: {e}")
      return None, str(e)

    if response.status_code != 200:
      message = _error_message(response)
      logger.warning(f"✗ Token refresh rejected: {message}")
      return None, message

    return Session.from_json(response.json()), None

  def refresh_session(self):
    """Exchange the refresh token. Returns (session, error)"""
    current = self.get_session()
    if not current or not current.refresh_token:
      return None, 'No refresh token'

    session, error = self._exchange_refresh_token(current.refresh_token)
    if error:
      return None, error

    with self._lock:
      self._session = session
    logger.info(f"✓ Access token refreshed for {session.user.email}")
    self._emit(TOKEN_REFRESHED, session)
    return session, None

  def refresh_if_expiring(self, margin=TOKEN_REFRESH_MARGIN, now=None):
    """Refresh the access token when it is about to expire.

    Returns the current session, which is None once a refresh of an already
    expired token fails; that case signs the session out.
    """
    current = self.get_session()
    if not session_expiring(current, margin, now):
      return current

    logger.info("Access token expiring, refreshing")
    session, error = self.refresh_session()
    if session is not None:
      return session

    if session_expiring(current, 0, now):
      logger.warning(f"✗ Session expired and could not be refreshed: {error}")
      with self._lock:
        self._session = None
      self._emit(SIGNED_OUT, None)
      return None
    return current

  def sign_up(self, email, password, data=None):
    """Create an account. Returns (user, error)"""
    logger.info(f"=== SIGNING UP: {email} ===")
    try:
      response = self.http.post(
        self._auth_url('signup'),
        json={'email': email, 'password': password, 'data': data or {}},
        headers=self._headers(),
        timeout=self.timeout
      )
    except requests.RequestException as e:
      logger.error(f"✗ Sign-up request failed for {email}: {e}")
      return None, str(e)

    if response.status_code not in (200, 201):
      message = _error_message(response)
      logger.warning(f"✗ Sign-up rejected for {email}: {message}")
      return None, message

    body = response.json()
    # Depending on email confirmation settings the user is top-level or nested
    user_json = body.get('user') if isinstance(body.get('user'), dict) else body
    logger.info(f"✓ Account created for {email}")
    return SessionUser.from_json(user_json), None

  def sign_out(self):
    """Returns an error message or None. Local state is cleared either way."""
    logger.info("=== SIGNING OUT ===")
    token = self.access_token
    error = None
    if token:
      try:
        response = self.http.post(
          self._auth_url('logout'),
          headers=self._headers(token),
          timeout=self.timeout
        )
        if response.status_code not in (200, 204):
          error = _error_message(response)
      except requests.RequestException as e:
        error = str(e)

    with self._lock:
      self._session = None
    if error:
      logger.warning(f"✗ Sign-out error: {error}")
    self._emit(SIGNED_OUT, None)
    return error

  def update_user(self, password=None, data=None):
    """Returns an error message or None"""
    token = self.access_token
    if not token:
      return 'Not signed in'
    payload = {}
    if password is not None:
      payload['password'] = password
    if data is not None:
      payload['data'] = data
    try:
      response = self.http.put(
        self._auth_url('user'),
        json=payload,
        headers=self._headers(token),
        timeout=self.timeout
      )
    except requests.RequestException as e:
      logger.error(f"✗ User update failed: {e}")
      return str(e)

    if response.status_code != 200:
      message = _error_message(response)
      logger.warning(f"✗ User update rejected: {message}")
      return message

    current = self.get_session()
    if current:
      self._emit(USER_UPDATED, current)
    return None


class ProfileStore:
  """Reads and updates rows of the ``users`` table"""

  def __init__(self, url, anon_key, token_source=None, timeout=HTTP_TIMEOUT, http=None, table='users'):
    self.url = url.rstrip('/')
    self.anon_key = anon_key
    self.token_source = token_source
    self.timeout = timeout
    self.http = http or requests.Session()
    self.table = table

  def _headers(self):
    token = self.token_source() if self.token_source else None
    return {
      'apikey': self.anon_key,
      'Authorization': f"Bearer {token or self.anon_key}",
      'Content-Type': 'application/json'
    }

  def _table_url(self):
    return f"{self.url}/rest/v1/{self.table}"

  def get_profile(self, user_id):
    """Return the row for ``user_id`` or None. Raises BackendError on HTTP failure."""
    try:
      response = self.http.get(
        self._table_url(),
        params={'id': f"eq.{user_id}", 'select': '*', 'limit': 1},
        headers=self._headers(),
        timeout=self.timeout
      )
    except requests.RequestException as e:
      raise BackendError(str(e))

    if response.status_code != 200:
      raise BackendError(_error_message(response), response.status_code)

    rows = response.json()
    if not rows:
      return None
    return rows[0]

  def update_profile(self, user_id, fields):
    try:
      response = self.http.patch(
        self._table_url(),
        params={'id': f"eq.{user_id}"},
        json=fields,
        headers=self._headers(),
        timeout=self.timeout
      )
    except requests.RequestException as e:
      raise BackendError(str(e))

    if response.status_code not in (200, 204):
      raise BackendError(_error_message(response), response.status_code)
    return True
