"""
Session/profile resolver for one browser session.

Keeps the (user, profile, loading) triple in step with the auth provider and
resolves the stored profile for whoever is signed in.
"""
import logging
import queue
import threading
import traceback

from config.settings import DEFAULT_RECEPTION_FLOORS, PROFILE_FETCH_TIMEOUT
from models.profile import Profile, ProfileResult, utc_now_iso
from services.supabase_service import SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED
from utils.permissions import can_access, has_role
from utils.roles import RECEPTION, infer_role_from_email, normalize_role

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_EMAIL = 'user@localhost'


class ProfileFetchTimeout(Exception):
  pass


class AuthState:
  """Immutable view of the resolver at one point in time"""

  def __init__(self, user=None, profile=None, loading=False, profile_kind=None):
    self.user = user
    self.profile = profile
    self.loading = loading
    self.profile_kind = profile_kind

  @property
  def is_authenticated(self):
    return self.user is not None

  def has_role(self, required_role):
    return has_role(self.profile, self.user, required_role)

  def can_access(self, feature):
    return can_access(self.profile, self.user, feature)


def minimal_profile(user_id):
  """Profile used when the session carries no email at all"""
  return Profile(user_id, DEFAULT_FALLBACK_EMAIL, full_name='User', role=RECEPTION)


def generic_fallback_profile(user_id):
  """Profile used after a timeout or unexpected failure"""
  return Profile(user_id, 'unknown', full_name='User', role=RECEPTION)


def synthesize_profile(user_id, session_user):
  """Build a profile from session metadata when storage has no row.

  The result is not written back to storage.
  """
  metadata = session_user.user_metadata or {}
  if metadata.get('role'):
    role = normalize_role(metadata['role'])
    logger.info(f"Using role from user metadata: {role}")
  else:
    role = infer_role_from_email(session_user.email)
    logger.info(f"Inferred fallback role {role} for {session_user.email}")

  floors = list(DEFAULT_RECEPTION_FLOORS) if role == RECEPTION else []

  return Profile(
    user_id,
    session_user.email,
    full_name=metadata.get('full_name') or session_user.email.split('@')[0],
    role=role,
    tenant_id=None,
    assigned_floors=floors,
    created_at=session_user.created_at or utc_now_iso()
  )


class AuthSession:
  """Resolver service passed explicitly to routes, guards and listeners"""

  def __init__(self, auth_provider, profile_store, profile_timeout=PROFILE_FETCH_TIMEOUT):
    self.auth_provider = auth_provider
    self.profile_store = profile_store
    self.profile_timeout = profile_timeout
    self.user = None
    self.profile_result = None
    self.loading = True
    self._generation = 0
    self._lock = threading.RLock()
    self._auth_subscription = None
    self._profile_listeners = []

  # -- lifecycle -----------------------------------------------------------

  def initialize(self):
    """Subscribe to auth events and load whatever session already exists"""
    logger.info("=== INITIALIZING AUTH SESSION ===")
    if self._auth_subscription is None:
      self._auth_subscription = self.auth_provider.on_auth_state_change(self._on_auth_event)

    try:
      session = self.auth_provider.get_session()
    except Exception as e:
      logger.error(f"✗ Session check error: {e}")
      session = None

    if not session or not session.user:
      logger.info("No session found")
      self._clear(loading=False)
      return self.snapshot()

    logger.info(f"Session found: {session.user.email}")
    with self._lock:
      self.user = session.user
      self.loading = True
    self._load_profile(session.user)
    return self.snapshot()

  def teardown(self):
    logger.info("=== TEARING DOWN AUTH SESSION ===")
    subscription = self._auth_subscription
    self._auth_subscription = None
    if subscription is not None:
      subscription.unsubscribe()
    with self._lock:
      self._profile_listeners = []

  def add_profile_listener(self, callback):
    """callback(profile) runs after every committed profile change"""
    with self._lock:
      self._profile_listeners.append(callback)

  # -- state ---------------------------------------------------------------

  @property
  def profile(self):
    with self._lock:
      return self.profile_result.profile if self.profile_result else None

  def snapshot(self):
    with self._lock:
      result = self.profile_result
      return AuthState(
        user=self.user,
        profile=result.profile if result else None,
        loading=self.loading,
        profile_kind=result.kind if result else None
      )

  def has_role(self, required_role):
    return self.snapshot().has_role(required_role)

  def can_access(self, feature):
    return self.snapshot().can_access(feature)

  def _notify_profile_listeners(self, profile):
    with self._lock:
      listeners = list(self._profile_listeners)
    for listener in listeners:
      try:
        listener(profile)
      except Exception as e:
        logger.error(f"Profile listener error: {e}")
        logger.error(f"Traceback: {traceback.format_exc()}")

  def _clear(self, loading):
    with self._lock:
      self._generation += 1
      had_profile = self.profile_result is not None
      self.user = None
      self.profile_result = None
      self.loading = loading
    if had_profile:
      self._notify_profile_listeners(None)

  # -- auth events ---------------------------------------------------------

  def _on_auth_event(self, event, session):
    logger.info(f"Auth event: {event}")

    if event in (SIGNED_IN, TOKEN_REFRESHED) and session and session.user:
      with self._lock:
        if self.user is not None and self.user.id == session.user.id:
          logger.debug("User already loaded, skipping profile fetch for token refresh")
          return
        self.user = session.user
        self.loading = True
      logger.info(f"User signed in: {session.user.email}")
      self._load_profile(session.user)

    elif event == SIGNED_OUT:
      logger.info("User signed out")
      self._clear(loading=False)

  def _load_profile(self, session_user):
    """Resolve and commit the profile unless the session moved on meanwhile"""
    with self._lock:
      self._generation += 1
      generation = self._generation

    result = self.resolve_profile(session_user.id, session_user)

    with self._lock:
      current = self.user
      if generation != self._generation or current is None or current.id != session_user.id:
        logger.warning(f"Discarding stale profile for {session_user.id} (generation {generation})")
        return None
      self.profile_result = result
      self.loading = False

    logger.info(f"Profile committed: role={result.profile.role} kind={result.kind}")
    self._notify_profile_listeners(result.profile)
    return result

  # -- profile resolution --------------------------------------------------

  def _query_profile(self, user_id):
    """Run the storage query, giving up after ``profile_timeout`` seconds.

    The request itself keeps running in its worker thread after a timeout.
    """
    result_queue = queue.Queue(maxsize=1)

    def worker():
      try:
        result_queue.put(('ok', self.profile_store.get_profile(user_id)))
      except Exception as e:
        result_queue.put(('error', e))

    threading.Thread(target=worker, daemon=True, name=f"ProfileFetch-{user_id}").start()

    try:
      status, payload = result_queue.get(timeout=self.profile_timeout)
    except queue.Empty:
      raise ProfileFetchTimeout(f"Profile query exceeded {self.profile_timeout}s")

    if status == 'error':
      raise payload
    return payload

  def resolve_profile(self, user_id, session_user=None):
    """Return a ProfileResult for ``user_id``. Never raises."""
    logger.info(f"=== RESOLVING PROFILE: {user_id} ===")
    try:
      current_user = session_user or self.user

      if current_user is None or not current_user.email:
        logger.info("No current user email, using basic profile")
        return ProfileResult.synthesized(minimal_profile(user_id), 'no_email')

      reason = 'not_found'
      row = None
      try:
        row = self._query_profile(user_id)
      except ProfileFetchTimeout as e:
        logger.error(f"✗ {e}")
        return ProfileResult.failed(generic_fallback_profile(user_id), 'timeout')
      except Exception as e:
        logger.warning(f"⚠ Database profile fetch error: {e}")
        reason = 'query_error'

      if row:
        profile = Profile.from_row(row)
        if profile.id is None:
          profile.id = user_id
        logger.info(f"✓ Database profile found: role={profile.role}")
        return ProfileResult.resolved(profile)

      logger.info("⚠ No profile in database, creating fallback profile")
      return ProfileResult.synthesized(synthesize_profile(user_id, current_user), reason)

    except Exception as e:
      logger.error(f"✗ Error resolving profile: {e}")
      logger.error(f"Traceback: {traceback.format_exc()}")
      return ProfileResult.failed(generic_fallback_profile(user_id), 'unexpected_error')

  # -- auth operations -----------------------------------------------------

  def sign_in(self, email, password):
    """Returns {'user', 'profile', 'error'}; failures come back as 'error'"""
    logger.info(f"=== SIGN IN: {email} ===")
    with self._lock:
      self.loading = True
    try:
      session, error = self.auth_provider.sign_in_with_password(email, password)
      if error or session is None:
        logger.error(f"Login failed: {error}")
        with self._lock:
          self.loading = False
        return {'user': None, 'profile': None, 'error': error or 'Authentication failed'}

      user = session.user
      with self._lock:
        already_loaded = (
          self.user is not None and self.user.id == user.id
          and self.profile_result is not None
        )
        if not already_loaded:
          self.user = user

      if already_loaded:
        logger.debug("Profile already resolved by the sign-in event")
        result = self.profile_result
      else:
        result = self._load_profile(user) or self.profile_result

      with self._lock:
        self.loading = False
      profile = result.profile if result else None
      logger.info(f"✓ Login successful, profile role: {profile.role if profile else None}")
      return {'user': user, 'profile': profile, 'error': None}

    except Exception as e:
      logger.error(f"✗ Login error: {e}")
      logger.error(f"Traceback: {traceback.format_exc()}")
      with self._lock:
        self.loading = False
      return {'user': None, 'profile': None, 'error': str(e)}

  def sign_up(self, email, password, full_name=None, role=RECEPTION, tenant_id=None):
    """Create an account. Returns {'user', 'error', 'warning'}.

    Once the provider has created the account ``error`` stays None; a failed
    tenant assignment comes back as ``warning`` instead.
    """
    try:
      user, error = self.auth_provider.sign_up(email, password, {
        'full_name': full_name,
        'role': normalize_role(role)
      })
    except Exception as e:
      logger.error(f"✗ Sign up error: {e}")
      return {'user': None, 'error': str(e), 'warning': None}
    if error:
      return {'user': None, 'error': error, 'warning': None}

    warning = None
    if user is not None and tenant_id:
      try:
        self.profile_store.update_profile(user.id, {'tenant_id': tenant_id})
      except Exception as e:
        logger.error(f"✗ Tenant assignment failed for {email}: {e}")
        warning = f"Account created, but assigning tenant {tenant_id} failed: {e}"
    return {'user': user, 'error': None, 'warning': warning}

  def sign_out(self):
    try:
      error = self.auth_provider.sign_out()
      if error:
        logger.error(f"Sign out error: {error}")
    except Exception as e:
      logger.error(f"Sign out error: {e}")
    self._clear(loading=False)

  def update_password(self, new_password):
    """Returns an error message or None"""
    try:
      return self.auth_provider.update_user(password=new_password)
    except Exception as e:
      logger.error(f"✗ Password update error: {e}")
      return str(e)
