"""
Per-browser dashboard contexts.

Each browser session gets its own auth provider, resolver, notification store
and listener. The realtime connection is shared.
"""
import logging
import threading
import time
import uuid

from config.settings import (
  NOTIFICATION_CAPACITY, PROFILE_FETCH_TIMEOUT, SESSION_IDLE_TIMEOUT, SUPABASE_ANON_KEY, SUPABASE_URL
)
from models.notification import NotificationStore
from services.auth_session import AuthSession
from services.notification_listener import NotificationListener
from services.supabase_service import ProfileStore, SupabaseAuthProvider

logger = logging.getLogger(__name__)


class DashboardContext:

  def __init__(self, auth_provider, auth_session, notifications, listener):
    self.auth_provider = auth_provider
    self.auth_session = auth_session
    self.notifications = notifications
    self.listener = listener
    # Realtime events follow whichever profile is committed
    auth_session.add_profile_listener(listener.bind)

  def start(self):
    self.auth_session.initialize()
    return self

  def close(self):
    self.listener.close()
    self.auth_session.teardown()
    self.notifications.clear()


def build_supabase_context(realtime=None, url=SUPABASE_URL, anon_key=SUPABASE_ANON_KEY,
                           capacity=NOTIFICATION_CAPACITY, profile_timeout=PROFILE_FETCH_TIMEOUT):
  """Default context factory wired to the hosted backend"""
  provider = SupabaseAuthProvider(url, anon_key)
  profiles = ProfileStore(url, anon_key, token_source=lambda: provider.access_token)
  store = NotificationStore(capacity)
  return DashboardContext(
    provider,
    AuthSession(provider, profiles, profile_timeout=profile_timeout),
    store,
    NotificationListener(realtime, store)
  )


class SessionRegistry:
  """Maps browser session ids to their DashboardContext.

  Browsers that stop making requests never log out, so every lookup also
  closes contexts left idle longer than ``idle_timeout`` seconds.
  """

  def __init__(self, factory, idle_timeout=SESSION_IDLE_TIMEOUT, clock=time.monotonic):
    self.factory = factory
    self.idle_timeout = idle_timeout
    self.clock = clock
    self._contexts = {}
    self._last_seen = {}
    self._lock = threading.Lock()

  @staticmethod
  def new_key():
    return uuid.uuid4().hex

  def _register(self, key, context):
    with self._lock:
      previous = self._contexts.get(key)
      self._contexts[key] = context
      self._last_seen[key] = self.clock()
    if previous is not None:
      previous.close()

  def get(self, key):
    if not key:
      return None
    self.evict_idle()
    with self._lock:
      context = self._contexts.get(key)
      if context is not None:
        self._last_seen[key] = self.clock()
      return context

  def create(self, key):
    """Build, start and register a fresh context, replacing any existing one"""
    context = self.factory()
    self._register(key, context)
    context.start()
    logger.info(f"Created dashboard context {key[:8]}")
    return context

  def restore(self, key, access_token, refresh_token=None, expires_at=None):
    """Rebuild a context from tokens kept in the browser's cookie session"""
    context = self.factory()
    context.auth_provider.restore_session(access_token, refresh_token, expires_at)
    self._register(key, context)
    context.start()
    logger.info(f"Restored dashboard context {key[:8]}")
    return context

  def get_or_create(self, key):
    context = self.get(key)
    if context is None:
      context = self.create(key)
    return context

  def discard(self, key):
    with self._lock:
      context = self._contexts.pop(key, None)
      self._last_seen.pop(key, None)
    if context is not None:
      context.close()
      logger.info(f"Discarded dashboard context {key[:8]}")

  def evict_idle(self):
    """Close contexts not looked up within ``idle_timeout``. Returns how many."""
    if not self.idle_timeout:
      return 0
    cutoff = self.clock() - self.idle_timeout
    with self._lock:
      stale = [key for key, seen in self._last_seen.items() if seen < cutoff]
      evicted = [(key, self._contexts.pop(key)) for key in stale]
      for key in stale:
        del self._last_seen[key]
    for key, context in evicted:
      context.close()
      logger.info(f"Evicted idle dashboard context {key[:8]}")
    return len(evicted)

  def __len__(self):
    with self._lock:
      return len(self._contexts)

  def close_all(self):
    with self._lock:
      contexts = list(self._contexts.values())
      self._contexts.clear()
      self._last_seen.clear()
    for context in contexts:
      context.close()
