"""
Page gating driven by the current browser's auth state.

The guard keeps no state of its own: every decision is computed from an
AuthState snapshot.
"""
import logging
from functools import wraps

from flask import current_app, redirect, render_template, request, session, url_for

from services.auth_session import AuthState

logger = logging.getLogger(__name__)

LOADING = 'loading'
REDIRECT_LOGIN = 'redirect_login'
ACCESS_DENIED = 'access_denied'
RESTRICTED = 'restricted'
ALLOWED = 'allowed'

SESSION_KEY = 'dashboard_sid'
TOKENS_KEY = 'auth_tokens'


def evaluate_guard(state, required_role=None, feature=None):
  # Never redirect while loading, or a signed-in user would bounce to /login
  if state.loading:
    return LOADING
  if not state.is_authenticated:
    return REDIRECT_LOGIN
  if required_role and not state.has_role(required_role):
    return ACCESS_DENIED
  if feature and not state.can_access(feature):
    return RESTRICTED
  return ALLOWED


def get_registry():
  return current_app.extensions['dashboard_registry']


def store_tokens(provider_session):
  """Keep the browser's token pair in its cookie session, or drop it"""
  if provider_session is None:
    session.pop(TOKENS_KEY, None)
    return
  tokens = {
    'access_token': provider_session.access_token,
    'refresh_token': provider_session.refresh_token,
    'expires_at': provider_session.expires_at
  }
  if session.get(TOKENS_KEY) != tokens:
    session[TOKENS_KEY] = tokens


def current_context():
  """The DashboardContext for this browser, restored from stored tokens if needed.

  Access tokens close to expiry are refreshed here and the new pair written
  back to the cookie session.
  """
  key = session.get(SESSION_KEY)
  if not key:
    return None
  registry = get_registry()
  context = registry.get(key)
  tokens = session.get(TOKENS_KEY)
  if context is None:
    if not tokens or not tokens.get('access_token'):
      return None
    logger.info("Restoring dashboard context from stored tokens")
    context = registry.restore(key, tokens['access_token'], tokens.get('refresh_token'),
                               tokens.get('expires_at'))

  if tokens:
    store_tokens(context.auth_provider.refresh_if_expiring())
  return context


def current_auth_state():
  context = current_context()
  if context is None:
    return AuthState(loading=False)
  return context.auth_session.snapshot()


def protected(required_role=None, feature=None):
  """Gate a view on the resolver state, an optional role and an optional feature"""
  def decorator(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
      state = current_auth_state()
      decision = evaluate_guard(state, required_role, feature)

      if decision == LOADING:
        return render_template('loading.html'), 202

      if decision == REDIRECT_LOGIN:
        logger.info(f"Not authenticated, redirecting {request.path} to login")
        return redirect(url_for('auth.login', next=request.path))

      if decision == ACCESS_DENIED:
        logger.info(f"Access denied to {request.path}: required={required_role} role={state.profile.role if state.profile else None}")
        return render_template('access_denied.html', required_role=required_role), 403

      if decision == RESTRICTED:
        logger.info(f"Feature {feature} restricted for role {state.profile.role if state.profile else None}")
        return render_template('restricted.html', feature=feature), 403

      return view(*args, **kwargs)
    return wrapped
  return decorator
