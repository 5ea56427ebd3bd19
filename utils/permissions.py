"""
Permission helpers for UI gating based on the profile role.

This is a frontend safety net. The backend still enforces row-level access.
Both checks are pure: they only look at the (profile, user) pair passed in.
"""

from typing import Dict, FrozenSet

from utils.roles import ADMIN, HOST, RECEPTION, SECURITY, normalize_role

# Granted while a session exists but its profile has not been resolved yet,
# and to roles missing from the table
DEFAULT_FEATURES: FrozenSet[str] = frozenset({'reception', 'badges'})

ALL_FEATURES: FrozenSet[str] = frozenset({
  'reception', 'badges', 'evacuation', 'approvals', 'blacklist', 'settings',
  'users', 'host-analytics', 'host-badges'
})

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
  # Superuser: every feature, so table lookup and override always agree
  ADMIN: ALL_FEATURES,
  RECEPTION: frozenset({'reception', 'badges'}),
  HOST: frozenset({'approvals', 'host-analytics', 'host-badges'}),
  SECURITY: frozenset({'evacuation', 'blacklist'}),
}


def _profile_role(profile) -> str:
  return normalize_role(getattr(profile, 'role', None))


def get_features_for_role(role: str) -> FrozenSet[str]:
  return ROLE_PERMISSIONS.get(normalize_role(role), DEFAULT_FEATURES)


def has_role(profile, user, required_role) -> bool:
  """Check the profile role against one role or a list of roles.

  A session without a resolved profile passes (still loading); no session
  fails. ``admin`` satisfies any requirement.
  """
  if user is None:
    return False

  role = _profile_role(profile)
  if not role:
    return True

  if role == ADMIN:
    return True

  if isinstance(required_role, (list, tuple, set, frozenset)):
    return role in {normalize_role(r) for r in required_role}

  return role == normalize_role(required_role)


def can_access(profile, user, feature: str) -> bool:
  if user is None:
    return False
  if profile is None:
    return feature in DEFAULT_FEATURES

  role = _profile_role(profile)
  if role == ADMIN:
    return True
  return feature in get_features_for_role(role)


def role_flags(profile) -> Dict[str, bool]:
  role = _profile_role(profile)
  return {
    'is_admin': role == ADMIN,
    'is_reception': role == RECEPTION,
    'is_host': role == HOST,
    'is_security': role == SECURITY,
  }
