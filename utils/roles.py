"""
Role vocabulary shared by permissions, profile synthesis and the UI.
"""

ADMIN = 'admin'
RECEPTION = 'reception'
HOST = 'host'
SECURITY = 'security'

# Roles offered when creating accounts
USER_ROLES = [ADMIN, RECEPTION, HOST, SECURITY]

# Landing page endpoint per role
ROLE_HOME = {
  ADMIN: 'main.admin_dashboard',
  RECEPTION: 'main.reception_dashboard',
  HOST: 'main.host_dashboard',
  SECURITY: 'main.security_dashboard'
}


def normalize_role(role):
  return (role or '').strip().lower()


def infer_role_from_email(email):
  """Guess a role from the email address (fallback only, not authoritative)"""
  address = (email or '').lower()
  if ADMIN in address:
    return ADMIN
  if SECURITY in address:
    return SECURITY
  if HOST in address:
    return HOST
  return RECEPTION


def home_endpoint_for(role):
  return ROLE_HOME.get(normalize_role(role), ROLE_HOME[RECEPTION])
