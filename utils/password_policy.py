"""
Password strength rules applied before passwords are sent to the auth provider.
"""
import re
import secrets
import string

SYMBOLS = '!@#$%^&*()_+-=[]{}|;:,.<>?'


def validate_password_strength(password):
  """Return {'is_valid', 'strength', 'feedback'} for ``password``"""
  result = {'is_valid': False, 'strength': 'weak', 'feedback': []}

  if not password or len(password) < 8:
    result['feedback'].append('Password must be at least 8 characters long')
    return result

  checks = {
    'Include uppercase letters': re.search(r'[A-Z]', password),
    'Include lowercase letters': re.search(r'[a-z]', password),
    'Include numbers': re.search(r'\d', password),
    'Include special characters': any(c in SYMBOLS for c in password),
  }
  result['feedback'] = [hint for hint, ok in checks.items() if not ok]
  met = sum(1 for ok in checks.values() if ok)

  if met >= 4 and len(password) >= 12:
    result.update(strength='strong', is_valid=True)
  elif met >= 3 and len(password) >= 10:
    result.update(strength='medium', is_valid=True)
  elif met >= 2:
    result.update(strength='weak', is_valid=True)

  return result


def generate_secure_password(length=12):
  """Random password containing every character class"""
  if length < 4:
    raise ValueError("length must be at least 4")
  pools = [string.ascii_uppercase, string.ascii_lowercase, string.digits, SYMBOLS]
  chars = [secrets.choice(pool) for pool in pools]
  alphabet = ''.join(pools)
  chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
  secrets.SystemRandom().shuffle(chars)
  return ''.join(chars)
