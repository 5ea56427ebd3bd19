"""
Turns visitor change events into notifications for the signed-in viewer.
"""
import logging
import threading

from models.notification import (
  ARRIVAL, PRE_REGISTERED, SECURITY_ALERT, WALK_IN, Notification
)
from models.visitor_event import CHECKED_IN, INSERT, UPDATE
from utils.roles import ADMIN, HOST, RECEPTION, SECURITY, normalize_role

logger = logging.getLogger(__name__)


def same_floor(left, right):
  """Loose floor comparison: 2 == '2' == ' 2 '"""
  if left is None or right is None:
    return False
  try:
    return int(str(left).strip()) == int(str(right).strip())
  except ValueError:
    return str(left).strip() == str(right).strip()


def floor_in_assignment(assigned_floors, floor_number):
  """Empty or unset assignment means every floor"""
  if not assigned_floors:
    return True
  if isinstance(assigned_floors, str):
    assigned_floors = [part for part in assigned_floors.strip('[]').split(',') if part.strip()]
    if not assigned_floors:
      return True
  return any(same_floor(floor, floor_number) for floor in assigned_floors)


def _floor_label(visitor):
  return f"Floor {visitor.floor_number}" if visitor.floor_number is not None else 'reception'


def _insert_notice(visitor, for_host):
  if visitor.guest_code:
    if for_host:
      return (PRE_REGISTERED, 'Visitor Pre-registered',
              f"{visitor.display_name} is registered to visit you (code {visitor.guest_code})")
    return (PRE_REGISTERED, 'New Pre-registration',
            f"{visitor.display_name} from {visitor.display_company} is expected on {_floor_label(visitor)}")
  if for_host:
    return (WALK_IN, 'Walk-in Visitor',
            f"{visitor.display_name} from {visitor.display_company} has checked in to see you")
  return (WALK_IN, 'New Walk-in',
          f"{visitor.display_name} from {visitor.display_company} checked in on {_floor_label(visitor)}")


def _host_rule(event, profile):
  visitor = event.new
  if visitor.host_id is None or str(visitor.host_id) != str(profile.id):
    return None
  if event.event_type == INSERT:
    return _insert_notice(visitor, for_host=True)
  if event.event_type == UPDATE and visitor.status == CHECKED_IN:
    return (ARRIVAL, 'Your Visitor Has Arrived',
            f"{visitor.display_name} has checked in and is on the way")
  return None


def _reception_rule(event, profile):
  visitor = event.new
  if not floor_in_assignment(profile.assigned_floors, visitor.floor_number):
    return None
  if event.event_type == INSERT:
    return _insert_notice(visitor, for_host=False)
  if event.event_type == UPDATE and visitor.status == CHECKED_IN and visitor.guest_code:
    return (ARRIVAL, 'Guest Arrived',
            f"{visitor.display_name} ({visitor.guest_code}) checked in on {_floor_label(visitor)}")
  return None


def _admin_rule(event, profile):
  if event.event_type == INSERT:
    return _insert_notice(event.new, for_host=False)
  return None


def _security_rule(event, profile):
  visitor = event.new
  if not visitor.is_blacklisted:
    return None
  return (SECURITY_ALERT, 'Blacklisted Visitor Alert',
          f"{visitor.display_name} is on the blacklist ({_floor_label(visitor)})")


ROLE_RULES = {
  HOST: _host_rule,
  RECEPTION: _reception_rule,
  ADMIN: _admin_rule,
}

SECURITY_VIEWERS = (SECURITY, ADMIN)


def classify_event(event, profile):
  """Return the Notification this event warrants for ``profile``, or None.

  A blacklist alert outranks whatever the viewer's role rule produced; the
  role rules themselves never overlap because a viewer has a single role.
  """
  if event is None or profile is None:
    return None

  role = normalize_role(profile.role)
  notice = None

  role_rule = ROLE_RULES.get(role)
  if role_rule is not None:
    notice = role_rule(event, profile)

  if role in SECURITY_VIEWERS:
    notice = _security_rule(event, profile) or notice

  if notice is None:
    return None

  notification_type, title, message = notice
  if not title:
    return None
  return Notification(notification_type, title, message, guest_code=event.new.guest_code)


class NotificationListener:
  """Keeps one realtime subscription alive for the current profile"""

  def __init__(self, realtime, store, sound_player=None):
    self.realtime = realtime
    self.store = store
    self.sound_player = sound_player if sound_player is not None else store.request_chime
    self._lock = threading.Lock()
    self._profile = None
    self._subscription = None
    self._token = 0

  def bind(self, profile):
    """Swap to ``profile``; the previous subscription is always torn down first"""
    with self._lock:
      previous = self._subscription
      self._subscription = None
      self._profile = profile
      self._token += 1
      token = self._token

    if previous is not None:
      previous.unsubscribe()
      logger.info("🔕 Removed notification subscription")

    if profile is None or self.realtime is None:
      return

    subscription = self.realtime.subscribe_to_visitors(
      lambda event: self.handle_event(event, token)
    )
    with self._lock:
      if token == self._token:
        self._subscription = subscription
        subscription = None
    if subscription is not None:
      # Another bind() won the race
      subscription.unsubscribe()
      return
    logger.info(f"🔔 Notification subscription for {profile.email} ({profile.role})")

  def close(self):
    self.bind(None)

  def handle_event(self, event, token=None):
    with self._lock:
      if token is not None and token != self._token:
        return None
      profile = self._profile

    notification = classify_event(event, profile)
    if notification is None:
      return None

    self.store.add(notification)
    logger.info(f"New notification [{notification.type}] {notification.title}")
    self._play_sound(notification)
    return notification

  def _play_sound(self, notification):
    try:
      self.sound_player(notification)
    except Exception as e:
      logger.debug(f"Could not play notification sound: {e}")
