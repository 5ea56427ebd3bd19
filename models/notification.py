"""
Notification records and the per-session store that holds them.
"""
import threading
import time
from collections import deque
from datetime import datetime, timezone

WALK_IN = 'walk_in'
PRE_REGISTERED = 'pre_registered'
ARRIVAL = 'arrival'
SECURITY_ALERT = 'security'
VISITOR = 'visitor'

NOTIFICATION_TYPES = (WALK_IN, PRE_REGISTERED, ARRIVAL, SECURITY_ALERT, VISITOR)

_id_lock = threading.Lock()
_last_id = 0


def next_notification_id():
    """Millisecond timestamp, bumped when two ids land in the same millisecond"""
    global _last_id
    with _id_lock:
        candidate = int(time.time() * 1000)
        _last_id = max(candidate, _last_id + 1)
        return _last_id


class Notification:

    def __init__(self, notification_type, title, message, guest_code=None,
                 notification_id=None, created_at=None, read=False):
        self.id = notification_id if notification_id is not None else next_notification_id()
        self.type = notification_type
        self.title = title
        self.message = message
        self.guest_code = guest_code
        self.created_at = created_at or datetime.now(timezone.utc).isoformat()
        self.read = read

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'guest_code': self.guest_code,
            'created_at': self.created_at,
            'read': self.read
        }

    def __repr__(self):
        return f"Notification(id={self.id}, type={self.type!r}, read={self.read})"


class NotificationStore:
    """Newest-first list of notifications, capped at ``capacity`` entries.

    When full, adding a notification evicts the oldest one.
    """

    def __init__(self, capacity=100):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._items = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._chime_pending = False

    def add(self, notification):
        with self._lock:
            self._items.appendleft(notification)
        return notification

    def mark_read(self, notification_id):
        with self._lock:
            for item in self._items:
                if item.id == notification_id:
                    item.read = True
                    return True
        return False

    def mark_all_read(self):
        with self._lock:
            for item in self._items:
                item.read = True

    def items(self):
        with self._lock:
            return list(self._items)

    @property
    def unread_count(self):
        with self._lock:
            return sum(1 for item in self._items if not item.read)

    def __len__(self):
        with self._lock:
            return len(self._items)

    def clear(self):
        with self._lock:
            self._items.clear()
            self._chime_pending = False

    # Sound cue handed to the browser on its next poll
    def request_chime(self, notification=None):
        with self._lock:
            self._chime_pending = True

    def consume_chime(self):
        with self._lock:
            pending = self._chime_pending
            self._chime_pending = False
            return pending
