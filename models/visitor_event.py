"""
Visitor change events delivered by the realtime feed.
"""

INSERT = 'insert'
UPDATE = 'update'

CHECKED_IN = 'checked_in'

_TRUTHY = {'true', 'yes', '1', 'y'}


def _as_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


class VisitorSnapshot:
    """The visitor row as it looks after (or before) a change"""

    def __init__(self, visitor_id=None, name=None, host_id=None, floor_number=None,
                 status=None, guest_code=None, company=None, is_blacklisted=False):
        self.id = visitor_id
        self.name = name
        self.host_id = host_id
        self.floor_number = floor_number
        self.status = status
        self.guest_code = guest_code
        self.company = company
        self.is_blacklisted = is_blacklisted

    @classmethod
    def from_record(cls, record):
        record = record or {}
        return cls(
            visitor_id=record.get('id'),
            name=record.get('name') or record.get('full_name'),
            host_id=record.get('host_id'),
            floor_number=record.get('floor_number'),
            status=record.get('status'),
            guest_code=record.get('guest_code') or None,
            company=record.get('company'),
            is_blacklisted=_as_bool(record.get('is_blacklisted', False))
        )

    @property
    def display_name(self):
        return self.name or 'A visitor'

    @property
    def display_company(self):
        return self.company or 'Unknown Company'


class VisitorEvent:
    """An INSERT or UPDATE on the visitors table"""

    def __init__(self, event_type, new, old=None):
        self.event_type = (event_type or '').lower()
        self.new = new
        self.old = old

    @classmethod
    def from_change(cls, data):
        """Build from a ``postgres_changes`` payload's ``data`` member.

        Returns None for anything that is not an insert or update.
        """
        data = data or {}
        event_type = (data.get('type') or data.get('eventType') or '').lower()
        if event_type not in (INSERT, UPDATE):
            return None
        record = data.get('record') or data.get('new') or {}
        old_record = data.get('old_record') or data.get('old')
        return cls(
            event_type,
            VisitorSnapshot.from_record(record),
            VisitorSnapshot.from_record(old_record) if old_record else None
        )

    def __repr__(self):
        return f"VisitorEvent({self.event_type!r}, visitor={self.new.id!r})"
