"""
Profile model and the tagged result returned by profile resolution.
"""
import json
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

RESOLVED = 'resolved'
SYNTHESIZED = 'synthesized'
FAILED = 'failed'


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat()


def decode_assigned_floors(value):
    """Decode a floor assignment stored as JSON text.

    Lists pass through untouched. A string that is not valid JSON (or does not
    decode to a list) is logged and returned as-is.
    """
    if value is None:
        return []
    if not isinstance(value, str):
        return value
    try:
        decoded = json.loads(value)
    except ValueError as e:
        logger.error(f"✗ Failed to parse assigned_floors {value!r}: {e}")
        return value
    if not isinstance(decoded, list):
        logger.error(f"✗ assigned_floors did not decode to a list: {value!r}")
        return value
    return decoded


class Profile:
    """Durable identity record for a principal"""

    def __init__(self, profile_id, email, full_name=None, role='reception',
                 tenant_id=None, assigned_floors=None, created_at=None):
        self.id = profile_id
        self.email = email
        self.full_name = full_name
        self.role = role
        self.tenant_id = tenant_id
        self.assigned_floors = assigned_floors if assigned_floors is not None else []
        self.created_at = created_at or utc_now_iso()

    @classmethod
    def from_row(cls, row):
        return cls(
            row.get('id'),
            row.get('email'),
            full_name=row.get('full_name'),
            role=row.get('role') or 'reception',
            tenant_id=row.get('tenant_id'),
            assigned_floors=decode_assigned_floors(row.get('assigned_floors')),
            created_at=row.get('created_at')
        )

    def __repr__(self):
        return f"Profile(id={self.id!r}, role={self.role!r}, email={self.email!r})"


class ProfileResult:
    """Outcome of profile resolution.

    ``profile`` is never None. ``kind`` tells callers whether it came from
    storage (resolved), was built locally (synthesized), or is the generic
    fallback after an error (failed).
    """

    def __init__(self, kind, profile, reason=None):
        self.kind = kind
        self.profile = profile
        self.reason = reason

    @classmethod
    def resolved(cls, profile):
        return cls(RESOLVED, profile)

    @classmethod
    def synthesized(cls, profile, reason):
        return cls(SYNTHESIZED, profile, reason)

    @classmethod
    def failed(cls, profile, reason):
        return cls(FAILED, profile, reason)

    @property
    def trusted(self):
        return self.kind == RESOLVED

    def __repr__(self):
        return f"ProfileResult(kind={self.kind!r}, reason={self.reason!r}, profile={self.profile!r})"
