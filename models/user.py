"""
Session and user models for Flask-Login integration.
"""
from flask_login import UserMixin


class SessionUser:
    """Authenticated principal as reported by the auth provider"""

    def __init__(self, user_id, email=None, user_metadata=None, created_at=None):
        self.id = user_id
        self.email = email or ''
        self.user_metadata = user_metadata or {}
        self.created_at = created_at

    @classmethod
    def from_json(cls, data):
        data = data or {}
        return cls(
            data.get('id'),
            data.get('email'),
            data.get('user_metadata') or {},
            data.get('created_at')
        )

    def __repr__(self):
        return f"SessionUser(id={self.id!r}, email={self.email!r})"


class Session:
    """Token pair plus the user it was issued for. Held in memory only."""

    def __init__(self, access_token, refresh_token, user, expires_at=None):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.user = user
        self.expires_at = expires_at

    @classmethod
    def from_json(cls, data):
        return cls(
            data.get('access_token'),
            data.get('refresh_token'),
            SessionUser.from_json(data.get('user')),
            data.get('expires_at')
        )


class DashboardUser(UserMixin):
    """Logged-in dashboard user, combining the session user and its profile"""

    def __init__(self, session_user, profile=None):
        self.id = session_user.id
        self.email = session_user.email
        self.profile = profile

    def get_id(self):
        return str(self.id)
