"""Session record models and the file-backed store."""

from .models import SESSION_INFO_SCHEMA_VERSION, Session, SessionIntegrityError, SessionType
from .store import SessionStore, SessionStoreError

__all__ = [
    "SESSION_INFO_SCHEMA_VERSION",
    "Session",
    "SessionIntegrityError",
    "SessionStore",
    "SessionStoreError",
    "SessionType",
]
