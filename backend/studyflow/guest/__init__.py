"""
Guest mode: local-first storage, session mode and migration into an account.
"""

from .local_store import LocalGuestStore, open_guest_store
from .migration import migrate_guest_data
from .session import SessionController, SessionMode, SessionState
from .storage_backends import MemoryKeyValueStore, SqliteKeyValueStore

__all__ = [
    "LocalGuestStore",
    "MemoryKeyValueStore",
    "SessionController",
    "SessionMode",
    "SessionState",
    "SqliteKeyValueStore",
    "migrate_guest_data",
    "open_guest_store",
]
