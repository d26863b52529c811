"""
Key/value backends for the guest store.

Both mirror the browser localStorage surface (string keys, string values).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from ..database import (
    LocalBase,
    LocalStorageEntry,
    create_engine_for_url,
    make_session_factory,
    session_scope,
)
from ..errors import StorageWriteError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...


class MemoryKeyValueStore:
    """Process-local store; contents vanish with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)


class SqliteKeyValueStore:
    """
    Durable store: one local_storage table in a SQLite file.

    Write failures (disk full, read-only file, locked database) surface as
    StorageWriteError. Read failures are returned as missing values.
    """

    def __init__(self, db_path: Path):
        resolved = Path(db_path).resolve()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine_for_url(f"sqlite:///{resolved}")
        self.session_factory = make_session_factory(self.engine)
        LocalBase.metadata.create_all(bind=self.engine)

    def get_item(self, key: str) -> Optional[str]:
        try:
            with session_scope(self.session_factory) as session:
                entry = session.get(LocalStorageEntry, key)
                return entry.value if entry else None
        except SQLAlchemyError as e:
            logger.error("Error reading %s: %s", key, e)
            return None

    def set_item(self, key: str, value: str) -> None:
        try:
            with session_scope(self.session_factory) as session:
                entry = session.get(LocalStorageEntry, key)
                if entry:
                    entry.value = value
                else:
                    session.add(LocalStorageEntry(key=key, value=value))
        except SQLAlchemyError as e:
            raise StorageWriteError(f"Error saving {key}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            with session_scope(self.session_factory) as session:
                session.query(LocalStorageEntry).filter(LocalStorageEntry.key == key).delete()
        except SQLAlchemyError as e:
            raise StorageWriteError(f"Error removing {key}: {e}") from e

    def keys(self) -> List[str]:
        with session_scope(self.session_factory) as session:
            return [key for (key,) in session.query(LocalStorageEntry.key).all()]
