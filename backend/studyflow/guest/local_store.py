"""
Local guest store.

Keeps one guest's tasks, notes, study subjects and AI chat messages in a
localStorage-style key/value backend, under a fixed key prefix:

    <prefix>tasks      JSON array, newest first
    <prefix>notes      JSON array, newest first
    <prefix>subjects   JSON array, newest first
    <prefix>ai_chats   JSON array, chronological, capped
    <prefix>is_guest   "true" / "false"
    <prefix>id         guest identifier

Every mutation rewrites the whole collection blob. Items that fail
validation are hidden from readers but written back as they were found.
A blob that is not a JSON array reads as empty. A lock per store instance
serializes read-modify-write cycles; separate processes sharing the same
backend are not coordinated (last writer wins).
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from uuid import uuid4

from pydantic import BaseModel, ValidationError

from ..config import Config
from ..errors import StorageDecodeError
from ..services.models import (
    FIELDS_MODELS,
    GUEST_MODELS,
    Collection,
    GuestIdentity,
    GuestRecord,
    GuestStats,
    Timestamp,
)
from .storage_backends import KeyValueStore, SqliteKeyValueStore

logger = logging.getLogger(__name__)

IS_GUEST_SUFFIX = "is_guest"
GUEST_ID_SUFFIX = "id"

# Keys a partial update may never overwrite
_PROTECTED_FIELDS = {"id", "local_id", "createdAt", "created_at"}


@dataclass(frozen=True)
class CollectionLayout:
    key_suffix: str
    id_tag: str
    newest_first: bool
    capped: bool = False


COLLECTION_LAYOUTS: Dict[Collection, CollectionLayout] = {
    Collection.TASKS: CollectionLayout("tasks", "task", newest_first=True),
    Collection.NOTES: CollectionLayout("notes", "note", newest_first=True),
    Collection.SUBJECTS: CollectionLayout("subjects", "subject", newest_first=True),
    Collection.AI_CHATS: CollectionLayout("ai_chats", "ai", newest_first=False, capped=True),
}

CollectionName = Union[Collection, str]


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def _random_token() -> str:
    return uuid4().hex[:9]


# A stored entry is either a decoded record or the raw JSON item that failed
# validation; raw items are written back untouched.
Entry = Union[GuestRecord, Any]


def _entry_id(entry: Entry) -> Optional[str]:
    if isinstance(entry, GuestRecord):
        return entry.local_id
    if isinstance(entry, dict):
        return entry.get("id")
    return None


class LocalGuestStore:
    """
    Guest-mode persistence for the four user collections plus guest identity.
    """

    def __init__(
        self,
        backend: KeyValueStore,
        prefix: Optional[str] = None,
        ai_chat_limit: Optional[int] = None,
    ):
        self.backend = backend
        self.prefix = prefix if prefix is not None else Config.GUEST_KEY_PREFIX
        self.ai_chat_limit = (
            ai_chat_limit if ai_chat_limit is not None else Config.AI_CHAT_HISTORY_LIMIT
        )
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def key_for(self, suffix: str) -> str:
        return f"{self.prefix}{suffix}"

    @property
    def storage_keys(self) -> List[str]:
        suffixes = [layout.key_suffix for layout in COLLECTION_LAYOUTS.values()]
        suffixes += [IS_GUEST_SUFFIX, GUEST_ID_SUFFIX]
        return [self.key_for(s) for s in suffixes]

    # ------------------------------------------------------------------
    # Guest identity
    # ------------------------------------------------------------------

    def generate_guest_id(self) -> str:
        """Return the stored guest id, creating it on first use."""
        key = self.key_for(GUEST_ID_SUFFIX)
        with self._lock:
            existing = self.backend.get_item(key)
            if existing:
                return existing

            new_id = f"guest_{_epoch_ms()}_{_random_token()}"
            self.backend.set_item(key, new_id)
            logger.info("Created guest identity %s", new_id)
            return new_id

    def guest_id(self) -> Optional[str]:
        return self.backend.get_item(self.key_for(GUEST_ID_SUFFIX))

    def set_guest_mode(self, is_guest: bool) -> None:
        with self._lock:
            self.backend.set_item(self.key_for(IS_GUEST_SUFFIX), "true" if is_guest else "false")
            if is_guest:
                self.generate_guest_id()

    def is_guest_mode(self) -> bool:
        return self.backend.get_item(self.key_for(IS_GUEST_SUFFIX)) == "true"

    def identity(self) -> Optional[GuestIdentity]:
        guest_id = self.guest_id()
        if not guest_id:
            return None
        return GuestIdentity(guest_id=guest_id, is_guest=self.is_guest_mode())

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def get_all(self, collection: CollectionName) -> List[GuestRecord]:
        """
        Decoded records of a collection.

        A missing or unreadable blob yields an empty list. Individual records
        that fail validation are skipped here but stay in storage.
        """
        entries, _ = self._load(Collection(collection))
        return [e for e in entries if isinstance(e, GuestRecord)]

    def unreadable_count(self, collection: CollectionName) -> int:
        """Stored items of a collection that could not be decoded."""
        entries, blob_failed = self._load(Collection(collection))
        invalid = sum(1 for e in entries if not isinstance(e, GuestRecord))
        return invalid + (1 if blob_failed else 0)

    def add(
        self,
        collection: CollectionName,
        fields: Union[Mapping[str, Any], BaseModel],
    ) -> GuestRecord:
        """
        Store a new record and return it with its local id and timestamp.

        Raises:
            pydantic.ValidationError: fields do not match the collection
            StorageWriteError: the backend refused the write
        """
        collection = Collection(collection)
        layout = COLLECTION_LAYOUTS[collection]
        if isinstance(fields, BaseModel):
            fields = fields.model_dump()
        payload = FIELDS_MODELS[collection].model_validate(dict(fields))

        record = GUEST_MODELS[collection](
            local_id=f"guest_{layout.id_tag}_{_epoch_ms()}_{_random_token()}",
            created_at=Timestamp.now(),
            **payload.model_dump(),
        )

        with self._lock:
            entries, _ = self._load(collection)
            if layout.newest_first:
                entries.insert(0, record)
            else:
                entries.append(record)
            if layout.capped:
                entries = entries[max(len(entries) - self.ai_chat_limit, 0):]
            self._persist(collection, entries)

        logger.debug("Guest %s added: %s", collection.value, record.local_id)
        return record

    def update(
        self,
        collection: CollectionName,
        record_id: str,
        updates: Mapping[str, Any],
    ) -> bool:
        """
        Merge updates into the matching record.

        Unknown ids are a no-op. Returns whether a record matched. A stored
        item that failed validation can be repaired this way.
        """
        collection = Collection(collection)
        model = GUEST_MODELS[collection]
        changes = {k: v for k, v in dict(updates).items() if k not in _PROTECTED_FIELDS}

        with self._lock:
            entries, _ = self._load(collection)
            matched = False
            for i, entry in enumerate(entries):
                if _entry_id(entry) != record_id:
                    continue
                current = entry.to_storage() if isinstance(entry, GuestRecord) else entry
                entries[i] = model.model_validate({**current, **changes})
                matched = True
            if matched:
                self._persist(collection, entries)
        return matched

    def delete(self, collection: CollectionName, record_id: str) -> bool:
        collection = Collection(collection)
        with self._lock:
            entries, _ = self._load(collection)
            remaining = [e for e in entries if _entry_id(e) != record_id]
            if len(remaining) == len(entries):
                return False
            self._persist(collection, remaining)
        return True

    def clear_collection(self, collection: CollectionName) -> None:
        collection = Collection(collection)
        with self._lock:
            self._persist(collection, [])

    def clear_all(self) -> None:
        """Remove every namespaced key, guest identity included."""
        with self._lock:
            for key in self.storage_keys:
                self.backend.remove_item(key)
        logger.info("Guest data cleared")

    def stats(self) -> GuestStats:
        with self._lock:
            return GuestStats(
                tasks=len(self.get_all(Collection.TASKS)),
                notes=len(self.get_all(Collection.NOTES)),
                subjects=len(self.get_all(Collection.SUBJECTS)),
                ai_chats=len(self.get_all(Collection.AI_CHATS)),
                unreadable=sum(self.unreadable_count(c) for c in Collection),
                is_guest=self.is_guest_mode(),
            )

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def _load(self, collection: Collection) -> Tuple[List[Entry], bool]:
        """Stored entries plus whether the blob itself was unreadable."""
        key = self.key_for(COLLECTION_LAYOUTS[collection].key_suffix)
        raw = self.backend.get_item(key)
        if raw is None:
            return [], False
        try:
            items = self._decode_blob(raw)
        except StorageDecodeError as e:
            logger.error("Error reading %s: %s", key, e)
            return [], True

        model = GUEST_MODELS[collection]
        entries: List[Entry] = []
        for item in items:
            try:
                entries.append(model.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid %s record %s: %s",
                    collection.value, _entry_id(item), e.error_count(),
                )
                entries.append(item)
        return entries, False

    @staticmethod
    def _decode_blob(raw: str) -> List[Any]:
        try:
            items = json.loads(raw)
        except ValueError as e:
            raise StorageDecodeError(f"invalid JSON: {e}") from e
        if not isinstance(items, list):
            raise StorageDecodeError(f"expected a JSON array, got {type(items).__name__}")
        return items

    def _persist(self, collection: Collection, entries: List[Entry]) -> None:
        key = self.key_for(COLLECTION_LAYOUTS[collection].key_suffix)
        payload = [e.to_storage() if isinstance(e, GuestRecord) else e for e in entries]
        self.backend.set_item(key, json.dumps(payload))


def open_guest_store(db_path: Optional[Path] = None) -> LocalGuestStore:
    """Guest store backed by the durable SQLite file (GUEST_STORE_PATH by default)."""
    if db_path is None:
        Config.init_directories()
        db_path = Config.GUEST_STORE_PATH
    return LocalGuestStore(SqliteKeyValueStore(db_path))
