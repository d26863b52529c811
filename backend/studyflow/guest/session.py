"""
Session/mode controller.

Single owner of "is this session guest or signed in". UI code asks the
controller for data instead of reading the guest flag itself; the
controller routes each call to the local guest store or the remote store
and is the only place that triggers guest → account migration.

    UNINITIALIZED --start() with guest flag / enter_guest_mode()--> GUEST
    UNINITIALIZED --restore_session()--------------------------> AUTHENTICATED
    GUEST ---------complete_sign_in() (migrates first)---------> AUTHENTICATED
    AUTHENTICATED -sign_out()----------------------------------> UNINITIALIZED
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Union

from ..errors import SessionError
from ..services.models import Collection, MigrationResult
from ..services.remote_client import RemoteStore
from .local_store import LocalGuestStore
from .migration import migrate_guest_data

logger = logging.getLogger(__name__)

Migrator = Callable[[str, LocalGuestStore, RemoteStore], MigrationResult]

GUEST_FEATURES = frozenset({
    "view-dashboard",
    "view-tasks",
    "view-notes",
    "ai-chat-limited",
    "view-analytics",
})


class SessionMode(str, Enum):
    UNINITIALIZED = "uninitialized"
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class SessionState:
    mode: SessionMode = SessionMode.UNINITIALIZED
    account_id: Optional[str] = None
    guest_id: Optional[str] = None

    @property
    def is_guest(self) -> bool:
        return self.mode is SessionMode.GUEST

    @property
    def is_authenticated(self) -> bool:
        return self.mode is SessionMode.AUTHENTICATED


@dataclass(frozen=True)
class FeatureAccess:
    allowed: bool
    message: str


def check_guest_feature_access(feature: str) -> FeatureAccess:
    """Whether a guest may use `feature`, with the message to show them."""
    if feature in GUEST_FEATURES:
        return FeatureAccess(allowed=True, message="Guest mode: Limited functionality")
    return FeatureAccess(allowed=False, message="Sign up or log in to unlock this feature")


class SessionController:
    """
    Owns the SessionState and routes data operations by mode.
    """

    def __init__(
        self,
        guest_store: LocalGuestStore,
        remote: RemoteStore,
        migrator: Migrator = migrate_guest_data,
    ):
        self.guest_store = guest_store
        self.remote = remote
        self._migrate = migrator
        self._state = SessionState()
        self._lock = threading.RLock()
        self.last_migration: Optional[MigrationResult] = None

    @property
    def state(self) -> SessionState:
        return self._state

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> SessionState:
        """Resume guest mode if the persisted guest flag is set."""
        with self._lock:
            if self._state.mode is SessionMode.UNINITIALIZED and self.guest_store.is_guest_mode():
                self._state = SessionState(
                    mode=SessionMode.GUEST,
                    guest_id=self.guest_store.generate_guest_id(),
                )
            return self._state

    def enter_guest_mode(self) -> SessionState:
        with self._lock:
            if self._state.is_authenticated:
                raise SessionError("Cannot enter guest mode while signed in")
            self.guest_store.set_guest_mode(True)
            self._state = SessionState(
                mode=SessionMode.GUEST,
                guest_id=self.guest_store.generate_guest_id(),
            )
            return self._state

    def exit_guest_mode(self) -> SessionState:
        """Leave guest mode without signing in; guest data stays on disk."""
        with self._lock:
            if self._state.is_guest:
                self.guest_store.set_guest_mode(False)
                self._state = SessionState()
            return self._state

    def complete_sign_in(self, account_id: str) -> MigrationResult:
        """
        Finish a successful sign-up/sign-in.

        Guest data (if any) is migrated before this returns. The session
        becomes authenticated whether or not migration succeeded; a failed
        result is kept on `last_migration` and the guest data stays local
        for `retry_migration`.
        """
        if not account_id:
            raise ValueError("account_id is required")

        with self._lock:
            result = MigrationResult(success=True, migrated_count=0)
            if self.guest_store.is_guest_mode():
                if self.guest_store.stats().is_empty:
                    self.guest_store.clear_all()
                else:
                    result = self._migrate(account_id, self.guest_store, self.remote)

            if not result.success:
                logger.warning(
                    "Signed in %s with guest data left behind: %s", account_id, result.error
                )

            self.last_migration = result
            self._state = SessionState(mode=SessionMode.AUTHENTICATED, account_id=account_id)
            return result

    def restore_session(self, account_id: str) -> SessionState:
        """
        The auth provider reported an existing session.

        No migration runs; a stale guest flag is cleared.
        """
        if not account_id:
            raise ValueError("account_id is required")

        with self._lock:
            if self.guest_store.is_guest_mode():
                logger.info("Clearing stale guest flag for signed-in account %s", account_id)
                self.guest_store.set_guest_mode(False)
            self._state = SessionState(mode=SessionMode.AUTHENTICATED, account_id=account_id)
            return self._state

    def retry_migration(self) -> MigrationResult:
        """Re-run migration for guest data left behind by a failed attempt."""
        with self._lock:
            if not self._state.is_authenticated:
                raise SessionError("Sign in before migrating guest data")
            result = self._migrate(self._state.account_id, self.guest_store, self.remote)
            self.last_migration = result
            return result

    def sign_out(self) -> SessionState:
        with self._lock:
            self._state = SessionState()
            self.last_migration = None
            return self._state

    @property
    def has_pending_guest_data(self) -> bool:
        stats = self.guest_store.stats()
        return stats.is_guest and not stats.is_empty

    # ------------------------------------------------------------------
    # Mode routing
    # ------------------------------------------------------------------

    def list_records(self, collection: Union[Collection, str]) -> List[Any]:
        state = self._require_session()
        if state.is_guest:
            return self.guest_store.get_all(collection)
        return self.remote.list_records(state.account_id, Collection(collection))

    def add_record(self, collection: Union[Collection, str], fields: Mapping[str, Any]) -> str:
        """Create a record in the active store and return its id."""
        state = self._require_session()
        if state.is_guest:
            return self.guest_store.add(collection, fields).local_id
        return self.remote.add_record(state.account_id, Collection(collection), fields)

    def update_record(
        self,
        collection: Union[Collection, str],
        record_id: str,
        updates: Mapping[str, Any],
    ) -> bool:
        state = self._require_session()
        if state.is_guest:
            return self.guest_store.update(collection, record_id, updates)
        return self.remote.update_record(state.account_id, Collection(collection), record_id, updates)

    def delete_record(self, collection: Union[Collection, str], record_id: str) -> bool:
        state = self._require_session()
        if state.is_guest:
            return self.guest_store.delete(collection, record_id)
        return self.remote.delete_record(state.account_id, Collection(collection), record_id)

    def _require_session(self) -> SessionState:
        state = self._state
        if state.mode is SessionMode.UNINITIALIZED:
            raise SessionError("No active session")
        return state
