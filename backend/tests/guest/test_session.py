"""
Tests for the session/mode controller: transitions, migration trigger and
routing of data operations by mode.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from studyflow.errors import SessionError
from studyflow.guest.local_store import LocalGuestStore
from studyflow.guest.session import (
    SessionController,
    SessionMode,
    check_guest_feature_access,
)
from studyflow.guest.storage_backends import MemoryKeyValueStore
from studyflow.services.account_storage import AccountStorage
from studyflow.services.models import Collection, MigrationResult


# ============================================================================
# FIXTURES
# ============================================================================


class _RecordingMigrator:
    def __init__(self, result: MigrationResult | None = None):
        self.calls: list[str] = []
        self.result = result

    def __call__(self, account_id, guest_store, remote):  # noqa: ANN001
        self.calls.append(account_id)
        if self.result is not None:
            return self.result
        from studyflow.guest.migration import migrate_guest_data
        return migrate_guest_data(account_id, guest_store, remote)


class _BrokenRemote:
    def add_record(self, *args, **kwargs):  # noqa: ANN001
        raise ConnectionError("network unreachable")


@pytest.fixture()
def backend():
    return MemoryKeyValueStore()


@pytest.fixture()
def guest_store(backend):
    return LocalGuestStore(backend, prefix="sdai_guest_")


@pytest.fixture()
def remote(tmp_path: Path):
    return AccountStorage(db_path=tmp_path / "remote.db")


@pytest.fixture()
def migrator():
    return _RecordingMigrator()


@pytest.fixture()
def controller(guest_store, remote, migrator):
    return SessionController(guest_store, remote, migrator=migrator)


# ============================================================================
# START / GUEST MODE
# ============================================================================


def test_starts_uninitialized_without_guest_flag(controller):
    state = controller.start()
    assert state.mode is SessionMode.UNINITIALIZED
    assert state.guest_id is None


def test_start_resumes_persisted_guest_mode(guest_store, remote):
    guest_store.set_guest_mode(True)
    guest_id = guest_store.guest_id()

    controller = SessionController(guest_store, remote)
    state = controller.start()

    assert state.is_guest
    assert state.guest_id == guest_id


def test_enter_and_exit_guest_mode(controller, guest_store):
    state = controller.enter_guest_mode()
    assert state.is_guest
    assert guest_store.is_guest_mode() is True

    controller.add_record("tasks", {"text": "keep me"})
    state = controller.exit_guest_mode()

    assert state.mode is SessionMode.UNINITIALIZED
    assert guest_store.is_guest_mode() is False
    assert guest_store.stats().tasks == 1


def test_cannot_enter_guest_mode_when_signed_in(controller):
    controller.restore_session("acct_1")
    with pytest.raises(SessionError):
        controller.enter_guest_mode()


# ============================================================================
# SIGN IN
# ============================================================================


def test_sign_in_migrates_guest_data(controller, guest_store, remote, migrator):
    controller.enter_guest_mode()
    controller.add_record("tasks", {"text": "Read Ch.5"})
    controller.add_record("notes", {"title": "Bio"})

    result = controller.complete_sign_in("acct_123")

    assert migrator.calls == ["acct_123"]
    assert result.success is True
    assert result.migrated_count == 2
    assert controller.state.is_authenticated
    assert controller.state.account_id == "acct_123"
    assert guest_store.stats().is_empty
    assert remote.count_records("acct_123", Collection.TASKS) == 1
    assert controller.last_migration == result


def test_sign_in_with_empty_guest_data_skips_migration(controller, guest_store, migrator):
    controller.enter_guest_mode()

    result = controller.complete_sign_in("acct_123")

    assert migrator.calls == []
    assert result.success is True
    assert guest_store.is_guest_mode() is False
    assert controller.state.is_authenticated


def test_sign_in_without_guest_mode_skips_migration(controller, migrator):
    result = controller.complete_sign_in("acct_123")

    assert migrator.calls == []
    assert result.migrated_count == 0
    assert controller.state.is_authenticated


def test_failed_migration_still_authenticates(guest_store):
    controller = SessionController(guest_store, _BrokenRemote())
    controller.enter_guest_mode()
    controller.add_record("subjects", {"name": "Chemistry", "hours": 4})

    result = controller.complete_sign_in("acct_123")

    assert result.success is False
    assert "network unreachable" in result.error
    assert controller.state.is_authenticated
    assert controller.has_pending_guest_data is True
    assert guest_store.stats().subjects == 1


def test_retry_migration_after_failure(guest_store, remote):
    controller = SessionController(guest_store, _BrokenRemote())
    controller.enter_guest_mode()
    controller.add_record("tasks", {"text": "retry me"})
    assert controller.complete_sign_in("acct_123").success is False

    controller.remote = remote
    result = controller.retry_migration()

    assert result.success is True
    assert result.migrated_count == 1
    assert controller.has_pending_guest_data is False
    assert [t.text for t in controller.list_records("tasks")] == ["retry me"]


def test_retry_requires_authentication(controller):
    with pytest.raises(SessionError):
        controller.retry_migration()


def test_sign_in_requires_account_id(controller):
    with pytest.raises(ValueError):
        controller.complete_sign_in("")


# ============================================================================
# RESTORED SESSION
# ============================================================================


def test_restored_session_clears_stale_guest_flag(guest_store, remote, migrator):
    guest_store.set_guest_mode(True)
    guest_store.add("tasks", {"text": "left over"})
    controller = SessionController(guest_store, remote, migrator=migrator)
    controller.start()

    state = controller.restore_session("acct_9")

    assert state.is_authenticated
    assert state.account_id == "acct_9"
    assert guest_store.is_guest_mode() is False
    assert migrator.calls == []
    assert remote.count_records("acct_9", Collection.TASKS) == 0


def test_sign_out_returns_to_uninitialized(controller):
    controller.restore_session("acct_9")
    state = controller.sign_out()

    assert state.mode is SessionMode.UNINITIALIZED
    assert controller.last_migration is None
    with pytest.raises(SessionError):
        controller.list_records("tasks")


# ============================================================================
# ROUTING
# ============================================================================


def test_routes_to_guest_store_in_guest_mode(controller, guest_store, remote):
    controller.enter_guest_mode()

    task_id = controller.add_record("tasks", {"text": "local"})
    assert task_id.startswith("guest_task_")
    assert controller.update_record("tasks", task_id, {"completed": True}) is True
    assert guest_store.get_all("tasks")[0].completed is True
    assert remote.count_records("acct_1", Collection.TASKS) == 0

    assert controller.delete_record("tasks", task_id) is True
    assert controller.list_records("tasks") == []


def test_routes_to_remote_store_when_authenticated(controller, guest_store, remote):
    controller.restore_session("acct_1")

    task_id = controller.add_record(Collection.TASKS, {"text": "remote"})
    assert controller.update_record(Collection.TASKS, task_id, {"completed": True}) is True

    (task,) = controller.list_records(Collection.TASKS)
    assert task.id == task_id
    assert task.completed is True
    assert guest_store.get_all("tasks") == []

    assert controller.delete_record(Collection.TASKS, task_id) is True
    assert controller.delete_record(Collection.TASKS, task_id) is False


def test_routing_without_session_raises(controller):
    with pytest.raises(SessionError):
        controller.add_record("tasks", {"text": "nowhere"})


# ============================================================================
# FEATURE ACCESS
# ============================================================================


@pytest.mark.parametrize("feature", ["view-dashboard", "view-tasks", "ai-chat-limited"])
def test_guest_features_allowed(feature):
    access = check_guest_feature_access(feature)
    assert access.allowed is True


def test_other_features_need_account():
    access = check_guest_feature_access("messages")
    assert access.allowed is False
    assert "Sign up" in access.message


def test_sign_in_with_only_unreadable_guest_data_keeps_it(controller, guest_store, backend, migrator):
    controller.enter_guest_mode()
    backend.set_item(
        "sdai_guest_subjects",
        '[{"id": "guest_subject_1_a", "name": "Physics", "hours": 0, "createdAt": {"seconds": 1.0}}]',
    )

    result = controller.complete_sign_in("acct_123")

    assert migrator.calls == ["acct_123"]
    assert result.success is False
    assert controller.state.is_authenticated
    assert controller.has_pending_guest_data is True
    assert backend.get_item("sdai_guest_subjects") is not None
