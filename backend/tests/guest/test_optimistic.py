from __future__ import annotations

from studyflow.errors import RemoteWriteError
from studyflow.guest.optimistic import MutationState, OptimisticMutation


def _reload_from(source):
    return lambda: list(source)


def test_commit_keeps_optimistic_view():
    authoritative = ["a", "b"]
    mutation = OptimisticMutation(["a", "b"], reload=_reload_from(authoritative))

    def commit():
        authoritative.append("c")
        return "c-id"

    state = mutation.run(apply=lambda view: view + ["c"], commit=commit)

    assert state is MutationState.COMMITTED
    assert mutation.view == ["a", "b", "c"]
    assert mutation.result == "c-id"
    assert mutation.error is None


def test_failed_commit_rolls_back_to_reload():
    authoritative = ["a", "b"]
    mutation = OptimisticMutation(["a", "b"], reload=_reload_from(authoritative))

    def commit():
        raise RemoteWriteError("permission-denied", status_code=403)

    state = mutation.run(apply=lambda view: [v for v in view if v != "a"], commit=commit)

    assert state is MutationState.ROLLED_BACK
    assert mutation.view == ["a", "b"]
    assert isinstance(mutation.error, RemoteWriteError)
    assert mutation.error.status_code == 403


def test_apply_does_not_mutate_callers_list():
    original = ["a"]
    mutation = OptimisticMutation(original, reload=lambda: [])

    mutation.run(apply=lambda view: view + ["b"], commit=lambda: None)

    assert original == ["a"]


def test_refresh_on_commit_replaces_view():
    mutation = OptimisticMutation(
        ["draft"], reload=lambda: ["server-1", "server-2"], refresh_on_commit=True
    )

    mutation.run(apply=lambda view: view + ["new"], commit=lambda: True)

    assert mutation.state is MutationState.COMMITTED
    assert mutation.view == ["server-1", "server-2"]


def test_pending_state_visible_during_commit():
    mutation = OptimisticMutation([], reload=lambda: [])
    seen = {}

    def commit():
        seen["state"] = mutation.state
        seen["view"] = list(mutation.view)

    mutation.run(apply=lambda view: view + ["x"], commit=commit)

    assert seen == {"state": MutationState.PENDING, "view": ["x"]}
