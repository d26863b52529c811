"""
Tests for the HTTP remote store with a stub requests session.
"""
from __future__ import annotations

import pytest
import requests

from studyflow.errors import RemoteWriteError
from studyflow.services.models import Collection
from studyflow.services.remote_client import HttpRemoteStore


class _FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response or _FakeResponse()
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def _store(session):
    return HttpRemoteStore(token="tok", base_url="http://api.test/api/", timeout=3, session=session)


def test_add_record_posts_to_collection_slug():
    session = _FakeSession(_FakeResponse(201, {"id": "abc"}))

    record_id = _store(session).add_record("acct_1", Collection.AI_CHATS, {"role": "user", "text": "hi"})

    assert record_id == "abc"
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://api.test/api/ai-chats")
    assert kwargs["json"] == {"role": "user", "text": "hi"}
    assert kwargs["headers"] == {"Authorization": "Bearer tok"}
    assert kwargs["timeout"] == 3


def test_list_records_parses_models():
    payload = {
        "records": [
            {"id": "t1", "user_id": "acct_1", "created_at": "2026-01-01T10:00:00",
             "text": "Read Ch.5", "completed": False},
        ],
        "total": 1,
    }
    session = _FakeSession(_FakeResponse(200, payload))

    (task,) = _store(session).list_records("acct_1", "tasks")

    assert task.id == "t1"
    assert task.text == "Read Ch.5"


def test_update_and_delete_report_missing():
    session = _FakeSession(_FakeResponse(404, {"error": "Record not found"}))
    store = _store(session)

    assert store.update_record("acct_1", Collection.TASKS, "t1", {"completed": True}) is False
    assert store.delete_record("acct_1", Collection.TASKS, "t1") is False
    assert session.calls[0][1] == "http://api.test/api/tasks/t1"


def test_error_status_raises_with_server_message():
    session = _FakeSession(_FakeResponse(403, {"error": "permission-denied"}))

    with pytest.raises(RemoteWriteError) as excinfo:
        _store(session).add_record("acct_1", Collection.NOTES, {"title": "x"})

    assert str(excinfo.value) == "permission-denied"
    assert excinfo.value.status_code == 403


def test_error_status_without_json_body():
    session = _FakeSession(_FakeResponse(502))

    with pytest.raises(RemoteWriteError, match="HTTP 502"):
        _store(session).add_record("acct_1", Collection.NOTES, {"title": "x"})


def test_transport_error_raises_remote_write_error():
    session = _FakeSession(error=requests.ConnectionError("offline"))

    with pytest.raises(RemoteWriteError, match="offline"):
        _store(session).add_record("acct_1", Collection.TASKS, {"text": "x"})


def test_missing_account_id_never_hits_network():
    session = _FakeSession()

    with pytest.raises(RemoteWriteError):
        _store(session).add_record("", Collection.TASKS, {"text": "x"})

    assert session.calls == []
