"""
Remote store client.

RemoteStore is the account-scoped interface the guest migration and the
session controller depend on. AccountStorage satisfies it in-process;
HttpRemoteStore satisfies it over the REST API.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

import requests
from pydantic import BaseModel

from ..config import Config
from ..errors import RemoteWriteError
from .models import ACCOUNT_MODELS, AccountRecord, Collection

logger = logging.getLogger(__name__)

COLLECTION_SLUGS: Dict[Collection, str] = {
    Collection.TASKS: "tasks",
    Collection.NOTES: "notes",
    Collection.SUBJECTS: "subjects",
    Collection.AI_CHATS: "ai-chats",
}


class RemoteStore(Protocol):
    """Account-scoped document store used once a user is signed in."""

    def add_record(
        self, account_id: str, collection: Collection, fields: Mapping[str, Any]
    ) -> str: ...

    def list_records(self, account_id: str, collection: Collection) -> List[AccountRecord]: ...

    def update_record(
        self,
        account_id: str,
        collection: Collection,
        record_id: str,
        updates: Mapping[str, Any],
    ) -> bool: ...

    def delete_record(self, account_id: str, collection: Collection, record_id: str) -> bool: ...


class HttpRemoteStore:
    """
    RemoteStore over the /api REST endpoints.

    The API derives the account from the bearer token, so account_id is only
    checked for presence here. Any transport error or unexpected status is
    raised as RemoteWriteError.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.token = token
        self.base_url = (base_url or Config.API_BASE_URL).rstrip("/")
        self.timeout = timeout or Config.REMOTE_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def add_record(
        self,
        account_id: str,
        collection: Union[Collection, str],
        fields: Union[Mapping[str, Any], BaseModel],
    ) -> str:
        collection = Collection(collection)
        if isinstance(fields, BaseModel):
            fields = fields.model_dump(mode="json")
        response = self._request("POST", account_id, collection, json=dict(fields))
        return response.json()["id"]

    def list_records(
        self, account_id: str, collection: Union[Collection, str]
    ) -> List[AccountRecord]:
        collection = Collection(collection)
        response = self._request("GET", account_id, collection)
        model = ACCOUNT_MODELS[collection]
        return [model.model_validate(item) for item in response.json().get("records", [])]

    def update_record(
        self,
        account_id: str,
        collection: Union[Collection, str],
        record_id: str,
        updates: Mapping[str, Any],
    ) -> bool:
        collection = Collection(collection)
        response = self._request(
            "PUT", account_id, collection, record_id=record_id, json=dict(updates), allow_missing=True
        )
        return response.status_code != 404

    def delete_record(
        self, account_id: str, collection: Union[Collection, str], record_id: str
    ) -> bool:
        collection = Collection(collection)
        response = self._request(
            "DELETE", account_id, collection, record_id=record_id, allow_missing=True
        )
        return response.status_code != 404

    def _request(
        self,
        method: str,
        account_id: str,
        collection: Collection,
        record_id: Optional[str] = None,
        json: Optional[dict] = None,
        allow_missing: bool = False,
    ) -> requests.Response:
        if not account_id:
            raise RemoteWriteError("account_id is required")

        url = f"{self.base_url}/{COLLECTION_SLUGS[collection]}"
        if record_id:
            url = f"{url}/{record_id}"

        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = self.session.request(
                method, url, json=json, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise RemoteWriteError(f"{method} {url} failed: {e}") from e

        if allow_missing and response.status_code == 404:
            return response
        if not response.ok:
            message = _error_message(response)
            logger.error("%s %s returned %s: %s", method, url, response.status_code, message)
            raise RemoteWriteError(message, status_code=response.status_code)
        return response


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return f"HTTP {response.status_code}"
