"""
REST API routes.

Organized into logical groups:
- Records: account-scoped CRUD for tasks, notes, subjects and AI chat history
- Tutor: AI chat completion proxy
- Utility: health check

Record routes require authentication and are user-scoped.
"""

import logging

from flask import Blueprint, g, jsonify, request
from pydantic import ValidationError

from .auth import require_auth
from .services.container import get_services
from .services.models import Collection
from .services.remote_client import COLLECTION_SLUGS

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)

SLUG_COLLECTIONS = {slug: collection for collection, slug in COLLECTION_SLUGS.items()}

_COLLECTION_RULE = '/<any(tasks, notes, subjects, "ai-chats"):slug>'
_RECORD_RULE = _COLLECTION_RULE + "/<record_id>"


def _json_error(message: str, status: int = 400):
    return jsonify({"error": message}), status


def _validation_error(collection: Collection, e: ValidationError):
    return jsonify(
        {
            "error": f"Invalid {collection.value} data",
            "details": e.errors(include_url=False, include_context=False),
        }
    ), 400


# ============================================================================
# RECORD ENDPOINTS
# ============================================================================


@bp.get(_COLLECTION_RULE)
@require_auth
def list_records(slug: str):
    """
    List the caller's records of one collection.

    Query params:
        - limit: Max results (optional)

    Returns:
        JSON: {"records": [...], "total": int}
        Tasks, notes and subjects are newest first; AI chats oldest first.
    """
    user_id = g.user_id
    svc = get_services()
    collection = SLUG_COLLECTIONS[slug]

    try:
        limit = request.args.get("limit", type=int)
        records = svc.storage.list_records(user_id, collection, limit=limit)

        return jsonify(
            {
                "records": [record.model_dump(mode="json") for record in records],
                "total": len(records),
            }
        )

    except Exception as e:
        return _json_error(str(e), 500)


@bp.post(_COLLECTION_RULE)
@require_auth
def create_record(slug: str):
    """
    Create a record; the server assigns its id and creation time.

    Returns:
        JSON: {"id": str} with status 201
    """
    user_id = g.user_id
    svc = get_services()
    collection = SLUG_COLLECTIONS[slug]

    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        return _json_error("No data provided")

    try:
        record_id = svc.storage.add_record(user_id, collection, data)
        return jsonify({"id": record_id}), 201

    except ValidationError as e:
        return _validation_error(collection, e)
    except Exception as e:
        return _json_error(str(e), 500)


@bp.get(_RECORD_RULE)
@require_auth
def get_record(slug: str, record_id: str):
    user_id = g.user_id
    svc = get_services()
    collection = SLUG_COLLECTIONS[slug]

    try:
        record = svc.storage.get_record(user_id, collection, record_id)
        if not record:
            return _json_error("Record not found", 404)
        return jsonify(record.model_dump(mode="json"))

    except Exception as e:
        return _json_error(str(e), 500)


@bp.put(_RECORD_RULE)
@require_auth
def update_record(slug: str, record_id: str):
    """
    Partially update a record (user-scoped).

    Returns:
        JSON: {"success": true} or 404 error
    """
    user_id = g.user_id
    svc = get_services()
    collection = SLUG_COLLECTIONS[slug]

    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        return _json_error("No data provided")

    try:
        if not svc.storage.update_record(user_id, collection, record_id, data):
            return _json_error("Record not found", 404)
        return jsonify({"success": True})

    except ValidationError as e:
        return _validation_error(collection, e)
    except Exception as e:
        return _json_error(str(e), 500)


@bp.delete(_RECORD_RULE)
@require_auth
def delete_record(slug: str, record_id: str):
    user_id = g.user_id
    svc = get_services()
    collection = SLUG_COLLECTIONS[slug]

    try:
        if not svc.storage.delete_record(user_id, collection, record_id):
            return _json_error("Record not found", 404)
        return jsonify({"success": True})

    except Exception as e:
        return _json_error(str(e), 500)


# ============================================================================
# TUTOR ENDPOINT
# ============================================================================


@bp.post("/chat")
def chat():
    """
    AI tutor completion proxy. Open to guests and signed-in users.

    Body:
        JSON: {"messages": [{"role": "user"|"assistant", "text": str}, ...],
               "model": str (optional)}

    Returns:
        JSON: {"content": str}
    """
    svc = get_services()

    data = request.get_json(silent=True) or {}
    messages = data.get("messages") if isinstance(data, dict) else None
    if not messages or not isinstance(messages, list):
        return _json_error("Messages are required")

    try:
        content = svc.tutor.reply(messages, model=data.get("model"))
        return jsonify({"content": content})

    except Exception as e:
        logger.error("Tutor proxy error: %s", e)
        return _json_error("Failed to fetch AI response", 500)


# ============================================================================
# UTILITY ENDPOINTS
# ============================================================================


@bp.get("/health")
def health():
    """Health check endpoint."""
    return jsonify({"status": "ok"})
