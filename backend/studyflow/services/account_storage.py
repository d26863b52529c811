"""
SQLAlchemy-backed account storage.

The remote half of the data model: every row belongs to one authenticated
account (user_id) and every query is filtered by it.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Generator, List, Mapping, Optional, Type, Union
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import asc, desc
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..database import (
    AIChatMessage as AIChatMessageORM,
    Base,
    Note as NoteORM,
    Subject as SubjectORM,
    Task as TaskORM,
    create_engine_for_url,
    get_engine,
    get_session_factory,
    make_session_factory,
)
from .models import (
    ACCOUNT_MODELS,
    FIELDS_MODELS,
    AccountRecord,
    Collection,
)

logger = logging.getLogger(__name__)

_ORM_MODELS: Dict[Collection, Type[Any]] = {
    Collection.TASKS: TaskORM,
    Collection.NOTES: NoteORM,
    Collection.SUBJECTS: SubjectORM,
    Collection.AI_CHATS: AIChatMessageORM,
}

# Chat history reads oldest-first; everything else newest-first.
_CHRONOLOGICAL = {Collection.AI_CHATS}


def _row_to_record(collection: Collection, row: Any) -> AccountRecord:
    model = ACCOUNT_MODELS[collection]
    values = {name: getattr(row, name) for name in model.model_fields}
    return model.model_validate(values)


class AccountStorage:
    """
    Account-scoped CRUD over tasks, notes, study subjects and AI chat history.
    """

    def __init__(self, db_path: Optional[Path] = None, database_url: Optional[str] = None):
        self.engine, self.session_factory = self._configure_engine(db_path, database_url)
        self.dialect = self.engine.dialect.name

        # Schema is owned here for every dialect; existing tables are left alone.
        Base.metadata.create_all(bind=self.engine)

    def add_record(
        self,
        account_id: str,
        collection: Union[Collection, str],
        fields: Union[Mapping[str, Any], BaseModel],
    ) -> str:
        """
        Insert a record and return its server-side id.

        Raises:
            pydantic.ValidationError: fields do not match the collection
        """
        collection = Collection(collection)
        if isinstance(fields, BaseModel):
            fields = fields.model_dump()
        payload = FIELDS_MODELS[collection].model_validate(dict(fields))

        record_id = str(uuid4())
        row = _ORM_MODELS[collection](
            id=record_id,
            user_id=account_id,
            created_at=datetime.utcnow(),
            **payload.model_dump(mode="json"),
        )
        with self._session_scope() as session:
            session.add(row)

        logger.debug("Stored %s %s for %s", collection.value, record_id, account_id)
        return record_id

    def list_records(
        self,
        account_id: str,
        collection: Union[Collection, str],
        limit: Optional[int] = None,
    ) -> List[AccountRecord]:
        collection = Collection(collection)
        orm = _ORM_MODELS[collection]
        order = asc if collection in _CHRONOLOGICAL else desc

        with self._session_scope() as session:
            query = (
                session.query(orm)
                .filter(orm.user_id == account_id)
                .order_by(order(orm.created_at))
            )
            if limit:
                query = query.limit(max(1, limit))
            return [_row_to_record(collection, row) for row in query.all()]

    def get_record(
        self, account_id: str, collection: Union[Collection, str], record_id: str
    ) -> Optional[AccountRecord]:
        collection = Collection(collection)
        orm = _ORM_MODELS[collection]
        with self._session_scope() as session:
            row = (
                session.query(orm)
                .filter(orm.user_id == account_id, orm.id == record_id)
                .one_or_none()
            )
            if row is None:
                return None
            return _row_to_record(collection, row)

    def update_record(
        self,
        account_id: str,
        collection: Union[Collection, str],
        record_id: str,
        updates: Mapping[str, Any],
    ) -> bool:
        """
        Apply a partial update. Returns False when the record does not exist
        for this account.
        """
        collection = Collection(collection)
        orm = _ORM_MODELS[collection]
        fields_model = FIELDS_MODELS[collection]

        with self._session_scope() as session:
            row = (
                session.query(orm)
                .filter(orm.user_id == account_id, orm.id == record_id)
                .one_or_none()
            )
            if row is None:
                return False

            current = {name: getattr(row, name) for name in fields_model.model_fields}
            merged = fields_model.model_validate({**current, **dict(updates)})
            for name, value in merged.model_dump(mode="json").items():
                setattr(row, name, value)
            session.add(row)
        return True

    def delete_record(
        self, account_id: str, collection: Union[Collection, str], record_id: str
    ) -> bool:
        collection = Collection(collection)
        orm = _ORM_MODELS[collection]
        with self._session_scope() as session:
            deleted = (
                session.query(orm)
                .filter(orm.user_id == account_id, orm.id == record_id)
                .delete()
            )
        return deleted > 0

    def count_records(self, account_id: str, collection: Union[Collection, str]) -> int:
        collection = Collection(collection)
        orm = _ORM_MODELS[collection]
        with self._session_scope() as session:
            return session.query(orm).filter(orm.user_id == account_id).count()

    def _configure_engine(
        self,
        db_path: Optional[Path],
        database_url: Optional[str],
    ) -> tuple[Engine, sessionmaker]:
        if database_url:
            engine = create_engine_for_url(database_url)
            return engine, make_session_factory(engine)

        if db_path:
            resolved = Path(db_path).resolve()
            engine = create_engine_for_url(f"sqlite:///{resolved}")
            return engine, make_session_factory(engine)

        return get_engine(), get_session_factory()

    @contextmanager
    def _session_scope(self) -> Generator[Session, None, None]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
