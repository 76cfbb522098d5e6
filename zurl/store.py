"""SQLAlchemy-backed document store.

Links and folders are addressed as documents in named collections
(``"short-links"`` and ``"folders"``). Every row that leaves the store is
validated into a typed record; every mutation either commits on its own or
as part of a :class:`WriteBatch` that runs in a single transaction.
"""
import logging

from pydantic import ValidationError as RecordError
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from zurl import models, schemas
from zurl.errors import ConflictError, NotFoundError, StoreError, ZurlError

logger = logging.getLogger("zurl.store")

LINKS = "short-links"
FOLDERS = "folders"

COLLECTIONS = {
    LINKS: (models.ShortLink, schemas.ShortLinkRecord),
    FOLDERS: (models.Folder, schemas.FolderRecord),
}


def _collection(name):
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise ValueError(f"Unknown collection: {name}") from None


def _to_record(record_cls, row):
    try:
        return record_cls.model_validate(row)
    except RecordError as exc:
        raise StoreError(f"Invalid {record_cls.__name__} document {row.id!r}: {exc}") from exc


class WriteBatch:
    """Queue of document mutations applied in one transaction on :meth:`commit`."""

    def __init__(self, db: Session):
        self._db = db
        self._ops = []
        self._committed = False

    def __len__(self):
        return len(self._ops)

    def set(self, collection: str, doc_id: str, fields: dict) -> "WriteBatch":
        """Queue a create, or a merge of ``fields`` into an existing document.

        Columns missing from ``fields`` keep their stored value (or their
        default on insert).
        """
        self._ops.append(("set", collection, doc_id, fields, None))
        return self

    def update(self, collection: str, doc_id: str, fields: dict, expect: dict | None = None) -> "WriteBatch":
        """Queue a partial update.

        ``expect`` is a precondition on the stored document (``{field: value}``,
        ``None`` matching null). If it no longer holds at commit time the whole
        batch is rolled back with :class:`ConflictError`.
        """
        self._ops.append(("update", collection, doc_id, fields, expect))
        return self

    def update_where(self, collection: str, filters: dict, fields: dict) -> "WriteBatch":
        """Queue an update of every document matching ``filters`` at commit time."""
        self._ops.append(("update_where", collection, None, fields, filters))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(("delete", collection, doc_id, None, None))
        return self

    def commit(self) -> None:
        if self._committed:
            raise RuntimeError("WriteBatch already committed")
        self._committed = True
        try:
            for op, collection, doc_id, fields, expect in self._ops:
                model, _ = _collection(collection)
                if op == "set":
                    self._db.merge(model(id=doc_id, **fields))
                    self._db.flush()
                elif op == "update":
                    self._apply_update(model, doc_id, fields, expect)
                elif op == "update_where":
                    self._db.execute(
                        update(model).filter_by(**expect).values(**fields).execution_options(synchronize_session=False)
                    )
                else:
                    self._db.execute(delete(model).where(model.id == doc_id))
            self._db.commit()
        except ZurlError:
            self._db.rollback()
            raise
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception("Batch of %d writes failed", len(self._ops))
            raise StoreError(f"Batch commit failed: {exc}") from exc

    def _apply_update(self, model, doc_id, fields, expect):
        stmt = update(model).where(model.id == doc_id)
        for field, value in (expect or {}).items():
            stmt = stmt.where(getattr(model, field).is_(None) if value is None else getattr(model, field) == value)
        result = self._db.execute(stmt.values(**fields).execution_options(synchronize_session=False))
        if result.rowcount:
            return
        exists = self._db.execute(select(model.id).where(model.id == doc_id)).first()
        if exists is None:
            raise NotFoundError(f"Document {doc_id!r} not found")
        raise ConflictError(f"Document {doc_id!r} changed since it was read")


class DocumentStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, collection: str, doc_id: str):
        model, record_cls = _collection(collection)
        try:
            row = self.db.get(model, doc_id, populate_existing=True)
        except SQLAlchemyError as exc:
            raise StoreError(f"Read failed: {exc}") from exc
        return None if row is None else _to_record(record_cls, row)

    def query(self, collection: str, **filters) -> list:
        model, record_cls = _collection(collection)
        stmt = select(model).filter_by(**filters).order_by(model.created_at.desc(), model.id)
        try:
            rows = self.db.execute(stmt.execution_options(populate_existing=True)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Query failed: {exc}") from exc
        return [_to_record(record_cls, row) for row in rows]

    def count(self, collection: str, **filters) -> int:
        model, _ = _collection(collection)
        try:
            return self.db.execute(select(func.count(model.id)).select_from(model).filter_by(**filters)).scalar_one()
        except SQLAlchemyError as exc:
            raise StoreError(f"Query failed: {exc}") from exc

    def set(self, collection: str, doc_id: str, fields: dict) -> None:
        self.batch().set(collection, doc_id, fields).commit()

    def update(self, collection: str, doc_id: str, fields: dict, expect: dict | None = None) -> None:
        self.batch().update(collection, doc_id, fields, expect=expect).commit()

    def delete(self, collection: str, doc_id: str) -> None:
        self.batch().delete(collection, doc_id).commit()

    def batch(self) -> WriteBatch:
        return WriteBatch(self.db)
