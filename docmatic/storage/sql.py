"""
SQLAlchemy document store.

Every entity type shares a single `documents` table keyed by
`(collection, doc_id)`; the non-identity state lives in a JSON column. Each
operation opens its own session and commits before returning, which gives
the lifecycle engine its acknowledged write.

The `id` criterion of a filter is pushed down to SQL. All other criteria and
predicates are evaluated in Python against hydrated entities.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON, DateTime, Integer, String, UniqueConstraint, create_engine, func, Uuid as SQLAUuid
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from docmatic.entity import Entity
from docmatic.errors import StoreError
from docmatic.query import Filter, FilterLike
from docmatic.storage.base import E, as_uuid, hydrate, id_criterion


class DocumentBase(DeclarativeBase):
    """SQLAlchemy declarative base class for the document table."""
    pass


class DocumentRow(DocumentBase):
    """One stored document."""
    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
    )

    # Insertion order; replacing a document keeps its position
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(String(255), index=True)
    doc_id: Mapped[UUID] = mapped_column(SQLAUuid, index=True)
    class_name: Mapped[str] = mapped_column(String(255))
    data: Mapped[Dict[str, Any]] = mapped_column(JSON)
    written_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class SqlDocumentStore:
    """
    SQLAlchemy-based document store.

    Args:
        session_factory: Factory creating SQLAlchemy sessions bound to an engine
            on which `DocumentBase.metadata` has been created
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._logger = logging.getLogger("SqlDocumentStore")
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, url: str, **engine_kwargs: Any) -> "SqlDocumentStore":
        """Create an engine for `url`, create the document table and wrap it."""
        engine = create_engine(url, **engine_kwargs)
        DocumentBase.metadata.create_all(engine)
        store = cls(sessionmaker(bind=engine))
        store._logger.info(f"Opened SQL document store at {engine.url!r}")
        return store

    def find_all(self, entity_type: Type[E], flt: FilterLike = None) -> List[E]:
        flt = Filter.of(flt)
        session = self._session_factory()
        try:
            query = session.query(DocumentRow).filter(
                DocumentRow.collection == entity_type.collection_name()
            )
            doc_id = id_criterion(flt)
            if doc_id is not None:
                query = query.filter(DocumentRow.doc_id == as_uuid(doc_id))

            results = []
            for row in query.order_by(DocumentRow.seq).all():
                entity = hydrate(entity_type, row.data)
                if flt.matches(entity):
                    results.append(entity)
            return results
        except SQLAlchemyError as e:
            self._logger.error(f"Query on '{entity_type.collection_name()}' failed: {str(e)}")
            raise StoreError(f"Query on '{entity_type.collection_name()}' failed: {e}") from e
        finally:
            session.close()

    def find_one(self, entity_type: Type[E], flt: FilterLike = None) -> Optional[E]:
        matches = self.find_all(entity_type, flt)
        return matches[0] if matches else None

    def save(self, entity: E) -> E:
        """
        Insert or replace the entity's document and commit.

        The entity's id is only assigned once the commit has succeeded, so a
        failed write leaves a transient entity transient.
        """
        collection = type(entity).collection_name()
        doc_id: UUID = entity.id or uuid4()
        document = entity.document_dump()
        document["id"] = str(doc_id)

        session = self._session_factory()
        try:
            row = session.query(DocumentRow).filter(
                DocumentRow.collection == collection,
                DocumentRow.doc_id == doc_id,
            ).one_or_none()

            now = datetime.now(timezone.utc)
            if row is None:
                session.add(DocumentRow(
                    collection=collection,
                    doc_id=doc_id,
                    class_name=f"{type(entity).__module__}.{type(entity).__qualname__}",
                    data=document,
                    written_at=now,
                ))
            else:
                row.data = document
                row.written_at = now

            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            self._logger.error(f"Error saving {type(entity).__name__}({doc_id}): {str(e)}")
            raise StoreError(f"Failed to save {type(entity).__name__}({doc_id}): {e}") from e
        finally:
            session.close()

        entity.id = doc_id
        return entity

    def delete(self, entity: Entity) -> None:
        if entity.id is None:
            return
        self._delete_ids(type(entity).collection_name(), [entity.id])

    def delete_many(self, entity_type: Type[Entity], flt: FilterLike = None) -> int:
        doomed = [e.id for e in self.find_all(entity_type, flt) if e.id is not None]
        if doomed:
            self._delete_ids(entity_type.collection_name(), doomed)
        return len(doomed)

    def drop_collection(self, name: str) -> None:
        session = self._session_factory()
        try:
            removed = session.query(DocumentRow).filter(
                DocumentRow.collection == name
            ).delete(synchronize_session=False)
            session.commit()
            self._logger.debug(f"Dropped collection '{name}' ({removed} documents)")
        except SQLAlchemyError as e:
            session.rollback()
            self._logger.error(f"Error dropping collection '{name}': {str(e)}")
            raise StoreError(f"Failed to drop collection '{name}': {e}") from e
        finally:
            session.close()

    def get_store_status(self) -> Dict[str, Any]:
        session = self._session_factory()
        try:
            counts = session.query(
                DocumentRow.collection, func.count(DocumentRow.seq)
            ).group_by(DocumentRow.collection).all()
            return {
                "storage": "sql",
                "collections": {name: count for name, count in counts},
            }
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read store status: {e}") from e
        finally:
            session.close()

    def _delete_ids(self, collection: str, ids: List[UUID]) -> None:
        session = self._session_factory()
        try:
            session.query(DocumentRow).filter(
                DocumentRow.collection == collection,
                DocumentRow.doc_id.in_(ids),
            ).delete(synchronize_session=False)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            self._logger.error(f"Error deleting from '{collection}': {str(e)}")
            raise StoreError(f"Failed to delete from '{collection}': {e}") from e
        finally:
            session.close()
