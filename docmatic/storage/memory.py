"""
In-memory document store.

Documents are kept as JSON-mode dumps so every read returns a fresh, detached
copy, the same way a remote store would.
"""
import logging
from typing import Any, Dict, List, Optional, Type
from uuid import UUID, uuid4

from docmatic.entity import Entity
from docmatic.query import Filter, FilterLike
from docmatic.storage.base import E, hydrate, id_criterion


class InMemoryDocumentStore:
    """Dictionary-backed store, one insertion-ordered dict per collection."""

    def __init__(self, name: str = "default") -> None:
        self.name = name
        self._logger = logging.getLogger("InMemoryDocumentStore")
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def find_all(self, entity_type: Type[E], flt: FilterLike = None) -> List[E]:
        flt = Filter.of(flt)
        documents = self._collections.get(entity_type.collection_name(), {})

        doc_id = id_criterion(flt)
        if doc_id is not None:
            document = documents.get(str(doc_id))
            candidates = [document] if document is not None else []
        else:
            candidates = list(documents.values())

        results = []
        for document in candidates:
            entity = hydrate(entity_type, document)
            if flt.matches(entity):
                results.append(entity)
        return results

    def find_one(self, entity_type: Type[E], flt: FilterLike = None) -> Optional[E]:
        matches = self.find_all(entity_type, flt)
        return matches[0] if matches else None

    def save(self, entity: E) -> E:
        """Insert or replace the entity's document, assigning an id when absent."""
        doc_id: UUID = entity.id or uuid4()
        document = entity.document_dump()
        document["id"] = str(doc_id)

        collection = self._collections.setdefault(type(entity).collection_name(), {})
        collection[str(doc_id)] = document
        entity.id = doc_id
        self._logger.debug(f"Stored {type(entity).__name__}({doc_id}) in '{self.name}'")
        return entity

    def delete(self, entity: Entity) -> None:
        if entity.id is None:
            return
        collection = self._collections.get(type(entity).collection_name(), {})
        collection.pop(str(entity.id), None)

    def delete_many(self, entity_type: Type[Entity], flt: FilterLike = None) -> int:
        collection = self._collections.get(entity_type.collection_name(), {})
        doomed = [str(e.id) for e in self.find_all(entity_type, flt)]
        for doc_id in doomed:
            collection.pop(doc_id, None)
        return len(doomed)

    def drop_collection(self, name: str) -> None:
        self._collections.pop(name, None)

    def clear(self) -> None:
        self._collections.clear()

    def get_store_status(self) -> Dict[str, Any]:
        return {
            "storage": "in_memory",
            "name": self.name,
            "collections": {name: len(docs) for name, docs in self._collections.items()},
        }
