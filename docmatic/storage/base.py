"""
Document store collaborator interface.

The lifecycle engine only needs filtered point/bulk lookups, insert-or-replace
writes keyed by identifier, delete-by-identifier and collection drops. Every
write must be acknowledged before the call returns.
"""
from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar
from uuid import UUID

from docmatic.entity import Entity
from docmatic.query import Filter, FilterLike

E = TypeVar('E', bound=Entity)


class DocumentStore(Protocol):
    """
    Generic interface for persisting entities as schemaless documents.
    Collections are named by `Entity.collection_name()`.
    """
    def find_all(self, entity_type: Type[E], flt: FilterLike = None) -> List[E]: ...
    def find_one(self, entity_type: Type[E], flt: FilterLike = None) -> Optional[E]: ...
    def save(self, entity: E) -> E: ...
    def delete(self, entity: Entity) -> None: ...
    def delete_many(self, entity_type: Type[Entity], flt: FilterLike = None) -> int: ...
    def drop_collection(self, name: str) -> None: ...
    def get_store_status(self) -> Dict[str, Any]: ...


def hydrate(entity_type: Type[E], document: Dict[str, Any]) -> E:
    """Rebuild an entity from its stored JSON document."""
    return entity_type.model_validate(document)


def id_criterion(flt: Filter) -> Optional[Any]:
    """The `id` equality criterion of a filter, if any, for point lookups."""
    return flt.criteria.get("id")


def as_uuid(value: Any) -> UUID:
    """Normalise an identifier given as a UUID or its string form."""
    return value if isinstance(value, UUID) else UUID(str(value))
