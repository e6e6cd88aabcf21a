############################################################
# entity.py
############################################################

"""
Base model for every document managed by the lifecycle engine.

Key concepts:

1. ENGINE-OWNED FIELDS:
   - `id` is assigned by the store on the first successful save and is `None`
     on a transient instance
   - `date_created` is set once, `date_updated` on every save
   - `is_deleted` / `date_deleted` mark soft-deleted documents
   - `is_version` / `date_versioned` / `version_of_id` mark version snapshots
   - `updated_by` carries the audited user identity

2. CAPABILITIES:
   - A capability is a plain marker class mixed into the entity type
   - Capability-scoped hooks apply to every entity type whose MRO contains
     the marker (see `docmatic.config.CapabilityHook`)

3. VALIDATION:
   - Field rules live in `Annotated` metadata and are evaluated lazily by
     `docmatic.validation`, never at construction time
   - `entity.errors` always reflects the current in-memory state

Example Usage:
```python
class Tenanted:
    '''Marker for multi-tenant documents.'''

class Order(Entity, Tenanted):
    customer_name: Annotated[str, Required()] = ""
    tenant: str = "acme"

order = Order()
order.errors  # [ValidationResult(message="customer_name is required", ...)]
```
"""

from datetime import datetime
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from docmatic.validation import ValidationResult, validate

LIFECYCLE_FIELDS: FrozenSet[str] = frozenset({
    'id', 'date_created', 'date_updated',
    'is_deleted', 'date_deleted',
    'is_version', 'date_versioned', 'version_of_id',
    'updated_by',
})

# Identities the audit field rebuilds from JSON. UUID is tried first so a
# stored UUID string comes back as a UUID; str before int keeps "42" a string.
AuditIdentity = Union[UUID, str, int]


class Entity(BaseModel):
    """
    Base class for documents with a managed save/delete/query lifecycle.

    Attributes:
        id: Store-assigned identifier, None until the first save
        date_created: Timestamp of the first successful save
        date_updated: Timestamp of the latest save, soft delete or version save
        is_deleted: Soft-delete marker
        date_deleted: When the document was soft deleted
        is_version: Whether this document is an immutable version snapshot
        date_versioned: When the version snapshot was taken
        version_of_id: Identifier of the document this version was taken from
        updated_by: Identity returned by the current-user provider. The base
            type rebuilds UUID, str and int identities; subclasses auditing
            other identity types redeclare the field with that type
    """
    id: Optional[UUID] = Field(default=None, description="Store-assigned identifier")
    date_created: Optional[datetime] = None
    date_updated: Optional[datetime] = None
    is_deleted: bool = False
    date_deleted: Optional[datetime] = None
    is_version: bool = False
    date_versioned: Optional[datetime] = None
    version_of_id: Optional[UUID] = None
    updated_by: Optional[AuditIdentity] = Field(default=None, union_mode="left_to_right")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Overrides the collection name; defaults to the class name.
    __collection__: ClassVar[Optional[str]] = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id})"

    @property
    def errors(self) -> List[ValidationResult]:
        """Validation results for the current state; empty when valid."""
        return validate(self)

    @property
    def is_transient(self) -> bool:
        """True until the store has assigned an identifier."""
        return self.id is None

    @classmethod
    def collection_name(cls) -> str:
        return cls.__collection__ or cls.__name__

    def document_dump(self) -> dict:
        """JSON-compatible representation as written to the store."""
        return self.model_dump(mode="json")

    def content_dump(self) -> Dict[str, Any]:
        """Field values excluding the engine-owned `LIFECYCLE_FIELDS`."""
        return self.model_dump(exclude=set(LIFECYCLE_FIELDS))
