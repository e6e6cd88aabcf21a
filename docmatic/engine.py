############################################################
# engine.py
############################################################

"""
Lifecycle engine.

Orchestrates save, delete, versioning and queries for every entity type,
composing the opt-in behaviors held by a `ConfigRegistry`.

1. SAVE PIPELINE (early-exit guards, terminal state persisted or rejected):
   - Soft-deleted documents (soft delete on) and version documents
     (versioning on) are returned unchanged
   - Before-save hooks run; any False rejects the save
   - Validation errors reject the save
   - Timestamps and audit user are stamped, then the document is written and
     the write acknowledged
   - With versioning on, the persisted state is read back and written again
     as a new version document
   - After-save hooks run and the save is logged

2. DELETE PIPELINE:
   - Before-delete hooks run; any False rejects the delete
   - Soft delete on: mark and rewrite the document directly (no save pipeline)
   - Otherwise: remove every version of the document, then the document
   - After-delete hooks run

3. QUERIES:
   - list/find queries fold in the type's query behaviors
   - every query excludes soft-deleted and version documents unless asked not to
   - point lookups by id skip the query behaviors

Rejections (guards, hooks, validation) are silent no-ops. Only store failures
raise, as `StoreError`; every store call goes through `_call_store`.

Example Usage:
```python
registry = ConfigRegistry(GlobalConfig(connection_string="memory://app"))
registry.enable_versioning(Widget)
engine = LifecycleEngine(registry)

widget = engine.save(Widget(name="A"))
engine.get_versions(widget)  # [Widget(...)] with is_version=True
```
"""
import logging
from typing import Any, Callable, List, Optional, Type, TypeVar, Union
from uuid import UUID

from docmatic.behaviors import run_after, run_before
from docmatic.config import ConfigRegistry, TypeConfig
from docmatic.entity import Entity
from docmatic.errors import CollectionNotFoundError, StoreError
from docmatic.query import Filter, FilterLike, compose_filter
from docmatic.storage import DocumentStore, as_uuid
from docmatic.validation import validate

E = TypeVar('E', bound=Entity)
R = TypeVar('R')


class LifecycleEngine:
    """
    Save/delete/query entry points for entities, driven by a ConfigRegistry.

    Operations are synchronous and perform no background work. Concurrent
    saves of the same document are last-write-wins at the store.
    """
    _logger = logging.getLogger("LifecycleEngine")

    def __init__(self, registry: Optional[ConfigRegistry] = None) -> None:
        self.registry = registry or ConfigRegistry()

    ##############################
    # Save
    ##############################

    def save(self, entity: E) -> E:
        """
        Create or update the entity in its store.

        With versioning enabled a version document is created for every
        successful save, whether or not anything changed.

        Returns:
            The same instance; unchanged if a guard, hook or validation rejected it
        """
        entity_type = type(entity)
        config = self.registry.get_type_config(entity_type)
        global_config = self.registry.get_global_config()

        if config.enable_soft_delete and entity.is_deleted:
            self._logger.debug(f"Skipping save of soft-deleted {entity_type.__name__}({entity.id})")
            return entity
        if config.enable_versioning and entity.is_version:
            self._logger.debug(f"Skipping save of version document {entity_type.__name__}({entity.id})")
            return entity

        if not run_before(
            entity,
            global_config.capability_hooks("before_save", entity_type),
            config.before_save,
        ):
            return entity

        errors = validate(entity)
        if errors:
            self._logger.debug(
                f"Skipping save of invalid {entity_type.__name__}({entity.id}): "
                f"{'; '.join(e.message for e in errors)}"
            )
            return entity

        now = global_config.clock()
        if entity.date_created is None:
            entity.date_created = now
        entity.date_updated = now

        if config.enable_user_auditing and global_config.current_user_provider is not None:
            entity.updated_by = global_config.current_user_provider()

        store = self._store(entity_type)
        self._write(store, entity)

        if config.enable_versioning:
            self._save_version(store, entity, config)

        run_after(
            entity,
            global_config.capability_hooks("after_save", entity_type),
            config.after_save,
        )

        self._emit(f"SAVED -- Type: {entity_type.__name__}, Id: {entity.id}")
        return entity

    def _save_version(self, store: DocumentStore, entity: E, config: TypeConfig) -> E:
        """Write a snapshot of the persisted state as a new version document."""
        entity_type = type(entity)
        clone = self._call_store(
            f"read back {entity_type.__name__}({entity.id})",
            store.find_one, entity_type, Filter.where(id=entity.id),
        )
        if clone is None:
            raise StoreError(
                f"{entity_type.__name__}({entity.id}) was not readable after an acknowledged write"
            )

        clone.id = None
        clone.is_version = True
        clone.version_of_id = entity.id
        clone.date_versioned = self.registry.get_global_config().clock()
        self._write(store, clone)

        self._emit(
            f"VERSIONED -- Type: {entity_type.__name__}, Source Id: {entity.id}, Version Id: {clone.id}"
        )
        return clone

    ##############################
    # Delete
    ##############################

    def delete(self, entity: Entity) -> None:
        """
        Soft delete or remove the entity, depending on the type's soft delete
        setting. Hard deletes also remove every version of the entity.

        Versions and already soft-deleted documents are not guarded here the
        way `save` guards them.
        """
        entity_type = type(entity)
        config = self.registry.get_type_config(entity_type)
        global_config = self.registry.get_global_config()

        if not run_before(
            entity,
            global_config.capability_hooks("before_delete", entity_type),
            config.before_delete,
        ):
            return

        store = self._store(entity_type)
        if config.enable_soft_delete:
            self._soft_delete(store, entity)
        else:
            if config.enable_versioning:
                self._delete_versions(store, entity)
            self._call_store(f"delete {entity_type.__name__}({entity.id})", store.delete, entity)
            self._emit(f"DELETE -- Type: {entity_type.__name__}, Id: {entity.id}")

        run_after(
            entity,
            global_config.capability_hooks("after_delete", entity_type),
            config.after_delete,
        )

    def _soft_delete(self, store: DocumentStore, entity: Entity) -> None:
        now = self.registry.get_global_config().clock()
        entity.is_deleted = True
        entity.date_deleted = now
        entity.date_updated = now
        self._write(store, entity)
        self._emit(f"SOFT DELETE -- Type: {type(entity).__name__}, Id: {entity.id}")

    def _delete_versions(self, store: DocumentStore, entity: Entity) -> int:
        if entity.id is None:
            return 0
        removed = self._call_store(
            f"delete versions of {type(entity).__name__}({entity.id})",
            store.delete_many, type(entity), Filter.where(version_of_id=entity.id),
        )
        self._logger.debug(f"Removed {removed} version(s) of {type(entity).__name__}({entity.id})")
        return removed

    def delete_all(self, entity_type: Type[Entity]) -> None:
        """
        Drop the type's whole collection. Soft delete is NOT respected: every
        document, versions included, is permanently removed.
        """
        store = self._store(entity_type)
        try:
            self._call_store(
                f"drop collection {entity_type.collection_name()}",
                store.drop_collection, entity_type.collection_name(),
            )
        except CollectionNotFoundError:
            self._logger.debug(f"Collection {entity_type.collection_name()} did not exist")
        self._emit(f"DELETE ALL -- Type: {entity_type.__name__}")

    ##############################
    # Versions
    ##############################

    def get_versions(self, entity: E) -> List[E]:
        """All versions of the entity, newest `date_updated` first."""
        entity_type = type(entity)
        if entity.id is None:
            return []
        flt = Filter.where(is_version=True, version_of_id=entity.id)
        self._emit(f"QUERY -- Type: {entity_type.__name__}, Filter: {flt.describe()}")
        versions = self._find_all(entity_type, flt)
        # Reverse first so equal timestamps keep the most recent write first
        return sorted(reversed(versions), key=_updated_key, reverse=True)

    ##############################
    # Queries
    ##############################

    def all(
        self,
        entity_type: Type[E],
        include_deleted: bool = False,
        include_versions: bool = False,
    ) -> List[E]:
        return self.find(entity_type, None, include_deleted, include_versions)

    def find(
        self,
        entity_type: Type[E],
        where: FilterLike = None,
        include_deleted: bool = False,
        include_versions: bool = False,
    ) -> List[E]:
        """Entities matching `where` AND the type's query behaviors AND the exclusions."""
        flt = self._compose(entity_type, where, include_deleted, include_versions)
        return self._find_all(entity_type, flt)

    def find_one(
        self,
        entity_type: Type[E],
        where: FilterLike = None,
        include_deleted: bool = False,
        include_versions: bool = False,
    ) -> Optional[E]:
        flt = self._compose(entity_type, where, include_deleted, include_versions)
        return self._find_one(entity_type, flt)

    def count(
        self,
        entity_type: Type[Entity],
        where: FilterLike = None,
        include_deleted: bool = False,
        include_versions: bool = False,
    ) -> int:
        return len(self.find(entity_type, where, include_deleted, include_versions))

    def get_by_id(
        self,
        entity_type: Type[E],
        entity_id: Union[UUID, str],
        include_deleted: bool = False,
        include_versions: bool = False,
    ) -> Optional[E]:
        """
        Point lookup by id; query behaviors are not applied, exclusions are.

        Raises:
            ValueError: If `entity_id` is a string that is not a UUID
        """
        flt = self._compose(
            entity_type, Filter.where(id=as_uuid(entity_id)), include_deleted, include_versions,
            apply_behaviors=False,
        )
        return self._find_one(entity_type, flt)

    def get_ref(self, ref_type: Type[E], ref_id: Union[UUID, str, None]) -> Optional[E]:
        """
        Resolve a reference to another document by id, using the referenced
        type's own store. No behaviors or exclusions are applied.
        """
        if ref_id is None:
            return None
        return self._find_one(ref_type, Filter.where(id=as_uuid(ref_id)))

    ##############################
    # Internals
    ##############################

    def _compose(
        self,
        entity_type: Type[Entity],
        where: FilterLike,
        include_deleted: bool,
        include_versions: bool,
        apply_behaviors: bool = True,
    ) -> Filter:
        config = self.registry.get_type_config(entity_type)
        flt = compose_filter(config, where, include_deleted, include_versions, apply_behaviors)
        self._emit(f"QUERY -- Type: {entity_type.__name__}, Filter: {flt.describe()}")
        return flt

    def _store(self, entity_type: Type[Entity]) -> DocumentStore:
        return self.registry.resolve_store(entity_type)

    def _find_all(self, entity_type: Type[E], flt: Filter) -> List[E]:
        return self._call_store(
            f"query {entity_type.__name__}", self._store(entity_type).find_all, entity_type, flt
        )

    def _find_one(self, entity_type: Type[E], flt: Filter) -> Optional[E]:
        return self._call_store(
            f"query {entity_type.__name__}", self._store(entity_type).find_one, entity_type, flt
        )

    def _write(self, store: DocumentStore, entity: Entity) -> Entity:
        """Synchronous insert-or-replace; the store returns once the write is acknowledged."""
        persisted = self._call_store(
            f"write {type(entity).__name__}({entity.id})", store.save, entity
        )
        entity.id = persisted.id
        return entity

    def _call_store(self, action: str, operation: Callable[..., R], *args: Any) -> R:
        """
        Run one store operation. `StoreError` and its subclasses pass through
        unchanged; any other failure is logged and re-raised as `StoreError`.
        """
        try:
            return operation(*args)
        except StoreError:
            raise
        except Exception as e:
            self._logger.error(f"Store failed to {action}: {str(e)}")
            raise StoreError(f"Failed to {action}: {e}") from e

    def _emit(self, message: str) -> None:
        self._logger.info(message)
        listener = self.registry.get_global_config().log_listener
        if listener is not None:
            listener(message)


def _updated_key(entity: Entity) -> Any:
    return entity.date_updated.timestamp() if entity.date_updated is not None else float("-inf")
