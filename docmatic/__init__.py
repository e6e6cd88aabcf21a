"""
docmatic: a persistence-lifecycle engine for pydantic documents.

Entities get a uniform save/delete/query lifecycle with opt-in soft delete,
versioning, hooks, query behaviors, validation gating and user auditing.
"""
from docmatic.config import CapabilityHook, ConfigRegistry, GlobalConfig, TypeConfig
from docmatic.engine import LifecycleEngine
from docmatic.entity import LIFECYCLE_FIELDS, Entity
from docmatic.errors import CollectionNotFoundError, ConfigurationError, DocmaticError, StoreError
from docmatic.query import Filter, compose_filter
from docmatic.storage import DocumentStore, InMemoryDocumentStore, SqlDocumentStore, open_store
from docmatic.validation import (
    Length, Pattern, Predicate, Range, Required, ValidateChild, ValidationResult, validate
)

__all__ = [
    "CapabilityHook", "ConfigRegistry", "GlobalConfig", "TypeConfig",
    "LifecycleEngine",
    "Entity", "LIFECYCLE_FIELDS",
    "DocmaticError", "ConfigurationError", "StoreError", "CollectionNotFoundError",
    "Filter", "compose_filter",
    "DocumentStore", "InMemoryDocumentStore", "SqlDocumentStore", "open_store",
    "Length", "Pattern", "Predicate", "Range", "Required", "ValidateChild",
    "ValidationResult", "validate",
]
