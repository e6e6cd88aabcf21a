"""
Configuration registry for the lifecycle engine.

Configuration is an explicitly constructed object rather than process-wide
state. A `ConfigRegistry` is built and populated during application start-up,
then handed to a `LifecycleEngine`; after that it is only read.

Main components:
- GlobalConfig: connection string, current-user provider, log listener, clock
  and capability-scoped hook lists
- TypeConfig: per-entity-type flags, query behaviors, hook lists and an
  optional connection string override
- ConfigRegistry: lazily creates one TypeConfig per type and exposes the
  registration API

Registration is additive and not synchronised; finish it before the first
save/delete/find on the affected types.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from docmatic.entity import Entity
from docmatic.errors import ConfigurationError
from docmatic.query import Filter, FilterLike
from docmatic.storage import DocumentStore, open_store

CONNECTION_STRING_ENV = "DOCMATIC_CONNECTION_STRING"
DEFAULT_CONNECTION_STRING = "memory://default"

BeforeHook = Callable[[Any], bool]
AfterHook = Callable[[Any], None]
H = TypeVar('H', bound=Callable[..., Any])


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


##############################
# 1) Config models
##############################

class CapabilityHook(BaseModel):
    """A hook registered against a capability marker instead of a concrete type."""
    capability: Type[Any]
    handler: Callable[[Any], Any]

    def applies_to(self, entity_type: type) -> bool:
        return issubclass(entity_type, self.capability)


class GlobalConfig(BaseModel):
    """Settings shared by every entity type."""
    connection_string: str = DEFAULT_CONNECTION_STRING
    current_user_provider: Optional[Callable[[], Any]] = None
    log_listener: Optional[Callable[[str], None]] = None
    clock: Callable[[], datetime] = utc_now

    before_save: List[CapabilityHook] = Field(default_factory=list)
    after_save: List[CapabilityHook] = Field(default_factory=list)
    before_delete: List[CapabilityHook] = Field(default_factory=list)
    after_delete: List[CapabilityHook] = Field(default_factory=list)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @classmethod
    def from_env(cls, **overrides: Any) -> "GlobalConfig":
        """Build a config from the environment (and a `.env` file, if present)."""
        load_dotenv()
        values: Dict[str, Any] = {
            "connection_string": os.getenv(CONNECTION_STRING_ENV, DEFAULT_CONNECTION_STRING),
        }
        values.update(overrides)
        return cls(**values)

    def capability_hooks(self, kind: str, entity_type: type) -> List[Callable[[Any], Any]]:
        """Handlers of one hook list whose capability the entity type carries."""
        hooks: List[CapabilityHook] = getattr(self, kind)
        return [hook.handler for hook in hooks if hook.applies_to(entity_type)]


class TypeConfig(BaseModel):
    """Settings for a single entity type."""
    entity_type: Type[Entity]
    enable_soft_delete: bool = False
    enable_versioning: bool = False
    enable_user_auditing: bool = False

    query_behaviors: List[Filter] = Field(default_factory=list)
    before_save: List[BeforeHook] = Field(default_factory=list)
    after_save: List[AfterHook] = Field(default_factory=list)
    before_delete: List[BeforeHook] = Field(default_factory=list)
    after_delete: List[AfterHook] = Field(default_factory=list)

    connection_string_provider: Optional[Callable[[], str]] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def type_name(self) -> str:
        return self.entity_type.__name__


##############################
# 2) Registry
##############################

class ConfigRegistry:
    """
    Holds the global config, one TypeConfig per entity type and the stores
    opened for each connection string.
    """
    _logger = logging.getLogger("ConfigRegistry")

    def __init__(self, global_config: Optional[GlobalConfig] = None) -> None:
        self._global = global_config or GlobalConfig()
        self._type_configs: Dict[type, TypeConfig] = {}
        self._stores: Dict[str, DocumentStore] = {}

    # Lookups

    def get_global_config(self) -> GlobalConfig:
        return self._global

    def get_type_config(self, entity_type: Type[Entity]) -> TypeConfig:
        """Return the type's config, creating it on first reference."""
        config = self._type_configs.get(entity_type)
        if config is None:
            _require_entity_type(entity_type)
            config = TypeConfig(entity_type=entity_type)
            self._type_configs[entity_type] = config
            self._logger.debug(f"Created type config for {entity_type.__name__}")
        return config

    def configured_types(self) -> List[type]:
        return list(self._type_configs)

    # Flags

    def enable_soft_delete(self, entity_type: Type[Entity]) -> TypeConfig:
        config = self.get_type_config(entity_type)
        config.enable_soft_delete = True
        self._logger.info(f"Soft delete enabled for {entity_type.__name__}")
        return config

    def enable_versioning(self, entity_type: Type[Entity]) -> TypeConfig:
        config = self.get_type_config(entity_type)
        config.enable_versioning = True
        self._logger.info(f"Versioning enabled for {entity_type.__name__}")
        return config

    def enable_user_auditing(self, entity_type: Type[Entity]) -> TypeConfig:
        config = self.get_type_config(entity_type)
        config.enable_user_auditing = True
        self._logger.info(f"User auditing enabled for {entity_type.__name__}")
        return config

    # Type-scoped behaviors

    def add_query_behavior(self, entity_type: Type[Entity], predicate: FilterLike) -> TypeConfig:
        """AND a predicate (callable, mapping or Filter) into every list/find query."""
        if predicate is None:
            raise ConfigurationError("A query behavior cannot be None")
        config = self.get_type_config(entity_type)
        config.query_behaviors.append(Filter.of(predicate))
        return config

    def add_before_save_behavior(self, entity_type: Type[Entity], predicate: BeforeHook) -> TypeConfig:
        return self._add_type_hook(entity_type, "before_save", predicate)

    def add_after_save_behavior(self, entity_type: Type[Entity], action: AfterHook) -> TypeConfig:
        return self._add_type_hook(entity_type, "after_save", action)

    def add_before_delete_behavior(self, entity_type: Type[Entity], predicate: BeforeHook) -> TypeConfig:
        return self._add_type_hook(entity_type, "before_delete", predicate)

    def add_after_delete_behavior(self, entity_type: Type[Entity], action: AfterHook) -> TypeConfig:
        return self._add_type_hook(entity_type, "after_delete", action)

    # Decorator forms

    def query_behavior(self, entity_type: Type[Entity]) -> Callable[[H], H]:
        return self._decorator(lambda fn: self.add_query_behavior(entity_type, fn))

    def before_save(self, entity_type: Type[Entity]) -> Callable[[H], H]:
        return self._decorator(lambda fn: self.add_before_save_behavior(entity_type, fn))

    def after_save(self, entity_type: Type[Entity]) -> Callable[[H], H]:
        return self._decorator(lambda fn: self.add_after_save_behavior(entity_type, fn))

    def before_delete(self, entity_type: Type[Entity]) -> Callable[[H], H]:
        return self._decorator(lambda fn: self.add_before_delete_behavior(entity_type, fn))

    def after_delete(self, entity_type: Type[Entity]) -> Callable[[H], H]:
        return self._decorator(lambda fn: self.add_after_delete_behavior(entity_type, fn))

    # Capability-scoped behaviors

    def add_capability_before_save_behavior(self, capability: type, predicate: BeforeHook) -> GlobalConfig:
        return self._add_capability_hook(capability, "before_save", predicate)

    def add_capability_after_save_behavior(self, capability: type, action: AfterHook) -> GlobalConfig:
        return self._add_capability_hook(capability, "after_save", action)

    def add_capability_before_delete_behavior(self, capability: type, predicate: BeforeHook) -> GlobalConfig:
        return self._add_capability_hook(capability, "before_delete", predicate)

    def add_capability_after_delete_behavior(self, capability: type, action: AfterHook) -> GlobalConfig:
        return self._add_capability_hook(capability, "after_delete", action)

    # Providers

    def set_current_user_provider(self, provider: Optional[Callable[[], Any]]) -> GlobalConfig:
        _require_callable(provider, "current user provider", optional=True)
        self._global.current_user_provider = provider
        return self._global

    def set_log_listener(self, listener: Optional[Callable[[str], None]]) -> GlobalConfig:
        _require_callable(listener, "log listener", optional=True)
        self._global.log_listener = listener
        return self._global

    def set_connection_string_provider(
        self, entity_type: Type[Entity], provider: Optional[Callable[[], str]]
    ) -> TypeConfig:
        _require_callable(provider, "connection string provider", optional=True)
        config = self.get_type_config(entity_type)
        config.connection_string_provider = provider
        return config

    # Stores

    def resolve_connection_string(self, entity_type: Type[Entity]) -> str:
        provider = self.get_type_config(entity_type).connection_string_provider
        if provider is not None:
            return provider()
        return self._global.connection_string

    def resolve_store(self, entity_type: Type[Entity]) -> DocumentStore:
        """Store for the type's connection string, opened once and cached."""
        connection_string = self.resolve_connection_string(entity_type)
        store = self._stores.get(connection_string)
        if store is None:
            store = open_store(connection_string)
            self._stores[connection_string] = store
        return store

    def register_store(self, connection_string: str, store: DocumentStore) -> None:
        """Bind an existing store to a connection string."""
        self._stores[connection_string] = store
        self._logger.info(f"Registered {type(store).__name__} for {connection_string!r}")

    # Internals

    def _add_type_hook(self, entity_type: Type[Entity], kind: str, handler: Callable[..., Any]) -> TypeConfig:
        _require_callable(handler, kind.replace("_", "-") + " behavior")
        config = self.get_type_config(entity_type)
        getattr(config, kind).append(handler)
        self._logger.debug(f"Added {kind} behavior to {entity_type.__name__}")
        return config

    def _add_capability_hook(self, capability: type, kind: str, handler: Callable[..., Any]) -> GlobalConfig:
        if not isinstance(capability, type):
            raise ConfigurationError(f"Capability must be a class, got {capability!r}")
        _require_callable(handler, kind.replace("_", "-") + " behavior")
        getattr(self._global, kind).append(CapabilityHook(capability=capability, handler=handler))
        self._logger.debug(f"Added {kind} behavior for capability {capability.__name__}")
        return self._global

    @staticmethod
    def _decorator(register: Callable[[Any], Any]) -> Callable[[H], H]:
        def decorator(fn: H) -> H:
            register(fn)
            return fn
        return decorator


def _require_entity_type(entity_type: Any) -> None:
    if not (isinstance(entity_type, type) and issubclass(entity_type, Entity)):
        raise ConfigurationError(f"{entity_type!r} is not an Entity subclass")


def _require_callable(value: Any, what: str, optional: bool = False) -> None:
    if value is None and optional:
        return
    if not callable(value):
        raise ConfigurationError(f"The {what} must be callable, got {value!r}")
