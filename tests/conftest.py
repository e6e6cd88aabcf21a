"""
Common fixtures and setup for lifecycle tests.
Provides test entity classes, a deterministic clock and a fresh registry,
engine and in-memory store per test.
"""
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, List, Optional, Type

import pytest
from pydantic import BaseModel, Field

from docmatic import (
    CollectionNotFoundError, ConfigRegistry, Entity, GlobalConfig, InMemoryDocumentStore,
    LifecycleEngine, Length, Range, Required, ValidateChild,
)


# Custom test markers
def pytest_configure(config):
    """Configure custom markers."""
    markers = [
        "sql: marks tests that run against the SQLAlchemy document store",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)


# ========================================================================
# Capability markers
# ========================================================================

class Tenanted:
    """Marker for documents scoped to a tenant."""


class Tracked:
    """Marker for documents whose changes are recorded by a hook."""


# ========================================================================
# Test entity classes
# ========================================================================

class Widget(Entity):
    """A plain entity with no rules."""
    name: str = ""
    size: int = 0


class Gadget(Entity, Tenanted, Tracked):
    """Entity carrying two capabilities."""
    name: str = ""
    tenant: str = "acme"


class Customer(Entity, Tenanted):
    name: str = ""
    tenant: str = "acme"


class OrderLine(BaseModel):
    """Nested value validated through ValidateChild."""
    sku: Annotated[str, Required()] = ""
    quantity: Annotated[int, Range(1, 100)] = 1


class Order(Entity):
    """Entity with declarative and deep validation rules."""
    customer_name: Annotated[str, Required()] = ""
    lines: Annotated[List[OrderLine], ValidateChild()] = Field(default_factory=list)
    note: Annotated[Optional[str], Length(max=20)] = None
    customer_id: Optional[str] = None


class Shipment(Entity):
    """Nested value without ValidateChild, never inspected."""
    line: Optional[OrderLine] = None


# ========================================================================
# Helpers
# ========================================================================

class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)):
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.step = step
        self.calls = 0

    def __call__(self) -> datetime:
        self.current = self.current + self.step
        self.calls += 1
        return self.current


class FailingStore:
    """Store whose every operation fails with a connection error."""

    def __init__(self) -> None:
        self.attempts = 0

    def _fail(self) -> None:
        self.attempts += 1
        raise ConnectionError("store unreachable")

    def find_all(self, entity_type: Type[Any], flt: Any = None) -> List[Any]:
        self._fail()

    def find_one(self, entity_type: Type[Any], flt: Any = None) -> Optional[Any]:
        self._fail()

    def save(self, entity: Any) -> Any:
        self._fail()

    def delete(self, entity: Any) -> None:
        self._fail()

    def delete_many(self, entity_type: Type[Any], flt: Any = None) -> int:
        self._fail()

    def drop_collection(self, name: str) -> None:
        self._fail()

    def get_store_status(self) -> Dict[str, Any]:
        return {"storage": "failing"}


class StrictCollectionStore(InMemoryDocumentStore):
    """In-memory store that reports dropping an unknown collection."""

    def drop_collection(self, name: str) -> None:
        if name not in self._collections:
            raise CollectionNotFoundError(name)
        super().drop_collection(name)


# ========================================================================
# Fixtures
# ========================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def log_messages() -> List[str]:
    """Messages received by the registry's log listener."""
    return []


@pytest.fixture
def registry(clock, log_messages) -> ConfigRegistry:
    """A fresh registry using an in-memory store."""
    config = GlobalConfig(
        connection_string="memory://test",
        clock=clock,
        log_listener=log_messages.append,
    )
    return ConfigRegistry(config)


@pytest.fixture
def engine(registry) -> LifecycleEngine:
    return LifecycleEngine(registry)


@pytest.fixture
def store(registry) -> InMemoryDocumentStore:
    """The store every test entity type resolves to by default."""
    resolved = registry.resolve_store(Widget)
    assert isinstance(resolved, InMemoryDocumentStore)
    return resolved


@pytest.fixture
def saved_widget(engine) -> Widget:
    """A widget that has been saved once."""
    return engine.save(Widget(name="A", size=1))
