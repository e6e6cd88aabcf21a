"""
Filters and query composition.

A `Filter` is an immutable conjunction of field-equality criteria and Python
predicates. Stores may push the criteria down to their backend; predicates are
always evaluated in Python against hydrated entities.

`compose_filter` folds a type's registered query behaviors and the soft-delete
and version exclusions onto a caller-supplied base filter.
"""
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple, Union

if TYPE_CHECKING:
    from docmatic.config import TypeConfig

EntityPredicate = Callable[[Any], bool]
FilterLike = Union["Filter", Mapping, EntityPredicate, None]

_MISSING = object()


class Filter:
    """Conjunction of `field == value` criteria and entity predicates."""

    __slots__ = ("_criteria", "_predicates")

    def __init__(
        self,
        criteria: Optional[Mapping] = None,
        predicates: Tuple[EntityPredicate, ...] = (),
    ) -> None:
        self._criteria: Dict[str, Any] = dict(criteria or {})
        self._predicates: Tuple[EntityPredicate, ...] = tuple(predicates)

    @classmethod
    def where(cls, **criteria: Any) -> "Filter":
        return cls(criteria)

    @classmethod
    def of(cls, value: FilterLike) -> "Filter":
        """Coerce None, a Filter, a mapping or a predicate into a Filter."""
        if value is None:
            return cls()
        if isinstance(value, Filter):
            return value
        if isinstance(value, Mapping):
            return cls(value)
        if callable(value):
            return cls(predicates=(value,))
        raise TypeError(f"Cannot build a Filter from {type(value).__name__}")

    @property
    def criteria(self) -> Dict[str, Any]:
        return dict(self._criteria)

    @property
    def predicates(self) -> Tuple[EntityPredicate, ...]:
        return self._predicates

    @property
    def is_empty(self) -> bool:
        return not self._criteria and not self._predicates

    def __and__(self, other: FilterLike) -> "Filter":
        other = Filter.of(other)
        merged = dict(self._criteria)
        predicates = list(self._predicates)
        for field, value in other._criteria.items():
            existing = merged.get(field, _MISSING)
            if existing is _MISSING:
                merged[field] = value
            elif existing != value:
                # Conflicting equality on the same field; keep both via a predicate
                predicates.append(_field_equals(field, value))
        predicates.extend(other._predicates)
        return Filter(merged, tuple(predicates))

    def matches(self, entity: Any) -> bool:
        for field, expected in self._criteria.items():
            if getattr(entity, field, _MISSING) != expected:
                return False
        return all(predicate(entity) for predicate in self._predicates)

    def describe(self) -> str:
        parts = [f"{field} == {value!r}" for field, value in self._criteria.items()]
        parts.extend(_describe_predicate(p) for p in self._predicates)
        return " AND ".join(parts) if parts else "<all>"

    def __repr__(self) -> str:
        return f"Filter({self.describe()})"


def _field_equals(field: str, value: Any) -> EntityPredicate:
    def predicate(entity: Any) -> bool:
        return getattr(entity, field, _MISSING) == value
    predicate.description = f"{field} == {value!r}"  # type: ignore[attr-defined]
    return predicate


def _describe_predicate(predicate: EntityPredicate) -> str:
    description = getattr(predicate, "description", None)
    if description:
        return str(description)
    name = getattr(predicate, "__qualname__", None) or getattr(predicate, "__name__", None)
    return f"<{name or type(predicate).__name__}>"


def compose_filter(
    type_config: "TypeConfig",
    base: FilterLike = None,
    include_deleted: bool = False,
    include_versions: bool = False,
    apply_behaviors: bool = True,
) -> Filter:
    """
    Build the effective filter for a list/find/point query.

    Args:
        type_config: Configuration of the queried entity type
        base: Caller filter; None for an unconstrained query
        include_deleted: Skip the `is_deleted == False` exclusion
        include_versions: Skip the `is_version == False` exclusion
        apply_behaviors: Fold the registered query behaviors in (off for point lookups)

    Returns:
        base AND behaviors AND exclusions
    """
    flt = Filter.of(base)

    if apply_behaviors:
        for behavior in type_config.query_behaviors:
            flt = flt & behavior

    if type_config.enable_soft_delete and not include_deleted:
        flt = flt & Filter.where(is_deleted=False)

    if type_config.enable_versioning and not include_versions:
        flt = flt & Filter.where(is_version=False)

    return flt
