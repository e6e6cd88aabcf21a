"""
Validation engine.

Walks a model's fields in declaration order, evaluating each field's rules and
descending into `ValidateChild` fields depth-first. Pure: no side effects and
no I/O.
"""
import logging
from collections.abc import Mapping
from typing import Iterable, List, Type

from pydantic import BaseModel

from docmatic.validation.rules import Rule, ValidateChild, ValidationResult

logger = logging.getLogger("Validation")


def field_rules(model_type: Type[BaseModel], field_name: str) -> List[Rule]:
    """Rules attached to a field through `Annotated` metadata."""
    field = model_type.model_fields[field_name]
    return [m for m in field.metadata if isinstance(m, Rule)]


def validate(model: BaseModel) -> List[ValidationResult]:
    """
    Validate a model instance against its declarative rules.

    Returns:
        All violations, depth-first in field-declaration order; empty when valid
    """
    results: List[ValidationResult] = []
    _validate_model(model, "", results)
    if results:
        logger.debug(f"{type(model).__name__}: {len(results)} validation error(s)")
    return results


def _validate_model(model: BaseModel, path: str, results: List[ValidationResult]) -> None:
    own_errors = len(results)

    for name in type(model).model_fields:
        value = getattr(model, name, None)
        member = f"{path}{name}"
        rules = field_rules(type(model), name)

        for rule in rules:
            message = rule.check(value, name)
            if message:
                results.append(ValidationResult(message=message, members=[member]))

        if any(isinstance(rule, ValidateChild) for rule in rules):
            _validate_children(value, member, results)

    # Object-level checks only run once every field rule has passed
    hook = getattr(model, "validate_entity", None)
    if len(results) == own_errors and callable(hook):
        for result in hook() or ():
            results.append(_prefixed(result, path))


def _validate_children(value: object, member: str, results: List[ValidationResult]) -> None:
    if value is None:
        return
    if isinstance(value, BaseModel):
        _validate_model(value, f"{member}.", results)
    elif isinstance(value, Mapping):
        for key, item in value.items():
            if isinstance(item, BaseModel):
                _validate_model(item, f"{member}.{key}.", results)
    elif isinstance(value, Iterable) and not isinstance(value, (str, bytes)):
        for index, item in enumerate(value):
            if isinstance(item, BaseModel):
                _validate_model(item, f"{member}.{index}.", results)


def _prefixed(result: ValidationResult, path: str) -> ValidationResult:
    if not path:
        return result
    return ValidationResult(
        message=result.message,
        members=[f"{path}{m}" for m in result.members],
    )
