"""
Declarative validation for entities.

This package provides field rules attached through `Annotated` metadata and the
engine that evaluates them, including deep validation of nested models.
"""
from .rules import (
    Length, Pattern, Predicate, Range, Required, Rule, ValidateChild, ValidationResult
)
from .validator import field_rules, validate

__all__ = [
    "Length", "Pattern", "Predicate", "Range", "Required", "Rule",
    "ValidateChild", "ValidationResult", "field_rules", "validate",
]
