"""
Declarative field rules.

Rules are attached to entity fields as `Annotated` metadata. pydantic keeps
unknown metadata objects on `FieldInfo.metadata` without enforcing them, so
an entity can be constructed in an invalid state and inspected later through
`entity.errors`.

```python
class Order(Entity):
    customer_name: Annotated[str, Required(), Length(max=80)] = ""
    lines: Annotated[List[OrderLine], ValidateChild()] = Field(default_factory=list)
```
"""
import re
from collections.abc import Sized
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, Field


class ValidationResult(BaseModel):
    """A single rule violation."""
    message: str
    members: List[str] = Field(default_factory=list)

    def __str__(self) -> str:
        return self.message


class Rule:
    """Base class for field rules. `check` returns an error message or None."""
    default_message = "{field} is invalid"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message

    def format(self, field: str, **extra: Any) -> str:
        return (self.message or self.default_message).format(field=field, **extra)

    def check(self, value: Any, field: str) -> Optional[str]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Required(Rule):
    """Fails on None and on empty or whitespace-only strings."""
    default_message = "{field} is required"

    def check(self, value: Any, field: str) -> Optional[str]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return self.format(field)
        return None


class Length(Rule):
    """Bounds the length of strings and sequences. None passes."""

    def __init__(self, min: int = 0, max: Optional[int] = None, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.min = min
        self.max = max

    def check(self, value: Any, field: str) -> Optional[str]:
        if value is None or not isinstance(value, Sized):
            return None
        size = len(value)
        if size < self.min or (self.max is not None and size > self.max):
            if self.message:
                return self.format(field, min=self.min, max=self.max)
            if self.max is None:
                return f"{field} must have a length of at least {self.min}"
            return f"{field} must have a length between {self.min} and {self.max}"
        return None

    def __repr__(self) -> str:
        return f"Length(min={self.min}, max={self.max})"


class Range(Rule):
    """Inclusive bounds for comparable values. None passes."""

    def __init__(self, minimum: Any = None, maximum: Any = None, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.minimum = minimum
        self.maximum = maximum

    def check(self, value: Any, field: str) -> Optional[str]:
        if value is None:
            return None
        too_low = self.minimum is not None and value < self.minimum
        too_high = self.maximum is not None and value > self.maximum
        if too_low or too_high:
            if self.message:
                return self.format(field, minimum=self.minimum, maximum=self.maximum)
            if self.maximum is None:
                return f"{field} must be at least {self.minimum}"
            if self.minimum is None:
                return f"{field} must be at most {self.maximum}"
            return f"{field} must be between {self.minimum} and {self.maximum}"
        return None

    def __repr__(self) -> str:
        return f"Range({self.minimum}, {self.maximum})"


class Pattern(Rule):
    """Full-match regular expression for string values. None passes."""
    default_message = "{field} does not match the required pattern"

    def __init__(self, regex: str, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.regex = re.compile(regex)

    def check(self, value: Any, field: str) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str) or self.regex.fullmatch(value) is None:
            return self.format(field)
        return None

    def __repr__(self) -> str:
        return f"Pattern({self.regex.pattern!r})"


class Predicate(Rule):
    """Arbitrary single-value check."""

    def __init__(self, func: Callable[[Any], bool], message: str = "{field} is invalid") -> None:
        super().__init__(message)
        self.func = func

    def check(self, value: Any, field: str) -> Optional[str]:
        return None if self.func(value) else self.format(field)


class ValidateChild(Rule):
    """
    Deep validation: recurse into a nested model, or into every model held by
    a nested sequence or mapping, and report their violations on the parent.
    """

    def check(self, value: Any, field: str) -> Optional[str]:
        return None
