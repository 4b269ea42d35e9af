"""
Alert routing conditions

A closed set of comparison operators evaluated against alert fields. Each
operator is a small frozen dataclass; evaluate_condition() is the single
dispatch point and rejects anything outside the set.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Tuple, Union

from rpcwatch.exceptions import ValidationException


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class NotEquals:
    field: str
    value: Any


@dataclass(frozen=True)
class GreaterThan:
    field: str
    value: float


@dataclass(frozen=True)
class LessThan:
    field: str
    value: float


@dataclass(frozen=True)
class In:
    field: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class NotIn:
    field: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class Contains:
    field: str
    value: str


@dataclass(frozen=True)
class Regex:
    field: str
    pattern: str


Condition = Union[Equals, NotEquals, GreaterThan, LessThan, In, NotIn, Contains, Regex]

OPERATORS = (Equals, NotEquals, GreaterThan, LessThan, In, NotIn, Contains, Regex)


def _resolve(subject: Any, field_name: str) -> Any:
    value = getattr(subject, field_name, None)
    # Compare enums by their wire value so routes can be written as plain strings
    if isinstance(value, Enum):
        return value.value
    return value


def _normalize(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def evaluate_condition(condition: Condition, subject: Any) -> bool:
    """Evaluate one condition against an object's attributes.

    Missing attributes resolve to None; ordering comparisons against None are
    false.

    Raises:
        ValidationException: If the condition is not one of the known operators
    """
    if not isinstance(condition, OPERATORS):
        raise ValidationException(
            f"Unsupported condition type: {type(condition).__name__}",
            details={"condition": repr(condition)}
        )

    actual = _resolve(subject, condition.field)
    if isinstance(condition, Equals):
        return actual == _normalize(condition.value)
    if isinstance(condition, NotEquals):
        return actual != _normalize(condition.value)
    if isinstance(condition, GreaterThan):
        return actual is not None and actual > condition.value
    if isinstance(condition, LessThan):
        return actual is not None and actual < condition.value
    if isinstance(condition, In):
        return actual in {_normalize(v) for v in condition.values}
    if isinstance(condition, NotIn):
        return actual not in {_normalize(v) for v in condition.values}
    if isinstance(condition, Contains):
        return actual is not None and condition.value in str(actual)
    # Regex
    return actual is not None and re.search(condition.pattern, str(actual)) is not None


def matches_all(conditions: Iterable[Condition], subject: Any) -> bool:
    """True when every condition holds (vacuously true for no conditions)."""
    return all(evaluate_condition(c, subject) for c in conditions)
