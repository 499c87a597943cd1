"""
Closed set of value literals that may appear in generated SQL.

`classify()` maps any Python value to exactly one variant. Generators match
on the variant, so there is no path by which a value reaches SQL text
without a rendering rule.
"""
import datetime
import numbers
from dataclasses import dataclass
from typing import Any

__all__ = [
    'Null',
    'Bool',
    'Int',
    'Float',
    'Text',
    'Timestamp',
    'Opaque',
    'Literal',
    'classify',
]


@dataclass(frozen=True, slots=True)
class Null:
    pass


@dataclass(frozen=True, slots=True)
class Bool:
    value: bool


@dataclass(frozen=True, slots=True)
class Int:
    value: int


@dataclass(frozen=True, slots=True)
class Float:
    value: float


@dataclass(frozen=True, slots=True)
class Text:
    value: str


@dataclass(frozen=True, slots=True)
class Timestamp:
    value: datetime.datetime


@dataclass(frozen=True, slots=True)
class Opaque:
    """Any other object; rendered through its string conversion."""
    value: Any


Literal = Null | Bool | Int | Float | Text | Timestamp | Opaque


def classify(value: Any) -> Literal:
    """Return the literal variant for a Python value.

    bool is tested before int since it is an int subclass. Non-native
    numeric scalars are accepted through the numbers ABCs.
    """
    if value is None:
        return Null()
    if isinstance(value, bool):
        return Bool(value)
    if isinstance(value, numbers.Integral):
        return Int(int(value))
    if isinstance(value, numbers.Real):
        return Float(float(value))
    if isinstance(value, str):
        return Text(value)
    if isinstance(value, datetime.datetime):
        return Timestamp(value)
    return Opaque(value)
