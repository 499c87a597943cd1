"""
Dialect independent description of queries.

Collections and fields are references, expressions are plain value objects
and Criteria collects them for a generator to render. Nothing here knows
about SQL syntax.

Examples
    users = Collection('users', 'u')
    criteria = (Criteria(users)
                .where(eq(users.field('id'), 42), like(users.field('name'), 'a%'))
                .order_by(users.field('name'))
                .limit(10))
"""
from dataclasses import dataclass, field
from typing import Any, Self

__all__ = [
    'Collection',
    'Field',
    'Expression',
    'Comparison',
    'Like',
    'Regex',
    'In',
    'IsNull',
    'Between',
    'Junction',
    'Negation',
    'Join',
    'Order',
    'Aggregate',
    'Criteria',
    'eq',
    'ne',
    'lt',
    'le',
    'gt',
    'ge',
    'like',
    'regex',
    'in_',
    'is_null',
    'is_not_null',
    'between',
    'and_',
    'or_',
    'not_',
]


@dataclass(frozen=True, slots=True)
class Collection:
    """A table reference, optionally aliased.
    """
    name: str
    alias: str | None = None

    def field(self, name: str) -> 'Field':
        """Return a field owned by this collection.
        """
        return Field(name, self)


@dataclass(frozen=True, slots=True)
class Field:
    """A column reference, optionally qualified by its collection.
    """
    name: str
    collection: Collection | None = None


class Expression:
    """Base class for predicate expressions."""


@dataclass(frozen=True, slots=True)
class Comparison(Expression):
    left: Field
    operator: str
    right: Any


@dataclass(frozen=True, slots=True)
class Like(Expression):
    field: Field
    pattern: Any


@dataclass(frozen=True, slots=True)
class Regex(Expression):
    field: Field
    pattern: Any


@dataclass(frozen=True, slots=True)
class In(Expression):
    field: Field
    values: tuple


@dataclass(frozen=True, slots=True)
class IsNull(Expression):
    field: Field
    negated: bool = False


@dataclass(frozen=True, slots=True)
class Between(Expression):
    field: Field
    low: Any
    high: Any


@dataclass(frozen=True, slots=True)
class Junction(Expression):
    """Expressions joined by AND or OR."""
    operator: str
    expressions: tuple


@dataclass(frozen=True, slots=True)
class Negation(Expression):
    expression: Expression


@dataclass(frozen=True, slots=True)
class Join:
    collection: Collection
    condition: Expression
    kind: str = 'INNER'


@dataclass(frozen=True, slots=True)
class Order:
    field: Field
    ascending: bool = True


@dataclass(frozen=True, slots=True)
class Aggregate:
    """An aggregate function over a field, or over all rows when field is None.
    """
    operation: str
    field: Field | None = None


def eq(left: Field, right: Any) -> Comparison:
    return Comparison(left, '=', right)


def ne(left: Field, right: Any) -> Comparison:
    return Comparison(left, '<>', right)


def lt(left: Field, right: Any) -> Comparison:
    return Comparison(left, '<', right)


def le(left: Field, right: Any) -> Comparison:
    return Comparison(left, '<=', right)


def gt(left: Field, right: Any) -> Comparison:
    return Comparison(left, '>', right)


def ge(left: Field, right: Any) -> Comparison:
    return Comparison(left, '>=', right)


def like(field: Field, pattern: Any) -> Like:
    return Like(field, pattern)


def regex(field: Field, pattern: Any) -> Regex:
    return Regex(field, pattern)


def in_(field: Field, values) -> In:
    return In(field, tuple(values))


def is_null(field: Field) -> IsNull:
    return IsNull(field)


def is_not_null(field: Field) -> IsNull:
    return IsNull(field, negated=True)


def between(field: Field, low: Any, high: Any) -> Between:
    return Between(field, low, high)


def and_(*expressions: Expression) -> Junction:
    return Junction('AND', expressions)


def or_(*expressions: Expression) -> Junction:
    return Junction('OR', expressions)


def not_(expression: Expression) -> Negation:
    return Negation(expression)


@dataclass
class Criteria:
    """Predicates, projection, joins, ordering and pagination for one collection.

    Predicates added with `where` are combined with AND.
    """
    collection: Collection
    fields: list[Field] = field(default_factory=list)
    expressions: list[Expression] = field(default_factory=list)
    joins: list[Join] = field(default_factory=list)
    orders: list[Order] = field(default_factory=list)
    max_rows: int | None = None
    offset: int | None = None

    def select(self, *fields: Field) -> Self:
        self.fields.extend(fields)
        return self

    def where(self, *expressions: Expression) -> Self:
        self.expressions.extend(expressions)
        return self

    def join(self, collection: Collection, condition: Expression,
             kind: str = 'INNER') -> Self:
        self.joins.append(Join(collection, condition, kind))
        return self

    def order_by(self, field: Field, ascending: bool = True) -> Self:
        self.orders.append(Order(field, ascending))
        return self

    def limit(self, max_rows: int, offset: int | None = None) -> Self:
        self.max_rows = max_rows
        self.offset = offset
        return self
