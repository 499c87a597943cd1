"""
Base SQL generator.

Statement assembly is shared by all dialects; quoting, literal escaping and
the non-portable pattern operators are left to the concrete generators.
Every identifier and literal placed in a statement passes through
`escape_identifier`, `escape_field` or `escape_value`.
"""
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from pgsource.criteria import Aggregate, Between, Collection, Comparison
from pgsource.criteria import Criteria, Expression, Field, In, IsNull, Join
from pgsource.criteria import Junction, Like, Negation, Regex

# Registry of dialect name -> generator class
_GENERATOR_REGISTRY: dict[str, type['SQLGenerator']] = {}

# Master tokenization pattern; comments, literals, quoted identifiers and
# casts are matched first so placeholders inside them are never substituted
_TOKENIZE = re.compile(r"""
    (?P<line_comment>--[^\n]*)
    |(?P<block_comment>/\*.*?\*/)
    |(?P<escape_string>(?<!\w)[Ee]'(?:[^'\\]|\\.|'')*')
    |(?P<dollar>\$(?P<tag>[A-Za-z_]\w*|)\$.*?\$(?P=tag)\$)
    |(?P<string>'(?:[^']|'')*')
    |(?P<ident>"(?:[^"]|"")*")
    |(?P<cast>::)
    |(?P<named>%\((?P<pname>[^)]+)\)s)
    |(?P<percent_s>%s)
    |(?P<qmark>\?)
    |(?P<colon>:(?P<cname>[A-Za-z_]\w*))
""", re.VERBOSE | re.DOTALL)


def register_generator(dialect: str):
    """Decorator to register a generator class for a dialect.

    Usage:
        @register_generator('postgresql')
        class PostgreSQLGenerator(SQLGenerator):
            ...
    """
    def decorator(cls: type['SQLGenerator']) -> type['SQLGenerator']:
        _GENERATOR_REGISTRY[dialect] = cls
        return cls
    return decorator


class SQLGenerator(ABC):
    """Base class for dialect SQL generators.
    """

    @abstractmethod
    def escape_identifier(self, name: str) -> str:
        """Quote a table, column or alias name.
        """

    @abstractmethod
    def escape_field(self, field: Field) -> str:
        """Render a possibly qualified column reference.
        """

    @abstractmethod
    def escape_value(self, value: Any) -> str:
        """Render a Python value as a SQL literal.
        """

    @abstractmethod
    def render_like(self, a: str, b: str) -> str:
        """Render a case-insensitive pattern match.
        """

    @abstractmethod
    def render_regex(self, a: str, b: str) -> str:
        """Render a regular expression match.
        """

    @abstractmethod
    def generate_sequence_select(self, sequence: str) -> str:
        """Statement returning the last value a sequence produced in this session.
        """

    @abstractmethod
    def generate_default_insert(self, collection: Collection, count: int) -> str:
        """Single statement inserting `count` rows made only of column defaults.
        """

    def escape_collection(self, collection: Collection) -> str:
        """Render a collection for FROM and JOIN clauses.
        """
        escaped = self.escape_identifier(collection.name)
        if collection.alias:
            escaped += f' AS {self.escape_identifier(collection.alias)}'
        return escaped

    def render_operand(self, operand: Any) -> str:
        """Fields are escaped as columns, anything else as a literal.
        """
        if isinstance(operand, Field):
            return self.escape_field(operand)
        return self.escape_value(operand)

    def render_expression(self, expression: Expression) -> str:
        """Render a predicate expression tree.
        """
        match expression:
            case Comparison(left, operator, None) if operator in {'=', '<>', '!='}:
                keyword = 'IS NULL' if operator == '=' else 'IS NOT NULL'
                return f'{self.escape_field(left)} {keyword}'
            case Comparison(left, operator, right):
                return f'{self.escape_field(left)} {operator} {self.render_operand(right)}'
            case Like(field, pattern):
                return self.render_like(self.escape_field(field), self.render_operand(pattern))
            case Regex(field, pattern):
                return self.render_regex(self.escape_field(field), self.render_operand(pattern))
            case In(field, values):
                rendered = ', '.join(self.render_operand(v) for v in values) or 'NULL'
                return f'{self.escape_field(field)} IN ({rendered})'
            case IsNull(field, negated):
                return f"{self.escape_field(field)} IS {'NOT ' if negated else ''}NULL"
            case Between(field, low, high):
                return (f'{self.escape_field(field)} BETWEEN '
                        f'{self.render_operand(low)} AND {self.render_operand(high)}')
            case Junction(operator, expressions):
                if not expressions:
                    return 'TRUE' if operator == 'AND' else 'FALSE'
                rendered = f' {operator} '.join(self.render_expression(e) for e in expressions)
                return f'({rendered})'
            case Negation(inner):
                return f'NOT ({self.render_expression(inner)})'
        # Unknown expression objects are passed through as their text
        return str(expression)

    def render_where(self, criteria: Criteria) -> str:
        if not criteria.expressions:
            return ''
        rendered = ' AND '.join(self.render_expression(e) for e in criteria.expressions)
        return f' WHERE {rendered}'

    def render_joins(self, joins: Sequence[Join]) -> str:
        return ''.join(
            f' {join.kind} JOIN {self.escape_collection(join.collection)}'
            f' ON {self.render_expression(join.condition)}'
            for join in joins
        )

    def render_order(self, criteria: Criteria) -> str:
        if not criteria.orders:
            return ''
        rendered = ', '.join(
            f"{self.escape_field(o.field)} {'ASC' if o.ascending else 'DESC'}"
            for o in criteria.orders
        )
        return f' ORDER BY {rendered}'

    def render_limit(self, criteria: Criteria) -> str:
        sql = ''
        if criteria.max_rows is not None:
            sql += f' LIMIT {int(criteria.max_rows)}'
        if criteria.offset:
            sql += f' OFFSET {int(criteria.offset)}'
        return sql

    def render_from(self, criteria: Criteria) -> str:
        return (f' FROM {self.escape_collection(criteria.collection)}'
                f'{self.render_joins(criteria.joins)}{self.render_where(criteria)}')

    def generate_select(self, criteria: Criteria) -> str:
        """Generate a SELECT statement.
        """
        if criteria.fields:
            projection = ', '.join(self.escape_field(f) for f in criteria.fields)
        else:
            projection = '*'
        return (f'SELECT {projection}{self.render_from(criteria)}'
                f'{self.render_order(criteria)}{self.render_limit(criteria)}')

    def generate_count(self, criteria: Criteria) -> str:
        """Generate a COUNT statement; a limited criteria is counted through a subquery.
        """
        if criteria.max_rows is not None or criteria.offset:
            inner = f'SELECT 1{self.render_from(criteria)}{self.render_limit(criteria)}'
            return f'SELECT COUNT(*) FROM ({inner}) AS {self.escape_identifier("count")}'
        return f'SELECT COUNT(*){self.render_from(criteria)}'

    def generate_aggregate(self, aggregate: Aggregate, criteria: Criteria) -> str:
        """Generate a single aggregate over the rows matched by criteria.
        """
        argument = self.escape_field(aggregate.field) if aggregate.field else '*'
        return f'SELECT {aggregate.operation.upper()}({argument}){self.render_from(criteria)}'

    def generate_insert(self, values: Mapping[str, Any], collection: Collection) -> str:
        """Generate a single row INSERT.
        """
        table = self.escape_identifier(collection.name)
        if not values:
            return f'INSERT INTO {table} DEFAULT VALUES'
        columns = ', '.join(self.escape_identifier(c) for c in values)
        rendered = ', '.join(self.escape_value(v) for v in values.values())
        return f'INSERT INTO {table} ({columns}) VALUES ({rendered})'

    def generate_multiple_insert(self, rows: Sequence[Mapping[str, Any]],
                                 collection: Collection) -> str:
        """Generate one INSERT carrying every row.

        Columns are the union of the row keys in first-seen order; a row
        without one of them takes the column default.
        """
        columns: list[str] = []
        for row in rows:
            columns.extend(c for c in row if c not in columns)
        if not columns:
            return self.generate_default_insert(collection, len(rows))
        table = self.escape_identifier(collection.name)
        quoted_columns = ', '.join(self.escape_identifier(c) for c in columns)
        tuples = ', '.join(
            '(' + ', '.join(
                self.escape_value(row[c]) if c in row else 'DEFAULT' for c in columns
            ) + ')'
            for row in rows
        )
        return f'INSERT INTO {table} ({quoted_columns}) VALUES {tuples}'

    def generate_update(self, values: Mapping[str, Any], criteria: Criteria) -> str:
        """Generate an UPDATE of the rows matched by criteria.
        """
        assignments = ', '.join(
            f'{self.escape_identifier(c)} = {self.render_operand(v)}'
            for c, v in values.items()
        )
        return (f'UPDATE {self.escape_collection(criteria.collection)} SET {assignments}'
                f'{self.render_where(criteria)}')

    def generate_delete(self, criteria: Criteria) -> str:
        """Generate a DELETE of the rows matched by criteria.
        """
        return (f'DELETE FROM {self.escape_collection(criteria.collection)}'
                f'{self.render_where(criteria)}')

    def interpolate_parameters(self, sql: str,
                               parameters: Sequence[Any] | Mapping[str, Any]) -> str:
        """Substitute placeholders with escaped literals.

        Positional (`?`, `%s`) placeholders consume a sequence in order, named
        (`:name`, `%(name)s`) ones look up a mapping. A list or tuple value
        renders as a comma separated list. Placeholders without a matching
        parameter are left in place.
        """
        named = isinstance(parameters, Mapping)
        positional = iter(()) if named else iter(parameters)
        result_parts = []
        last_end = 0

        for match in _TOKENIZE.finditer(sql):
            result_parts.append(sql[last_end:match.start()])
            last_end = match.end()
            text = match.group(0)

            if match.group('percent_s') or match.group('qmark'):
                if named:
                    result_parts.append(text)
                    continue
                value = next(positional, _MISSING)
            elif match.group('named') or match.group('colon'):
                name = match.group('pname') or match.group('cname')
                value = parameters.get(name, _MISSING) if named else _MISSING
            else:
                result_parts.append(text)
                continue

            if value is _MISSING:
                result_parts.append(text)
            else:
                result_parts.append(self._render_parameter(value))

        result_parts.append(sql[last_end:])
        return ''.join(result_parts)

    def _render_parameter(self, value: Any) -> str:
        if isinstance(value, (list, tuple)):
            return ', '.join(self.escape_value(v) for v in value) or 'NULL'
        return self.escape_value(value)


_MISSING = object()
