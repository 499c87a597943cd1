"""
PostgreSQL-specific generator implementation.

Handles PostgreSQL's quoting and operator rules:
- Double-quoted identifiers, alias preferred over table name
- String literals escaped with the connection's escaping rules when bound
- ILIKE for case-insensitive matching, SIMILAR TO for patterns
- CURRVAL for reading back generated keys
"""
import datetime
import math
from typing import Any

from pgsource.criteria import Collection, Field
from pgsource.generator.base import SQLGenerator, register_generator
from pgsource.literals import Bool, Float, Int, Null, Opaque, Text, Timestamp
from pgsource.literals import classify
from psycopg import pq

# %Y is not zero padded below year 1000 on every platform
TIMESTAMP_FORMAT = '-%m-%d %H:%M:%S'


def _escape_string_literal(s: str) -> str:
    """Escape a string for use as a PostgreSQL string literal."""
    return s.replace("'", "''")


@register_generator('postgresql')
class PostgreSQLGenerator(SQLGenerator):
    """PostgreSQL statement generation.

    :param escaping: Optional `psycopg.pq.Escaping` bound to the live
        connection. Without it, strings are escaped assuming
        `standard_conforming_strings` is on (the server default).
    """

    def __init__(self, escaping: pq.Escaping | None = None) -> None:
        self.escaping = escaping

    def escape_identifier(self, name: str) -> str:
        return f'"{name}"'

    def escape_field(self, field: Field) -> str:
        escaped = self.escape_identifier(field.name)
        if field.collection:
            owner = field.collection.alias or field.collection.name
            escaped = f'{self.escape_identifier(owner)}.{escaped}'
        return escaped

    def escape_string(self, s: str) -> str:
        if self.escaping is not None:
            return self.escaping.escape_string(s.encode('utf-8')).decode('utf-8')
        return _escape_string_literal(s)

    def escape_value(self, value: Any) -> str:
        match classify(value):
            case Null():
                return 'NULL'
            case Bool(flag):
                return 'TRUE' if flag else 'FALSE'
            case Int(number):
                return str(number)
            case Float(number):
                if math.isfinite(number):
                    return repr(number)
                if math.isnan(number):
                    return "'NaN'"
                return "'Infinity'" if number > 0 else "'-Infinity'"
            case Text(text):
                return f"'{self.escape_string(text)}'"
            case Timestamp(stamp):
                offset = stamp.utcoffset()
                if offset:
                    stamp = stamp.astimezone(datetime.timezone.utc)
                return self.escape_value(f'{stamp.year:04d}{stamp.strftime(TIMESTAMP_FORMAT)}')
            case Opaque(obj):
                return self.escape_value(str(obj))

    def render_like(self, a: str, b: str) -> str:
        return f'{a} ILIKE {b}'

    def render_regex(self, a: str, b: str) -> str:
        return f'{a} SIMILAR TO {b}'

    def generate_sequence_select(self, sequence: str) -> str:
        """Read the session's last value of a sequence.

        Only valid on the connection that performed the insert, and only
        deterministic if no other insert touched the sequence in between.
        """
        return f'SELECT CURRVAL({self.escape_value(sequence)})'

    def generate_default_insert(self, collection: Collection, count: int) -> str:
        table = self.escape_identifier(collection.name)
        if count == 1:
            return f'INSERT INTO {table} DEFAULT VALUES'
        return f'INSERT INTO {table} SELECT FROM generate_series(1, {int(count)})'
