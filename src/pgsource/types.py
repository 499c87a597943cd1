"""
Column type tags and row decoding.

This module provides:
- Canonical PostgreSQL type names used as column type tags
- resolve_type_name: Resolve a result column oid to its type tag
- decode_value / process_row: Coerce raw text values by type tag
"""
import datetime
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

import cachetools
import dateutil.parser
from psycopg import postgres

logger = logging.getLogger(__name__)

TYPE_INT2 = 'int2'
TYPE_INT4 = 'int4'
TYPE_INT8 = 'int8'
TYPE_BPCHAR = 'bpchar'
TYPE_VARCHAR = 'varchar'
TYPE_TEXT = 'text'
TYPE_FLOAT4 = 'float4'
TYPE_FLOAT8 = 'float8'
TYPE_NUMERIC = 'numeric'
TYPE_TIMESTAMP_TZ = 'timestamptz'
TYPE_TIMESTAMP = 'timestamp'
TYPE_BOOL = 'bool'
TYPE_BYTE_ARRAY = 'bytea'

INTEGER_TYPES = frozenset({TYPE_INT2, TYPE_INT4, TYPE_INT8})
FLOAT_TYPES = frozenset({TYPE_FLOAT4, TYPE_FLOAT8, TYPE_NUMERIC})
TIMESTAMP_TYPES = frozenset({TYPE_TIMESTAMP, TYPE_TIMESTAMP_TZ})

TRUE_MARKER = 't'

SPECIAL_TIMESTAMPS: dict[str, datetime.datetime] = {
    'infinity': datetime.datetime.max,
    '-infinity': datetime.datetime.min,
}

BC_SUFFIX = ' BC'

# Type names of oids missing from the builtin registry (user-defined types)
_type_cache: cachetools.TTLCache = cachetools.TTLCache(maxsize=256, ttl=300)
_type_cache_lock = threading.RLock()


def clear_type_cache() -> None:
    """Forget type names looked up from the server."""
    with _type_cache_lock:
        _type_cache.clear()


def resolve_type_name(oid: int, lookup: Callable[[int], str | None] | None = None,
                      scope: Any = None) -> str:
    """Resolve a column type oid to its canonical type name.

    Builtin types come from psycopg's registry. Array oids resolve to the
    server's `_element` naming. Other oids are looked up once through
    `lookup` and cached per `scope`; without a lookup the oid itself is
    returned as text.
    """
    info = postgres.types.get(oid)
    if info is not None:
        return info.name if info.oid == oid else f'_{info.name}'

    key = (scope, oid)
    with _type_cache_lock:
        if key in _type_cache:
            return _type_cache[key]

    name = lookup(oid) if lookup is not None else None
    if name is None:
        logger.debug(f'Unknown type oid {oid}')
        return str(oid)

    with _type_cache_lock:
        _type_cache[key] = name
    logger.debug(f'Resolved type oid {oid} to {name}')
    return name


def parse_timestamp(raw: str) -> datetime.datetime:
    """Parse the server's ISO text output of a timestamp.

    Sessions run with DateStyle=ISO; any other layout raises ValueError
    rather than being guessed. BC dates have no datetime equivalent.
    """
    special = SPECIAL_TIMESTAMPS.get(raw.lower())
    if special is not None:
        return special
    if raw.endswith(BC_SUFFIX):
        raise ValueError(f'BC timestamp is out of range: {raw!r}')
    return dateutil.parser.isoparse(raw)


def decode_value(raw: str | None, type_name: str | None) -> Any:
    """Coerce one raw text value according to its column type tag.

    Null is never coerced. Tags outside the table leave the text unchanged.
    """
    if raw is None:
        return None
    if type_name in INTEGER_TYPES:
        return int(raw)
    if type_name in FLOAT_TYPES:
        return float(raw)
    if type_name in TIMESTAMP_TYPES:
        return parse_timestamp(raw)
    if type_name == TYPE_BOOL:
        return raw == TRUE_MARKER
    return raw


def process_row(row: Mapping[str, str | None], types: Mapping[str, str]) -> dict[str, Any]:
    """Decode a row of raw values, keeping column order.
    """
    return {name: decode_value(value, types.get(name)) for name, value in row.items()}
