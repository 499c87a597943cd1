"""
PostgreSQL data source: criteria to SQL compilation, statement execution and
result decoding.

All statement operations can be called either as:
- Module functions: pgsource.query(ds, sql, parameters)
- Data source methods: ds.query(sql, parameters)

The module functions are thin facades over the data source methods.
"""
__version__ = '0.1.0'

from collections.abc import Mapping, Sequence
from typing import Any

from pgsource.criteria import Aggregate, Collection, Criteria, Field
from pgsource.datasource import PostgreSQLDataSource, connect
from pgsource.exceptions import AuthException, ConnectionException
from pgsource.exceptions import ConstraintException, DataException
from pgsource.exceptions import DataSourceException, DuplicateEntryException
from pgsource.exceptions import InvalidHostException, QueryException
from pgsource.exceptions import QuerySyntaxException, UnknownCollectionException
from pgsource.exceptions import UnknownFieldException, UnknownHostException
from pgsource.exceptions import UnknownSchemaException
from pgsource.generator import PostgreSQLGenerator, SQLGenerator, get_generator
from pgsource.options import DatabaseOptions
from pgsource.transaction import Transaction as transaction


def execute(ds: PostgreSQLDataSource, sql: str,
            parameters: Sequence[Any] | Mapping[str, Any] | None = None) -> int:
    """Execute a write statement and return affected row count.
    """
    return ds.execute(sql, parameters)


def query(ds: PostgreSQLDataSource, sql: str,
          parameters: Sequence[Any] | Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
    """Execute a read statement and return decoded rows.
    """
    return ds.query(sql, parameters)


def find(ds: PostgreSQLDataSource, criteria: Criteria) -> list[dict[str, Any]]:
    """Return the rows matched by criteria.
    """
    return ds.find(criteria)


def count(ds: PostgreSQLDataSource, criteria: Criteria) -> int:
    """Return the number of rows matched by criteria.
    """
    return ds.count(criteria)


__all__ = [
    'connect',
    'PostgreSQLDataSource',
    'transaction',
    'DatabaseOptions',
    'execute',
    'query',
    'find',
    'count',
    'Aggregate',
    'Collection',
    'Criteria',
    'Field',
    'SQLGenerator',
    'PostgreSQLGenerator',
    'get_generator',
    'DataSourceException',
    'ConnectionException',
    'AuthException',
    'UnknownHostException',
    'InvalidHostException',
    'UnknownSchemaException',
    'QueryException',
    'QuerySyntaxException',
    'UnknownCollectionException',
    'UnknownFieldException',
    'DuplicateEntryException',
    'ConstraintException',
    'DataException',
]
