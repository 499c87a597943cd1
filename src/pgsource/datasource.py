"""
PostgreSQL data source.

This module provides:
1. The `connect()` function for opening a server connection
2. The `PostgreSQLDataSource` class that owns the connection, sends generated
   SQL, and decodes results into dictionaries

The data source is the execution engine behind the criteria API:
- execute(sql, parameters) - Run a write statement, return affected row count
- query(sql, parameters) - Run a read statement, return decoded rows
- find/count/aggregate(criteria) - Generate and run a read statement
- save/save_multiple/update/delete - Generate and run a write statement

One statement is in flight at a time; callers sharing an instance across
threads serialize access themselves.
"""
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Self

from pgsource.criteria import Aggregate, Collection, Criteria
from pgsource.errors import classify_connection_error
from pgsource.exceptions import ConnectionException
from pgsource.generator import SQLGenerator, get_generator
from pgsource.options import DatabaseOptions, load_options
from pgsource.statement import DEFAULT_POLL_INTERVAL, PendingStatement
from pgsource.statement import StatementState, decode_text
from pgsource.transaction import Transaction
from pgsource.types import process_row, resolve_type_name
from psycopg import pq

__all__ = [
    'PostgreSQLDataSource',
    'connect',
]

logger = logging.getLogger(__name__)

BEGIN_SQL = 'START TRANSACTION'
COMMIT_SQL = 'COMMIT'
ROLLBACK_SQL = 'ROLLBACK'


class PostgreSQLDataSource:
    """Executes statements over one exclusively owned libpq connection.

    :param pgconn: Open `psycopg.pq.PGconn` (or a compatible fake).
    :param options: Options the connection was opened with.
    :param generator: SQL generator; by default a PostgreSQL generator whose
        string escaping is bound to `pgconn`.
    :param sleep_func: Sleep used between busy polls.
    """

    def __init__(self, pgconn: Any, options: DatabaseOptions | None = None,
                 generator: SQLGenerator | None = None,
                 sleep_func: Callable[[float], None] = time.sleep) -> None:
        self.pgconn = pgconn
        self.options = options
        self.generator = generator or get_generator('postgresql', escaping=pq.Escaping(pgconn))
        self.poll_interval = options.poll_interval if options else DEFAULT_POLL_INTERVAL
        self.sleep_func = sleep_func
        self.statement: PendingStatement | None = None
        self.calls = 0
        self.time = 0.0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self.pgconn is None

    def close(self) -> None:
        """Close the connection. Subsequent calls raise ConnectionException.
        """
        if self.pgconn is None:
            return
        self.pgconn.finish()
        self.pgconn = None
        logger.debug(f'Connection closed: {self.calls} statements in {self.time:.2f}s '
                     f'(avg: {self.time/max(1, self.calls):.3f}s per statement)')

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def _run(self, sql: str) -> Any:
        """Send one statement and wait for its result.
        """
        if self.pgconn is None:
            raise ConnectionException('Connection is closed')
        if self.statement is not None and self.statement.state is StatementState.SENT:
            raise RuntimeError('A statement is already in flight on this connection')

        logger.debug(f'SQL:\n{sql}')
        start = time.time()
        self.statement = PendingStatement(self.pgconn, sql, self.poll_interval, self.sleep_func)
        try:
            return self.statement.run()
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Statement time: {elapsed:.4f}s ({self.statement.polls} polls)')

    def execute(self, sql: str, parameters: Sequence[Any] | Mapping[str, Any] | None = None) -> int:
        """Execute a write statement and return the affected row count.
        """
        if parameters:
            sql = self.generator.interpolate_parameters(sql, parameters)
        result = self._run(sql)
        rows = result.command_tuples or 0
        logger.debug(f'{rows} affected row(s)')
        return rows

    def query(self, sql: str,
              parameters: Sequence[Any] | Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """Execute a read statement and return rows as ordered dictionaries.

        Column type tags are read from the result before any row is decoded.
        """
        if parameters:
            sql = self.generator.interpolate_parameters(sql, parameters)
        result = self._run(sql)
        types = self.result_types(result)
        # a repeated column name keeps the value of its last occurrence
        names = [decode_text(result.fname(col)) for col in range(result.nfields)]
        items = []
        for row in range(result.ntuples):
            raw = {
                name: decode_text(result.get_value(row, col))
                for col, name in enumerate(names)
            }
            items.append(process_row(raw, types))
        logger.debug(f'Query returned {len(items)} item(s)')
        return items

    def result_types(self, result: Any) -> dict[str, str]:
        """Map each result column name to its type tag, in column order.
        """
        types = {}
        for col in range(result.nfields):
            name = decode_text(result.fname(col))
            types[name] = resolve_type_name(result.ftype(col), self._lookup_type_name,
                                            scope=str(self.options))
        return types

    def _lookup_type_name(self, oid: int) -> str | None:
        result = self._run(f'SELECT typname FROM pg_catalog.pg_type WHERE oid = {int(oid)}')
        if not result.ntuples:
            return None
        return decode_text(result.get_value(0, 0))

    def _scalar(self, sql: str) -> Any:
        rows = self.query(sql)
        if not rows:
            return None
        return next(iter(rows[0].values()), None)

    def begin_transaction(self) -> None:
        self.execute(BEGIN_SQL)

    def commit(self) -> None:
        self.execute(COMMIT_SQL)

    def rollback(self) -> None:
        self.execute(ROLLBACK_SQL)

    def transaction(self) -> Transaction:
        """Context manager running its block inside a transaction.
        """
        return Transaction(self)

    def get_collection(self, name: str, alias: str | None = None) -> Collection:
        return Collection(name, alias)

    def get_criteria(self, collection: Collection | str) -> Criteria:
        if isinstance(collection, str):
            collection = self.get_collection(collection)
        return Criteria(collection)

    def find(self, criteria: Criteria) -> list[dict[str, Any]]:
        return self.query(self.generator.generate_select(criteria))

    def count(self, criteria: Criteria) -> Any:
        return self._scalar(self.generator.generate_count(criteria))

    def aggregate(self, aggregate: Aggregate, criteria: Criteria) -> Any:
        return self._scalar(self.generator.generate_aggregate(aggregate, criteria))

    def save(self, values: Mapping[str, Any], collection: Collection,
             sequence: str | None = None) -> Any:
        """Insert one row; return the sequence's new value when a sequence is named.

        The sequence is read with CURRVAL on this same connection right after
        the insert. The value is only meaningful if nothing else advanced the
        sequence in this session in between.
        """
        self.execute(self.generator.generate_insert(values, collection))
        if sequence:
            return self._scalar(self.generator.generate_sequence_select(sequence))
        return None

    def save_multiple(self, rows: Sequence[Mapping[str, Any]], collection: Collection) -> int:
        """Insert all rows with a single statement; all rows or none are stored.
        """
        if not rows:
            logger.debug('Skipping insert of empty rows')
            return 0
        return self.execute(self.generator.generate_multiple_insert(rows, collection))

    def update(self, values: Mapping[str, Any], criteria: Criteria) -> int:
        return self.execute(self.generator.generate_update(values, criteria))

    def delete(self, criteria: Criteria) -> int:
        return self.execute(self.generator.generate_delete(criteria))


def connect(options: DatabaseOptions | dict[str, Any] | None = None,
            connection_factory: Callable[[bytes], Any] = pq.PGconn.connect,
            **kw: Any) -> PostgreSQLDataSource:
    """Open a connection and wrap it in a data source.

    Args:
        options: DatabaseOptions, a dict of options, or None
        connection_factory: Creates the libpq connection from a conninfo string
        **kw: Options overriding those in `options`

    Returns
        PostgreSQLDataSource owning the new connection

    Raises
        ConnectionException or one of its subclasses when the server cannot
        be reached or rejects the connection
    """
    options = load_options(options, **kw)
    logger.debug(f'Connecting to {options}')
    pgconn = connection_factory(options.conninfo().encode('utf-8'))
    if pgconn.status != pq.ConnStatus.OK:
        message = (decode_text(pgconn.error_message) or 'Could not connect to database').strip()
        pgconn.finish()
        raise classify_connection_error(message)
    return PostgreSQLDataSource(pgconn, options)
