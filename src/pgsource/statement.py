"""
Submission and completion polling of a single statement.

A PendingStatement moves IDLE -> SENT -> (SUCCEEDED | FAILED). Completion is
detected by polling the connection's busy flag at a fixed interval; there is
no cancellation and no timeout at this level.
"""
import logging
import time
from collections.abc import Callable
from enum import Enum, auto
from typing import Any

import psycopg
from pgsource.errors import translate_error
from pgsource.exceptions import ConnectionException
from psycopg import pq

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.01

FAILED_STATUSES = frozenset({pq.ExecStatus.FATAL_ERROR, pq.ExecStatus.BAD_RESPONSE})


class StatementState(Enum):
    """Lifecycle of a submitted statement."""
    IDLE = auto()
    SENT = auto()
    SUCCEEDED = auto()
    FAILED = auto()


def decode_text(value: bytes | None) -> str | None:
    """Decode server text; the connection runs with client_encoding UTF8."""
    if value is None:
        return None
    return value.decode('utf-8', 'replace')


def result_sqlstate(result: Any) -> str | None:
    """Return the SQLSTATE of a result, or None when it carries no error."""
    return decode_text(result.error_field(pq.DiagnosticField.SQLSTATE)) or None


class PendingStatement:
    """One statement on one connection.

    :param pgconn: libpq connection (`psycopg.pq.PGconn` or compatible).
    :param sql: Statement text.
    :param poll_interval: Seconds slept between busy checks.
    :param sleep_func: Sleep function, replaceable in tests.
    """

    def __init__(self, pgconn: Any, sql: str,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 sleep_func: Callable[[float], None] = time.sleep) -> None:
        self.pgconn = pgconn
        self.sql = sql
        self.poll_interval = poll_interval
        self.sleep_func = sleep_func
        self.state = StatementState.IDLE
        self.polls = 0

    def send(self) -> None:
        """Submit the statement without waiting for it.
        """
        if self.state is not StatementState.IDLE:
            raise RuntimeError(f'Statement already submitted ({self.state.name})')
        try:
            self.pgconn.send_query(self.sql.encode('utf-8'))
        except psycopg.OperationalError as err:
            self.state = StatementState.FAILED
            logger.error(f'Could not send statement: {err}')
            raise ConnectionException(str(err)) from err
        self.state = StatementState.SENT

    def is_busy(self) -> bool:
        """Read pending input and report whether the server is still working.
        """
        try:
            self.pgconn.consume_input()
        except psycopg.OperationalError as err:
            self.state = StatementState.FAILED
            logger.error(f'Connection lost while waiting: {err}')
            raise ConnectionException(str(err)) from err
        return bool(self.pgconn.is_busy())

    def wait(self) -> Any:
        """Block until the server completes, then return the statement result.

        All results are drained so the connection is ready for the next
        statement. The first failed result raises through the error
        translator; otherwise the last result is returned.
        """
        if self.state is not StatementState.SENT:
            raise RuntimeError(f'Statement not in flight ({self.state.name})')

        while self.is_busy():
            self.polls += 1
            self.sleep_func(self.poll_interval)

        results = []
        while True:
            result = self.pgconn.get_result()
            if result is None:
                break
            results.append(result)

        if not results:
            self.state = StatementState.FAILED
            message = decode_text(self.pgconn.error_message) or 'No result returned'
            logger.error(message)
            raise ConnectionException(message.strip())

        for result in results:
            sqlstate = result_sqlstate(result)
            if sqlstate or result.status in FAILED_STATUSES:
                self.state = StatementState.FAILED
                message = decode_text(result.error_message) or decode_text(self.pgconn.error_message)
                raise translate_error(sqlstate, (message or '').strip(), self.sql)

        self.state = StatementState.SUCCEEDED
        return results[-1]

    def run(self) -> Any:
        """Send and wait.
        """
        self.send()
        return self.wait()
