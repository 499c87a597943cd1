"""
Translation of server error reports into the exception taxonomy.
"""
import logging
import re

from pgsource.exceptions import AuthException, ConnectionException
from pgsource.exceptions import DuplicateEntryException, InvalidHostException
from pgsource.exceptions import QueryException, UnknownCollectionException
from pgsource.exceptions import UnknownFieldException, UnknownHostException
from pgsource.exceptions import UnknownSchemaException
from psycopg import errors

logger = logging.getLogger(__name__)

SQLSTATE_EXCEPTIONS: dict[str, type[QueryException]] = {
    errors.UndefinedTable.sqlstate: UnknownCollectionException,
    errors.UndefinedColumn.sqlstate: UnknownFieldException,
    errors.UniqueViolation.sqlstate: DuplicateEntryException,
}

# libpq reports connection failures as text only, no SQLSTATE
CONNECTION_PATTERNS: list[tuple[re.Pattern, type[ConnectionException]]] = [
    (re.compile(r'password authentication failed|authentication failed|no password supplied'
                r'|no pg_hba\.conf entry', re.IGNORECASE), AuthException),
    (re.compile(r'could not translate host name|name or service not known'
                r'|nodename nor servname', re.IGNORECASE), UnknownHostException),
    (re.compile(r'invalid (integer value|port)|invalid .* for option', re.IGNORECASE),
     InvalidHostException),
    (re.compile(r'database ".*" does not exist', re.IGNORECASE), UnknownSchemaException),
]


def translate_error(sqlstate: str | None, message: str,
                    sql: str | None = None) -> QueryException:
    """Map a server SQLSTATE to an exception instance.

    Unmapped and empty codes produce the generic QueryException.
    """
    logger.error(message)
    exc_class = SQLSTATE_EXCEPTIONS.get(sqlstate or '', QueryException)
    return exc_class(message, sqlstate=sqlstate, sql=sql)


def classify_connection_error(message: str) -> ConnectionException:
    """Map a libpq connection failure message to an exception instance.
    """
    logger.error(message)
    for pattern, exc_class in CONNECTION_PATTERNS:
        if pattern.search(message):
            return exc_class(message)
    return ConnectionException(message)
