"""
Data source exception classes.

Connection-time failures derive from ConnectionException, statement failures
from QueryException. Every exception keeps the raw server message as its
string value.
"""


class DataSourceException(Exception):
    """Base class for all data source errors.
    """


class ConnectionException(DataSourceException):
    """Error establishing the server connection.
    """


class AuthException(ConnectionException):
    """Server rejected the supplied credentials.
    """


class UnknownHostException(ConnectionException):
    """Host name could not be resolved.
    """


class InvalidHostException(ConnectionException):
    """Host or port is malformed.
    """


class UnknownSchemaException(ConnectionException):
    """Requested database does not exist on the server.
    """


class QueryException(DataSourceException):
    """Error in statement syntax or execution.

    :param message: Raw server message.
    :param sqlstate: Five character SQLSTATE reported by the server.
    :param sql: Statement text that failed.
    """

    def __init__(self, message: str, sqlstate: str | None = None,
                 sql: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.sqlstate = sqlstate
        self.sql = sql


class QuerySyntaxException(QueryException):
    """Statement could not be parsed by the server.
    """


class UnknownCollectionException(QueryException):
    """Statement references a table that does not exist.
    """


class UnknownFieldException(QueryException):
    """Statement references a column that does not exist.
    """


class DataException(QueryException):
    """Value rejected by the server (bad format, out of range).
    """


class ConstraintException(QueryException):
    """Integrity constraint violation.
    """


class DuplicateEntryException(ConstraintException):
    """Unique constraint violation.
    """
