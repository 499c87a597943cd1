import os
import sys
from dataclasses import dataclass, fields
from typing import Any

from pgsource.exceptions import InvalidHostException
from psycopg.conninfo import make_conninfo

__all__ = [
    'DEFAULT_PORT',
    'SESSION_OPTIONS',
    'DatabaseOptions',
    'load_options',
]

DEFAULT_PORT = 5432

# Row decoding reads ISO dates and literals carry UTC wall time
SESSION_OPTIONS = '-c DateStyle=ISO -c TimeZone=UTC'


def _scriptname() -> str | None:
    if not sys.argv or not sys.argv[0]:
        return None
    return os.path.splitext(os.path.basename(sys.argv[0]))[0] or None


@dataclass
class DatabaseOptions:
    """Options

    `hostname` may carry the port as `host:port`; the port defaults to 5432.

    Polling options:
    - poll_interval: Seconds to sleep between busy checks (default: 0.01)
    """
    database: str = None
    hostname: str = 'localhost'
    username: str = None
    password: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    poll_interval: float = 0.01

    def __post_init__(self):
        if not self.database:
            raise ValueError('database is required')
        host, sep, port = (self.hostname or '').partition(':')
        if not host:
            raise InvalidHostException(f'Invalid host: {self.hostname!r}')
        if sep:
            if not port.isdigit():
                raise InvalidHostException(f'Invalid port in host: {self.hostname!r}')
            self.hostname, self.port = host, int(port)
        self.port = int(self.port or DEFAULT_PORT)
        if not 0 < self.port < 65536:
            raise InvalidHostException(f'Invalid port: {self.port}')
        if self.poll_interval <= 0:
            raise ValueError('poll_interval must be positive')
        self.appname = self.appname or _scriptname() or 'python_console'

    def conninfo(self) -> str:
        """Build the libpq connection target string.
        """
        return make_conninfo(
            dbname=self.database,
            host=self.hostname,
            port=self.port,
            user=self.username,
            password=self.password,
            connect_timeout=self.timeout or None,
            application_name=self.appname,
            client_encoding='UTF8',
            options=SESSION_OPTIONS,
        )

    def __str__(self) -> str:
        return f'{self.username}@{self.hostname}:{self.port}/{self.database}'


def load_options(options: 'DatabaseOptions | dict[str, Any] | None' = None,
                 **kw: Any) -> DatabaseOptions:
    """Build DatabaseOptions from an instance, a dict, or keyword arguments.

    Keyword arguments override values found in `options`.
    """
    if isinstance(options, DatabaseOptions):
        if not kw:
            return options
        options = {f.name: getattr(options, f.name) for f in fields(options)}
    merged = dict(options or {})
    merged.update(kw)
    known = {f.name for f in fields(DatabaseOptions)}
    unknown = set(merged) - known
    if unknown:
        raise TypeError(f'Unknown options: {sorted(unknown)}')
    return DatabaseOptions(**merged)
