"""
Transaction context manager for a data source.
"""
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pgsource.datasource import PostgreSQLDataSource

logger = logging.getLogger(__name__)


class Transaction:
    """Context manager for running multiple statements in a transaction.

    Issues START TRANSACTION on entry, COMMIT on a clean exit and ROLLBACK
    when the block raises; the block's exception always propagates. No
    transaction state is tracked on the client, so nesting simply relays
    the statements to the server.

    Examples
        with Transaction(ds) as tx:
            tx.execute('delete from ...', args)
            tx.save({...}, collection)
    """

    def __init__(self, ds: 'PostgreSQLDataSource') -> None:
        self.ds = ds

    def __getattr__(self, name: str) -> Any:
        """Delegate statement methods to the data source."""
        return getattr(self.ds, name)

    def __enter__(self) -> 'Transaction':
        self.ds.begin_transaction()
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> bool:
        if exc_type is None:
            self.ds.commit()
            return False
        try:
            self.ds.rollback()
        except Exception as err:
            logger.warning(f'Rollback failed after {exc_type.__name__}: {err}')
        return False
