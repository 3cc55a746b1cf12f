"""Transaction managers for chunk boundaries.

The chunk loop brackets every chunk with ``begin`` and either ``commit``
or ``rollback``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from stepwise.core.logging import get_logger

logger = get_logger(__name__)


class TransactionManager(ABC):
    @abstractmethod
    def begin(self) -> Any:
        ...

    @abstractmethod
    def commit(self, transaction: Any) -> None:
        ...

    @abstractmethod
    def rollback(self, transaction: Any) -> None:
        ...


class ResourcelessTransactionManager(TransactionManager):
    """No resource to commit; keeps counts for inspection."""

    def __init__(self):
        self.begun = 0
        self.committed = 0
        self.rolled_back = 0

    def begin(self) -> Any:
        self.begun += 1
        return self.begun

    def commit(self, transaction: Any) -> None:
        self.committed += 1

    def rollback(self, transaction: Any) -> None:
        self.rolled_back += 1


class ConnectionTransactionManager(TransactionManager):
    """Commits / rolls back a DB-API connection (sqlite3, psycopg, ...).

    The writer must use the same connection; the driver opens the
    transaction implicitly on the first statement.
    """

    def __init__(self, conn):
        """Initialize with a database connection.

        Args:
            conn: DB-API connection shared with the item writer
        """
        self._conn = conn

    def begin(self) -> Any:
        return self._conn

    def commit(self, transaction: Any) -> None:
        self._conn.commit()

    def rollback(self, transaction: Any) -> None:
        logger.debug("transaction.rollback")
        self._conn.rollback()


__all__ = [
    "TransactionManager",
    "ResourcelessTransactionManager",
    "ConnectionTransactionManager",
]
