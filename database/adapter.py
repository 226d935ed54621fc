"""
Abstract database adapter interface for the ticket service.
"""
from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager


class DatabaseError(Exception):
    """Base exception for database-related errors."""
    pass


class ConnectionError(DatabaseError):
    """Exception raised when database connection fails."""
    pass


class DatabaseAdapter(ABC):
    """
    Abstract base class for database adapters.

    An adapter owns connection management for one storage engine: bounded
    connection acquisition, explicit transactions and the classification of
    the engine's constraint violations. Repositories build on top of it.
    """

    def __init__(self, connection_string: str, **kwargs):
        """
        Initialize the database adapter.

        Args:
            connection_string: Database connection string
            **kwargs: Additional configuration parameters
        """
        self.connection_string = connection_string
        self.config = kwargs

    @abstractmethod
    async def connect(self) -> None:
        """
        Prepare the database for use (connectivity check, schema bootstrap).

        Raises:
            ConnectionError: If connection cannot be established
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Close the database connection and cleanup resources.
        """
        pass

    @abstractmethod
    async def is_connected(self) -> bool:
        """
        Check if the database is reachable.

        Returns:
            bool: True if connected, False otherwise
        """
        pass

    @abstractmethod
    def connection(self) -> AsyncContextManager[Any]:
        """
        Borrow a connection for reads outside an explicit transaction.

        Waits while the pool is exhausted.
        """
        pass

    @abstractmethod
    def transaction(self, readonly: bool = False) -> AsyncContextManager[Any]:
        """
        Borrow a connection with an open transaction.

        Args:
            readonly: The block only reads; it still sees one consistent snapshot

        The transaction commits when the block exits normally and rolls back
        when it raises. All statements issued inside the block run on the same
        connection.
        """
        pass

    @abstractmethod
    def is_foreign_key_violation(self, error: BaseException) -> bool:
        """
        Tell whether a driver error is a foreign key constraint violation.

        Must rely on the driver's typed error classification, not on text.
        """
        pass

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
