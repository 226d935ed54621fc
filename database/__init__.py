# Database package for database adapters, query building and repositories

from .adapter import (
    DatabaseAdapter,
    DatabaseError,
    ConnectionError
)
from .sqlite_adapter import SQLiteAdapter
from .repositories import TicketRepository, CommentRepository

__all__ = [
    'DatabaseAdapter',
    'DatabaseError',
    'ConnectionError',
    'SQLiteAdapter',
    'TicketRepository',
    'CommentRepository'
]
