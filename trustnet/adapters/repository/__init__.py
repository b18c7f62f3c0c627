"""Repository adapters - Database and in-memory implementations."""

from .memory import InMemoryTransactionRepository, InMemoryUserDirectory
from .postgres import PostgresTransactionRepository, PostgresUserDirectory, run_migrations

__all__ = [
    "InMemoryTransactionRepository",
    "InMemoryUserDirectory",
    "PostgresTransactionRepository",
    "PostgresUserDirectory",
    "run_migrations",
]
