"""SQLite database layer: connection management and store implementations."""

from store.db.connection import Database
from store.db.player_store import SqlPlayerStore
from store.db.sql_store import SqlStore, get_store, reset_store

__all__ = [
    "Database",
    "SqlPlayerStore",
    "SqlStore",
    "get_store",
    "reset_store",
]
