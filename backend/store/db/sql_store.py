"""Store facade: one shared Database plus the stores registered on it."""

from __future__ import annotations

from typing import TYPE_CHECKING

from store.db.connection import Database
from store.db.player_store import SqlPlayerStore
from store.settings import StoreSettings

if TYPE_CHECKING:
    from store.dal.player_store import PlayerStore

_store: SqlStore | None = None


class SqlStore:
    """Owns the Database and exposes each store over it.

    Call open() on application startup and close() on shutdown.
    """

    def __init__(self, settings: StoreSettings) -> None:
        self.db = Database(settings.database_path, busy_timeout_ms=settings.busy_timeout_ms)
        self._player = SqlPlayerStore(self.db)

    @property
    def player(self) -> PlayerStore:
        return self._player

    def open(self) -> None:
        """Connect, create tables and indexes."""
        self.db.connect()
        self.db.create_tables_if_not_exists()
        self._player.create_indexes_if_not_exists()

    def close(self) -> None:
        self.db.close()


def get_store() -> SqlStore:
    """Return the process-wide store, opening it from StoreSettings on first use."""
    global _store  # noqa: PLW0603

    if _store is None:
        sql_store = SqlStore(StoreSettings())
        sql_store.open()
        _store = sql_store
    return _store


def reset_store() -> None:
    """Close and forget the process-wide store. Used for testing."""
    global _store  # noqa: PLW0603

    if _store is not None:
        _store.close()
    _store = None
