"""Data access layer: store interfaces."""

from store.dal.player_store import DEFAULT_PAGE_SIZE, PlayerStore

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "PlayerStore",
]
