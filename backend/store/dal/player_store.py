"""Abstract interface for player persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from store.models import Player
    from store.results import StoreChannel

DEFAULT_PAGE_SIZE = 100


class PlayerStore(ABC):
    """Abstract interface for player persistence.

    Every operation returns immediately with a StoreChannel that resolves to
    exactly one StoreResult. Implementations can use SQLite, PostgreSQL, etc.
    """

    @abstractmethod
    def save(self, player: Player) -> StoreChannel: ...

    @abstractmethod
    def update(self, player: Player, *, trusted: bool = False) -> StoreChannel: ...

    @abstractmethod
    def update_update_at(self, player_id: str) -> StoreChannel: ...

    @abstractmethod
    def update_password(self, player_id: str, new_password: str) -> StoreChannel: ...

    @abstractmethod
    def get(self, player_id: str) -> StoreChannel: ...

    @abstractmethod
    def get_all(self) -> StoreChannel: ...

    @abstractmethod
    def get_page(self, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> StoreChannel: ...

    @abstractmethod
    def iter_all(self, page_size: int = DEFAULT_PAGE_SIZE) -> AsyncIterator[Player]: ...

    @abstractmethod
    def get_by_email(self, email: str) -> StoreChannel: ...

    @abstractmethod
    def get_by_username(self, username: str) -> StoreChannel: ...

    @abstractmethod
    def get_total_players_count(self) -> StoreChannel: ...

    @abstractmethod
    def permanent_delete(self, player_id: str) -> StoreChannel: ...
