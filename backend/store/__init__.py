"""Player persistence for the board-game service."""

from store.errors import (
    ConsistencyError,
    EmailExistsError,
    ErrorKind,
    PersistenceError,
    PlayerNotFoundError,
    PlayerValidationError,
    StoreError,
    UsernameExistsError,
)
from store.models import Player, PlayerUpdate
from store.results import StoreChannel, StoreResult, must

__all__ = [
    "ConsistencyError",
    "EmailExistsError",
    "ErrorKind",
    "PersistenceError",
    "Player",
    "PlayerNotFoundError",
    "PlayerUpdate",
    "PlayerValidationError",
    "StoreChannel",
    "StoreError",
    "StoreResult",
    "UsernameExistsError",
    "must",
]
