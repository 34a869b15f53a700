"""Player account record and its persistence lifecycle hooks."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Self

from pydantic import BaseModel, Field, ValidationError

from store.errors import PlayerValidationError

ID_MAX_LENGTH = 24
PLAYERNAME_MAX_LENGTH = 64
PASSWORD_MAX_LENGTH = 128
EMAIL_MAX_LENGTH = 128
ALLOW_STATS_MAX_LENGTH = 1
LOCALE_MAX_LENGTH = 5

DEFAULT_LOCALE = "en"


def get_millis() -> int:
    """Current time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def new_id() -> str:
    """Random 24-character lowercase hex identifier."""
    return secrets.token_hex(ID_MAX_LENGTH // 2)


class _PersistedPlayer(BaseModel):
    """Constraints a record must satisfy before it reaches the backing store."""

    id: str = Field(min_length=1, max_length=ID_MAX_LENGTH)
    playername: str = Field(min_length=1, max_length=PLAYERNAME_MAX_LENGTH)
    password: str = Field(max_length=PASSWORD_MAX_LENGTH)
    email: str = Field(min_length=1, max_length=EMAIL_MAX_LENGTH)
    locale: str = Field(max_length=LOCALE_MAX_LENGTH)
    create_at: int = Field(gt=0)
    update_at: int = Field(gt=0)
    delete_at: int = Field(ge=0)


class Player(BaseModel, frozen=True):
    """A player account.

    Timestamps are epoch milliseconds. ``delete_at`` is a soft-delete marker;
    zero means the account is active.
    """

    id: str = ""
    playername: str = ""
    password: str = ""  # opaque credential material, hashed by the auth layer
    email: str = ""
    allow_stats: bool = False
    locale: str = ""
    create_at: int = 0
    update_at: int = 0
    delete_at: int = 0

    @property
    def is_deleted(self) -> bool:
        return self.delete_at != 0

    def pre_save(self) -> Self:
        """Return a copy with server-assigned defaults filled in for a new record."""
        create_at = self.create_at or get_millis()
        return self.model_copy(
            update={
                "id": self.id or new_id(),
                "playername": _normalize(self.playername),
                "email": _normalize(self.email),
                "locale": self.locale or DEFAULT_LOCALE,
                "create_at": create_at,
                "update_at": create_at,
            },
        )

    def pre_update(self) -> Self:
        """Return a copy ready to overwrite an existing record. Identity fields are left alone."""
        return self.model_copy(
            update={
                "playername": _normalize(self.playername),
                "email": _normalize(self.email),
                "locale": self.locale or DEFAULT_LOCALE,
                "update_at": get_millis(),
            },
        )

    def is_valid(self) -> None:
        """Raise PlayerValidationError naming every field that violates the persisted constraints."""
        try:
            _PersistedPlayer.model_validate(self.model_dump())
        except ValidationError as exc:
            fields = tuple(dict.fromkeys(str(err["loc"][0]) for err in exc.errors()))
            raise PlayerValidationError(
                "Player.is_valid",
                fields,
                detail=f"player_id={self.id}",
            ) from exc

    def sanitize(self) -> Self:
        """Return a copy safe to send to clients (credential removed)."""
        return self.model_copy(update={"password": ""})

    def mark_deleted(self) -> Self:
        return self.model_copy(update={"delete_at": get_millis()})

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> Self:
        return cls.model_validate_json(data)


def _normalize(value: str) -> str:
    return value.strip().lower()


@dataclass(frozen=True)
class PlayerUpdate:
    """Result of a successful update: the record as written and the record it replaced."""

    new: Player
    old: Player
