"""SQLite-backed player store."""

from __future__ import annotations

import asyncio
import sqlite3
from typing import TYPE_CHECKING

import structlog

from store.dal.player_store import DEFAULT_PAGE_SIZE, PlayerStore
from store.db.constraints import UniqueViolation, classify_integrity_error
from store.errors import (
    ConsistencyError,
    EmailExistsError,
    PersistenceError,
    PlayerNotFoundError,
    PlayerValidationError,
    StoreError,
    UsernameExistsError,
)
from store.models import (
    ALLOW_STATS_MAX_LENGTH,
    EMAIL_MAX_LENGTH,
    ID_MAX_LENGTH,
    LOCALE_MAX_LENGTH,
    PASSWORD_MAX_LENGTH,
    PLAYERNAME_MAX_LENGTH,
    Player,
    PlayerUpdate,
    get_millis,
)
from store.results import StoreChannel

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from store.db.connection import Database

logger = structlog.get_logger()

TABLE_NAME = "players"
EMAIL_INDEX_NAME = "idx_players_email"


class SqlPlayerStore(PlayerStore):
    """SQLite implementation of PlayerStore.

    Each operation runs on its own task and does its blocking sqlite3 work in
    a worker thread. Uniqueness of playername and email is left to the
    database; violations are mapped to EmailExistsError / UsernameExistsError.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        table = db.add_table(TABLE_NAME, Player, key="id")
        table.column("id").set_max_size(ID_MAX_LENGTH)
        table.column("playername").set_max_size(PLAYERNAME_MAX_LENGTH).set_unique()
        table.column("password").set_max_size(PASSWORD_MAX_LENGTH)
        table.column("email").set_max_size(EMAIL_MAX_LENGTH).set_unique()
        table.column("allow_stats").set_max_size(ALLOW_STATS_MAX_LENGTH)
        table.column("locale").set_max_size(LOCALE_MAX_LENGTH)

    def create_indexes_if_not_exists(self) -> None:
        self._db.create_index_if_not_exists(EMAIL_INDEX_NAME, TABLE_NAME, "email")

    # Writes

    def save(self, player: Player) -> StoreChannel:
        """Insert a new player. Resolves to the stored Player with server-assigned fields."""
        return StoreChannel.spawn("SqlPlayerStore.save", self._save(player))

    async def _save(self, player: Player) -> Player:
        where = "SqlPlayerStore.save"
        player = player.pre_save()
        player.is_valid()
        try:
            await asyncio.to_thread(self._db.insert, player)
        except sqlite3.Error as exc:
            raise _classify_write_error(where, "Player saving error", player.id, exc) from exc
        logger.debug("player saved", player_id=player.id)
        return player

    def update(self, player: Player, *, trusted: bool = False) -> StoreChannel:
        """Overwrite an existing player. Resolves to a PlayerUpdate.

        create_at and password always keep their stored values. delete_at also
        keeps its stored value unless trusted is set.
        """
        return StoreChannel.spawn("SqlPlayerStore.update", self._update(player, trusted=trusted))

    async def _update(self, player: Player, *, trusted: bool) -> PlayerUpdate:
        where = "SqlPlayerStore.update"
        player = player.pre_update()
        player.is_valid()
        try:
            result = await asyncio.to_thread(self._read_modify_write, player, trusted)
        except sqlite3.Error as exc:
            raise _classify_write_error(where, "Player updating error", player.id, exc) from exc
        logger.debug("player updated", player_id=player.id, trusted=trusted)
        return result

    def _read_modify_write(self, player: Player, trusted: bool) -> PlayerUpdate:  # noqa: FBT001
        where = "SqlPlayerStore.update"
        # Holding the transaction serializes concurrent updates of the same row.
        with self._db.transaction() as db:
            old = db.get(Player, player.id)
            if old is None:
                raise PlayerNotFoundError(where, f"player_id={player.id}")

            preserved = {"create_at": old.create_at, "password": old.password}
            if not trusted:
                preserved["delete_at"] = old.delete_at
            player = player.model_copy(update=preserved)

            count = db.update(player)
            if count != 1:
                raise ConsistencyError(where, "Player update error", f"player_id={player.id}, count={count}")
        return PlayerUpdate(new=player, old=old)

    def update_update_at(self, player_id: str) -> StoreChannel:
        """Set update_at to now. Does not report whether the id exists."""
        return StoreChannel.spawn("SqlPlayerStore.update_update_at", self._update_update_at(player_id))

    async def _update_update_at(self, player_id: str) -> str:
        try:
            await asyncio.to_thread(
                self._db.exec,
                "UPDATE players SET update_at = :time WHERE id = :player_id",
                {"time": get_millis(), "player_id": player_id},
            )
        except sqlite3.Error as exc:
            raise PersistenceError(
                "SqlPlayerStore.update_update_at",
                "Player updated at error",
                f"player_id={player_id}, {exc}",
            ) from exc
        return player_id

    def update_password(self, player_id: str, new_password: str) -> StoreChannel:
        """Overwrite the credential field only. Does not report whether the id exists."""
        return StoreChannel.spawn("SqlPlayerStore.update_password", self._update_password(player_id, new_password))

    async def _update_password(self, player_id: str, new_password: str) -> str:
        try:
            await asyncio.to_thread(
                self._db.exec,
                "UPDATE players SET password = :password WHERE id = :player_id",
                {"password": new_password, "player_id": player_id},
            )
        except sqlite3.Error as exc:
            raise PersistenceError(
                "SqlPlayerStore.update_password",
                "Player update password error",
                f"player_id={player_id}, {exc}",
            ) from exc
        return player_id

    def permanent_delete(self, player_id: str) -> StoreChannel:
        """Remove the row. Deleting an unknown id is not an error."""
        return StoreChannel.spawn("SqlPlayerStore.permanent_delete", self._permanent_delete(player_id))

    async def _permanent_delete(self, player_id: str) -> str:
        try:
            count = await asyncio.to_thread(
                self._db.exec,
                "DELETE FROM players WHERE id = :player_id",
                {"player_id": player_id},
            )
        except sqlite3.Error as exc:
            raise PersistenceError(
                "SqlPlayerStore.permanent_delete",
                "Permanent delete player error",
                f"player_id={player_id}, {exc}",
            ) from exc
        logger.info("player permanently deleted", player_id=player_id, count=count)
        return player_id

    # Reads

    def get(self, player_id: str) -> StoreChannel:
        return StoreChannel.spawn("SqlPlayerStore.get", self._get(player_id))

    async def _get(self, player_id: str) -> Player:
        where = "SqlPlayerStore.get"
        try:
            player = await asyncio.to_thread(self._db.get, Player, player_id)
        except sqlite3.Error as exc:
            raise PersistenceError(where, "Get player by id error", f"player_id={player_id}, {exc}") from exc
        if player is None:
            raise PlayerNotFoundError(where, f"player_id={player_id}")
        return player

    def get_all(self) -> StoreChannel:
        """All players, soft-deleted included. Prefer get_page or iter_all for large tables."""
        where = "SqlPlayerStore.get_all"
        return StoreChannel.spawn(where, self._select(where, "SELECT * FROM players"))

    def get_page(self, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> StoreChannel:
        """One page of players ordered by id."""
        return StoreChannel.spawn("SqlPlayerStore.get_page", self._get_page(offset, limit))

    async def _get_page(self, offset: int, limit: int) -> list[Player]:
        where = "SqlPlayerStore.get_page"
        invalid = tuple(name for name, ok in (("offset", offset >= 0), ("limit", limit > 0)) if not ok)
        if invalid:
            raise PlayerValidationError(
                where,
                invalid,
                f"offset={offset}, limit={limit}",
                subject="paging arguments",
            )
        return await self._select(
            where,
            "SELECT * FROM players ORDER BY id LIMIT :limit OFFSET :offset",
            {"limit": limit, "offset": offset},
        )

    async def iter_all(self, page_size: int = DEFAULT_PAGE_SIZE) -> AsyncIterator[Player]:
        """Yield every player in id order, fetching page_size rows at a time.

        Pages are keyed on the last id seen, so rows inserted or deleted
        mid-scan do not shift later pages. Raises the StoreError of a failed page.
        """
        if page_size <= 0:
            raise PlayerValidationError(
                "SqlPlayerStore.iter_all",
                ("page_size",),
                f"page_size={page_size}",
                subject="paging arguments",
            )
        after = ""
        while True:
            page = await self._select(
                "SqlPlayerStore.iter_all",
                "SELECT * FROM players WHERE id > :after ORDER BY id LIMIT :limit",
                {"after": after, "limit": page_size},
            )
            for player in page:
                yield player
            if len(page) < page_size:
                return
            after = page[-1].id

    def get_by_email(self, email: str) -> StoreChannel:
        """Case-insensitive lookup by email. Surrounding whitespace is ignored."""
        return StoreChannel.spawn(
            "SqlPlayerStore.get_by_email",
            self._select_one("SqlPlayerStore.get_by_email", "email", email),
        )

    def get_by_username(self, username: str) -> StoreChannel:
        """Case-insensitive lookup by playername. Surrounding whitespace is ignored."""
        return StoreChannel.spawn(
            "SqlPlayerStore.get_by_username",
            self._select_one("SqlPlayerStore.get_by_username", "playername", username),
        )

    def get_total_players_count(self) -> StoreChannel:
        """Number of rows, soft-deleted players included."""
        return StoreChannel.spawn("SqlPlayerStore.get_total_players_count", self._count())

    async def _count(self) -> int:
        try:
            return await asyncio.to_thread(self._db.select_int, "SELECT COUNT(id) FROM players")
        except sqlite3.Error as exc:
            raise PersistenceError(
                "SqlPlayerStore.get_total_players_count",
                "Get total players count error",
                str(exc),
            ) from exc

    async def _select(self, where: str, sql: str, params: dict[str, object] | None = None) -> list[Player]:
        try:
            return await asyncio.to_thread(self._db.select, Player, sql, params)
        except sqlite3.Error as exc:
            raise PersistenceError(where, "Get players error", str(exc)) from exc

    async def _select_one(self, where: str, column: str, value: str) -> Player:
        value = value.strip().lower()
        # column is one of our own field names, never caller input
        try:
            player = await asyncio.to_thread(
                self._db.select_one,
                Player,
                f"SELECT * FROM players WHERE {column} = :value",  # noqa: S608
                {"value": value},
            )
        except (sqlite3.Error, LookupError) as exc:
            raise PersistenceError(where, "Get player error", f"{column}={value}, {exc}") from exc
        if player is None:
            raise PlayerNotFoundError(where, f"{column}={value}")
        return player


def _classify_write_error(where: str, message: str, player_id: str, exc: sqlite3.Error) -> StoreError:
    detail = f"player_id={player_id}, {exc}"
    violation = classify_integrity_error(exc)
    if violation is UniqueViolation.EMAIL:
        return EmailExistsError(where, detail)
    if violation is UniqueViolation.PLAYERNAME:
        return UsernameExistsError(where, detail)
    return PersistenceError(where, message, detail)
