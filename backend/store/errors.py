"""Domain errors raised and reported by the player store.

Every store failure is one of these kinds. ``message`` is safe to show to an
end user; ``detail`` carries the raw backing-store text and correlation id and
is meant for logs only.
"""

from __future__ import annotations

from enum import StrEnum
from http import HTTPStatus


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    EMAIL_EXISTS = "email_exists"
    USERNAME_EXISTS = "username_exists"
    NOT_FOUND = "not_found"
    CONSISTENCY = "consistency"
    PERSISTENCE = "persistence"


class StoreError(Exception):
    """Base class for all player store failures."""

    kind: ErrorKind = ErrorKind.PERSISTENCE
    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, where: str, message: str, detail: str = "") -> None:
        super().__init__(message)
        self.where = where
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.where}: {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(where={self.where!r}, message={self.message!r}, detail={self.detail!r})"


class PlayerValidationError(StoreError):
    """The record failed structural validation. ``fields`` lists every offending field."""

    kind = ErrorKind.VALIDATION
    status_code = HTTPStatus.BAD_REQUEST

    def __init__(self, where: str, fields: tuple[str, ...], detail: str = "", *, subject: str = "player fields") -> None:
        super().__init__(where, f"Invalid {subject}: {', '.join(fields)}", detail)
        self.fields = fields


class EmailExistsError(StoreError):
    kind = ErrorKind.EMAIL_EXISTS
    status_code = HTTPStatus.CONFLICT

    def __init__(self, where: str, detail: str = "") -> None:
        super().__init__(where, "Email already exists", detail)


class UsernameExistsError(StoreError):
    kind = ErrorKind.USERNAME_EXISTS
    status_code = HTTPStatus.CONFLICT

    def __init__(self, where: str, detail: str = "") -> None:
        super().__init__(where, "Username already exists", detail)


class PlayerNotFoundError(StoreError):
    kind = ErrorKind.NOT_FOUND
    status_code = HTTPStatus.NOT_FOUND

    def __init__(self, where: str, detail: str = "") -> None:
        super().__init__(where, "Missing player error", detail)


class ConsistencyError(StoreError):
    """An update affected an unexpected number of rows."""

    kind = ErrorKind.CONSISTENCY


class PersistenceError(StoreError):
    """Opaque backing-store failure."""

    kind = ErrorKind.PERSISTENCE
