"""Classification of backing-store constraint violations.

SQLite reports uniqueness failures as ``UNIQUE constraint failed: <table>.<column>``
with ``sqlite_errorname == "SQLITE_CONSTRAINT_UNIQUE"``. That structured form is
checked first; other drivers (or older SQLite builds) only give us text, so known
constraint and index names are matched as a fallback.
"""

from __future__ import annotations

import re
from enum import StrEnum

EMAIL_SIGNATURES = ("players.email", "players_email_key", "idx_players_email_unique")
PLAYERNAME_SIGNATURES = ("players.playername", "players_username_key", "idx_players_username_unique")

_UNIQUE_MARKERS = ("unique constraint", "duplicate entry", "duplicate key")
_UNIQUE_FAILED = re.compile(r"UNIQUE constraint failed: (.+)$", re.IGNORECASE)


class UniqueViolation(StrEnum):
    EMAIL = "email"
    PLAYERNAME = "playername"


_VIOLATION_COLUMNS = {
    "players.email": UniqueViolation.EMAIL,
    "players.playername": UniqueViolation.PLAYERNAME,
}


def is_unique_constraint_error(message: str, signatures: tuple[str, ...]) -> bool:
    """Return True when message reports a uniqueness failure naming one of signatures."""
    lowered = message.lower()
    if not any(marker in lowered for marker in _UNIQUE_MARKERS):
        return False
    return any(sig.lower() in lowered for sig in signatures)


def classify_integrity_error(exc: Exception) -> UniqueViolation | None:
    """Map a backing-store error to the uniqueness constraint it violated, if any."""
    message = str(exc)

    if getattr(exc, "sqlite_errorname", None) == "SQLITE_CONSTRAINT_UNIQUE":
        match = _UNIQUE_FAILED.search(message)
        if match is not None:
            columns = [c.strip().lower() for c in match.group(1).split(",")]
            for column in columns:
                if column in _VIOLATION_COLUMNS:
                    return _VIOLATION_COLUMNS[column]
            return None

    if is_unique_constraint_error(message, EMAIL_SIGNATURES):
        return UniqueViolation.EMAIL
    if is_unique_constraint_error(message, PLAYERNAME_SIGNATURES):
        return UniqueViolation.PLAYERNAME
    return None
