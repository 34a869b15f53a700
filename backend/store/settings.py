"""Player store configuration via environment variables."""

import logging
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class StoreSettings(BaseSettings):
    model_config = {"env_prefix": "STORE_"}

    # SQLite database file path
    database_path: str = "backend/storage.db"

    # How long a connection waits on a locked database before failing
    busy_timeout_ms: int = Field(default=5000, gt=0)


class LoggingSettings(BaseSettings):
    """LOG_FORMAT and LOG_LEVEL, shared with the host process (no prefix)."""

    # "json" for log aggregation, "console" or empty for human-readable output
    log_format: Literal["json", "console", ""] = ""
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @field_validator("log_format", mode="before")
    @classmethod
    def _lower_format(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    @property
    def json_mode(self) -> bool:
        return self.log_format == "json"

    @property
    def level_number(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level]
