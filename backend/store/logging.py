"""structlog setup for processes that host the player store.

Output format and level come from ``LoggingSettings`` (LOG_FORMAT, LOG_LEVEL).
Store modules only call ``structlog.get_logger()``; the host calls
``setup_logging`` once at startup.
"""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from store.settings import LoggingSettings

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

# Keys whose values must never reach a log sink.
_REDACTED_KEYS = frozenset({"password", "new_password"})
_REDACTED = "***"


def _redact_credentials(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Mask credential fields, including ones nested one level inside a dict."""
    for key, value in event_dict.items():
        if key in _REDACTED_KEYS:
            event_dict[key] = _REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {k: _REDACTED if k in _REDACTED_KEYS else v for k, v in value.items()}
    return event_dict


def _handler(handler: logging.Handler, *, json_mode: bool, colors: bool) -> logging.Handler:
    renderer = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer(colors=colors)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        ),
    )
    return handler


def setup_logging(
    log_dir: Path | str | None = None,
    level: int | None = None,
    settings: LoggingSettings | None = None,
) -> Path | None:
    """Route structlog through stdlib handlers: stdout, plus a timestamped file in log_dir.

    Returns the log file path when one was created.
    """
    settings = settings or LoggingSettings()
    if level is None:
        level = settings.level_number

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _redact_credentials,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for old in root_logger.handlers[:]:
        root_logger.removeHandler(old)
        old.close()

    root_logger.addHandler(
        _handler(logging.StreamHandler(sys.stdout), json_mode=settings.json_mode, colors=sys.stdout.isatty()),
    )
    if log_dir is None:
        return None

    dir_path = Path(log_dir)
    dir_path.mkdir(parents=True, exist_ok=True)
    file_path = dir_path / f"store_{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"
    root_logger.addHandler(_handler(logging.FileHandler(file_path), json_mode=settings.json_mode, colors=False))
    return file_path
