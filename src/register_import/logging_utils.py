"""Console logging setup shared by the CLI and the HTTP app."""
from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LEVEL_ENV = "REGISTER_IMPORT_LOG_LEVEL"

# Third-party loggers that are too chatty below WARNING.
QUIET_LOGGERS = ("multipart", "python_multipart", "openpyxl")


def _level(value: str | int | None) -> int:
    if value is None:
        value = os.getenv(LEVEL_ENV, "INFO")
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(value.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: str | int | None = None, *, force: bool = False) -> None:
    """Configure the root logger for console output.

    ``level`` falls back to ``REGISTER_IMPORT_LOG_LEVEL`` and then INFO; unknown
    names mean INFO. When the root logger already has handlers only its level
    is changed, unless ``force`` is set.
    """

    resolved = _level(level)
    root = logging.getLogger()
    if root.handlers and not force:
        root.setLevel(resolved)
    else:
        logging.basicConfig(level=resolved, format=LOG_FORMAT, force=force)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))


__all__ = ["configure_logging"]
