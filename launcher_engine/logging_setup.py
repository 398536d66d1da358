"""
Logging configuration for launcher entry points.

Engine modules only create module-level loggers; they never install handlers.
Entry points (CLI, GUI) call :func:`configure_logging` once at startup.
"""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s"
LOG_FILE_NAME = "klauncher.log"


def configure_logging(
    *,
    verbose: bool = False,
    logs_root: Path | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> logging.Logger:
    """
    Configure the ``launcher_engine`` logger hierarchy.

    Parameters
    ----------
    verbose:
        Log at DEBUG instead of INFO.
    logs_root:
        When given, also write a rotating log file there.
    max_bytes, backup_count:
        Rotation policy for the file handler.

    Returns
    -------
    logging.Logger
        The configured ``launcher_engine`` logger.

    Notes
    -----
    Calling this more than once replaces previously installed handlers rather
    than stacking them.
    """
    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger("launcher_engine")
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    stream.setLevel(level if verbose else logging.WARNING)
    root.addHandler(stream)

    if logs_root is not None:
        try:
            logs_root.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                logs_root / LOG_FILE_NAME,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            root.warning("File logging disabled: %s", exc)
        else:
            file_handler.setFormatter(formatter)
            file_handler.setLevel(level)
            root.addHandler(file_handler)

    return root
