"""Centralized logging configuration for the ``ledgerline`` package.

Two public helpers:

- ``configure_logging(...)``: attach one ``StreamHandler`` to the package
  logger (``"ledgerline"``). Entrypoints (the CLI, or a host web app) call it
  once at startup; repeated calls are no-ops.
- ``get_logger(name)``: acquire a child logger. Until ``configure_logging``
  runs, the package logger carries a ``NullHandler`` so library use stays
  silent.

Library modules never attach handlers of their own; they call
``get_logger("ledgerline.<module>")`` and leave output to the entrypoint.

Environment
-----------
``LEDGERLINE_LOG_LEVEL``
    Default level when ``configure_logging`` is called without one
    (name such as ``DEBUG`` or a number).
``LEDGERLINE_LOG_FORMAT``
    Default format string.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "ledgerline"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        level = os.getenv("LEDGERLINE_LOG_LEVEL")
        if not level:
            return logging.INFO
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name)
    # getLevelName returns "Level X" for unknown names
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Configure the package logger exactly once.

    Parameters
    ----------
    level:
        ``int`` or level name. ``None`` defers to ``LEDGERLINE_LOG_LEVEL`` and
        then ``logging.INFO``.
    fmt:
        Format string; defaults to ``LEDGERLINE_LOG_FORMAT`` or
        ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Target stream, ``sys.stderr`` when omitted.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(
        logging.Formatter(fmt or os.getenv("LEDGERLINE_LOG_FORMAT") or _DEFAULT_FORMAT)
    )

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name with a ``NullHandler`` fallback on the package logger."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
