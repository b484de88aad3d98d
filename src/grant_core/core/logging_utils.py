# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Central logging utilities for the GrantCore authorization server.

This module enforces a consistent logging configuration across the
code-base and provides a helper for retrieving module-scoped loggers.

Key Features
------------
1. configure_logging(): idempotent initialization of the root logger.
2. get_logger(name): typed helper that always returns a configured logger.
3. resolve_level(name): maps a settings level name to a ``logging`` level.

Security events (fingerprint collisions, refresh token reuse) are emitted
on the ``grant_core.security`` logger so they can be routed separately.
"""

from __future__ import annotations

import logging
from typing import Final

from beartype import beartype

__all__: Final = [
    "SECURITY_LOGGER_NAME",
    "configure_logging",
    "get_logger",
    "resolve_level",
]

SECURITY_LOGGER_NAME: Final = "grant_core.security"

_DEFAULT_LOG_FORMAT: Final = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_is_configured: bool = False


@beartype
def resolve_level(name: str) -> int:
    """Translate a level name such as ``"INFO"`` into its numeric value."""
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name}")
    return level


@beartype
def configure_logging(
    *, level: int | None = None, fmt: str = _DEFAULT_LOG_FORMAT
) -> None:
    """Configure the root logger.

    The handler and format are installed on the first invocation only. An
    explicit ``level`` is applied to the root logger on every call.
    """
    global _is_configured
    if not _is_configured:
        logging.basicConfig(
            level=logging.INFO if level is None else level, format=fmt
        )
        _is_configured = True
    if level is not None:
        logging.getLogger().setLevel(level)


@beartype
def get_logger(name: str | None = None, *, level: int | None = None) -> logging.Logger:
    """Return a module-scoped logger that is guaranteed to be configured."""
    configure_logging()
    logger = logging.getLogger(name or "grant_core")
    if level is not None:
        logger.setLevel(level)
    return logger
