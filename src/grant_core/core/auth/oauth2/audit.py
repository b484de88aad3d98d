# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Audit trail for grant lifecycle and security events.

Audit sinks never fail the OAuth operation that produced the event: write
errors are logged and swallowed at the sink boundary.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol
from uuid import UUID, uuid4

import asyncpg
from beartype import beartype
from pydantic import BaseModel, ConfigDict, Field

from ...database import Database
from ...logging_utils import SECURITY_LOGGER_NAME

logger = logging.getLogger(__name__)
security_logger = logging.getLogger(SECURITY_LOGGER_NAME)


class AuditEventType(str, Enum):
    """Grant lifecycle and security events."""

    CODE_ISSUED = "code_issued"
    TOKENS_ISSUED = "tokens_issued"
    TOKEN_ROTATED = "token_rotated"
    TOKEN_REVOKED = "token_revoked"
    REFRESH_TOKEN_REUSE = "refresh_token_reuse"
    FINGERPRINT_COLLISION = "fingerprint_collision"
    CODE_REPLAY = "code_replay"


class RiskLevel(str, Enum):
    """Risk levels for audit events."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class SecurityEvent(BaseModel):
    """Immutable audit event."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: AuditEventType = Field(...)
    risk_level: RiskLevel = Field(default=RiskLevel.INFO)

    application_id: UUID | None = Field(default=None)
    user_id: UUID | None = Field(default=None)
    token_id: UUID | None = Field(default=None)

    message: str = Field(..., min_length=1, max_length=500)
    event_data: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_security_event(self) -> bool:
        """High and critical events go to the security log as well."""
        return self.risk_level in (RiskLevel.CRITICAL, RiskLevel.HIGH)


class AuditLogger(Protocol):
    """Anything that can record a security event."""

    async def log_event(self, event: SecurityEvent) -> None: ...


class LoggingAuditLogger:
    """Audit sink that writes to the standard logging system."""

    @beartype
    async def log_event(self, event: SecurityEvent) -> None:
        """Log the event, routing high-risk events to the security logger."""
        target = security_logger if event.is_security_event else logger
        level = logging.WARNING if event.is_security_event else logging.INFO
        target.log(
            level,
            "%s: %s (application=%s user=%s token=%s)",
            event.event_type.value,
            event.message,
            event.application_id,
            event.user_id,
            event.token_id,
        )


class DatabaseAuditLogger(LoggingAuditLogger):
    """Audit sink that persists events to ``oauth_audit_logs``."""

    def __init__(self, database: Database) -> None:
        self._database = database

    @beartype
    async def log_event(self, event: SecurityEvent) -> None:
        """Persist the event; failures are logged, never raised."""
        await super().log_event(event)
        try:
            await self._database.execute(
                """
                INSERT INTO oauth_audit_logs (
                    id, event_type, risk_level, application_id, user_id,
                    token_id, message, event_data, created_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                """,
                event.event_id,
                event.event_type.value,
                event.risk_level.value,
                event.application_id,
                event.user_id,
                event.token_id,
                event.message,
                event.event_data,
                event.timestamp,
            )
        except (asyncpg.PostgresError, OSError, RuntimeError):
            logger.exception("Failed to persist audit event %s", event.event_id)
