"""Unit tests for audit sinks and OAuth2 errors."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from grant_core.core.auth.oauth2.audit import (
    AuditEventType,
    DatabaseAuditLogger,
    LoggingAuditLogger,
    RiskLevel,
    SecurityEvent,
)
from grant_core.core.auth.oauth2.errors import (
    OAuth2Error,
    OAuth2ErrorCode,
    invalid_client,
    invalid_grant,
)
from grant_core.core.logging_utils import SECURITY_LOGGER_NAME


class TestAuditLoggers:
    """Tests for audit sinks."""

    async def test_high_risk_goes_to_security_logger(self, caplog):
        """Reuse and collisions are warnings on the security logger."""
        event = SecurityEvent(
            event_type=AuditEventType.REFRESH_TOKEN_REUSE,
            risk_level=RiskLevel.HIGH,
            token_id=uuid4(),
            message="Revoked refresh token presented",
        )

        with caplog.at_level("INFO"):
            await LoggingAuditLogger().log_event(event)

        (record,) = caplog.records
        assert record.name == SECURITY_LOGGER_NAME
        assert record.levelname == "WARNING"
        assert "refresh_token_reuse" in record.getMessage()

    async def test_database_sink_inserts(self, mock_db):
        """Events are written to the audit table."""
        event = SecurityEvent(
            event_type=AuditEventType.TOKENS_ISSUED,
            message="Tokens issued via client_credentials",
            event_data={"scopes": ["read:posts"]},
        )

        await DatabaseAuditLogger(mock_db).log_event(event)

        args = mock_db.execute.call_args.args
        assert "INSERT INTO oauth_audit_logs" in args[0]
        assert args[1] == event.event_id
        assert args[2] == "tokens_issued"
        assert args[8] == {"scopes": ["read:posts"]}

    async def test_database_failure_is_swallowed(self, mock_db, caplog):
        """A failing audit write never fails the operation."""
        mock_db.execute = AsyncMock(side_effect=OSError("connection reset"))
        event = SecurityEvent(event_type=AuditEventType.TOKEN_REVOKED, message="x")

        await DatabaseAuditLogger(mock_db).log_event(event)

        assert "Failed to persist audit event" in caplog.text


class TestOAuth2Error:
    """Tests for the OAuth2 error type."""

    @pytest.mark.parametrize(
        ("code", "status"),
        [
            (OAuth2ErrorCode.INVALID_REQUEST, 400),
            (OAuth2ErrorCode.INVALID_CLIENT, 401),
            (OAuth2ErrorCode.INVALID_GRANT, 400),
            (OAuth2ErrorCode.UNAUTHORIZED_CLIENT, 403),
            (OAuth2ErrorCode.INVALID_SCOPE, 400),
            (OAuth2ErrorCode.RATE_LIMIT_EXCEEDED, 429),
            (OAuth2ErrorCode.INVALID_TOKEN, 401),
            (OAuth2ErrorCode.INSUFFICIENT_SCOPE, 403),
        ],
    )
    def test_status_codes(self, code, status):
        """Each error code has its HTTP status."""
        assert OAuth2Error(code).status_code == status

    def test_to_dict(self):
        """Description is included only when present."""
        assert invalid_grant("Invalid authorization code").to_dict() == {
            "error": "invalid_grant",
            "error_description": "Invalid authorization code",
        }
        assert OAuth2Error(OAuth2ErrorCode.INVALID_TOKEN).to_dict() == {
            "error": "invalid_token"
        }

    def test_equality(self):
        """Errors compare by code and description."""
        assert invalid_client() == invalid_client()
        assert invalid_client() != invalid_client("other")
