# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Keep delegated OAuth tokens away from account-management endpoints."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from beartype import beartype
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from fastapi.security.utils import get_authorization_scheme_param
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.status import HTTP_403_FORBIDDEN

from ...core.config import get_settings
from ...core.logging_utils import SECURITY_LOGGER_NAME

security_logger = logging.getLogger(SECURITY_LOGGER_NAME)


class RestrictedPathMiddleware(BaseHTTPMiddleware):
    """Reject OAuth bearer tokens on paths reserved for first-party sessions."""

    def __init__(
        self, app: Any, restricted_prefixes: tuple[str, ...] | None = None
    ) -> None:
        """Initialize middleware.

        Args:
            app: FastAPI application
            restricted_prefixes: Path prefixes OAuth tokens may never reach
        """
        super().__init__(app)
        if restricted_prefixes is None:
            restricted_prefixes = tuple(get_settings().oauth_restricted_path_prefixes)
        self.restricted_prefixes = restricted_prefixes

    @beartype
    def is_restricted(self, path: str) -> bool:
        """Check whether a path is off limits to delegated tokens."""
        return any(path.startswith(prefix) for prefix in self.restricted_prefixes)

    @beartype
    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Short-circuit bearer requests to restricted paths."""
        if not self.is_restricted(request.url.path):
            return await call_next(request)

        scheme, token = get_authorization_scheme_param(
            request.headers.get("Authorization")
        )
        if scheme.lower() != "bearer" or not token:
            return await call_next(request)

        security_logger.warning(
            "OAuth token presented to restricted path %s %s",
            request.method,
            request.url.path,
        )
        return JSONResponse(
            status_code=HTTP_403_FORBIDDEN,
            content={
                "error": "access_denied",
                "error_description": (
                    "OAuth tokens cannot access account management endpoints"
                ),
            },
        )
