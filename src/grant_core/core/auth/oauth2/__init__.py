"""OAuth2 authorization server implementation.

``OAuth2Server`` lives in ``.server`` and is imported from there directly;
this package only re-exports the leaf types.
"""

from .errors import OAuth2Error, OAuth2ErrorCode
from .models import (
    Application,
    ApplicationEnvironment,
    ApplicationStatus,
    DelegatedToken,
    GrantType,
    PKCEMethod,
)
from .scopes import SCOPES, Scope, ScopeCategory, ScopeGroup, ScopeValidator

__all__ = [
    "Application",
    "ApplicationEnvironment",
    "ApplicationStatus",
    "DelegatedToken",
    "GrantType",
    "OAuth2Error",
    "OAuth2ErrorCode",
    "PKCEMethod",
    "SCOPES",
    "Scope",
    "ScopeCategory",
    "ScopeGroup",
    "ScopeValidator",
]
