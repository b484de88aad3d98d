# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""FastAPI API layer for GrantCore.

This package exposes the OAuth2 authorization, token, introspection and
revocation endpoints plus the scope catalog.
"""

__all__: list[str] = []
