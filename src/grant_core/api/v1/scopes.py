# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Scope catalog endpoints."""

from beartype import beartype
from fastapi import APIRouter, HTTPException, Query, status

from ...core.auth.oauth2.scopes import ScopeCategory, ScopeGroup, ScopeValidator
from ...schemas.oauth2 import ScopeListResponse, ScopeSchema

router = APIRouter(prefix="/oauth2/scopes", tags=["oauth2"])


@router.get("")
@beartype
async def list_scopes(
    group: ScopeGroup | None = Query(None, description="Filter by resource group"),
    category: ScopeCategory | None = Query(None, description="Filter by read/write"),
) -> ScopeListResponse:
    """List the scopes applications may request."""
    if group is not None:
        scopes = ScopeValidator.get_scopes_by_group(group)
    else:
        scopes = ScopeValidator.get_all_scopes()
    if category is not None:
        scopes = [scope for scope in scopes if scope.category is category]

    return ScopeListResponse(
        scopes=[ScopeSchema(**scope.to_dict()) for scope in scopes]
    )


@router.get("/{scope_id}")
@beartype
async def get_scope(scope_id: str) -> ScopeSchema:
    """Describe a single scope."""
    scope = ScopeValidator.get_scope(scope_id)
    if scope is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scope '{scope_id}' not found",
        )
    return ScopeSchema(**scope.to_dict())
