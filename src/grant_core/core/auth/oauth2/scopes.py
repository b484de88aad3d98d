# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""OAuth2 scope definitions and validation."""

from collections.abc import Iterable
from enum import Enum

from attrs import field, frozen
from beartype import beartype

from ...result_types import Err, Ok, Result
from .errors import OAuth2Error, invalid_scope


class ScopeCategory(str, Enum):
    """Scope categories."""

    READ = "read"
    WRITE = "write"


class ScopeGroup(str, Enum):
    """Resource family a scope applies to."""

    PROFILE = "profile"
    POSTS = "posts"
    COMMENTS = "comments"
    FOLLOWS = "follows"
    NOTIFICATIONS = "notifications"
    STORAGE = "storage"
    ANALYTICS = "analytics"
    ACCOUNT = "account"


@frozen
class Scope:
    """OAuth2 scope definition."""

    id: str = field()
    name: str = field()
    description: str = field()
    category: ScopeCategory = field()
    group: ScopeGroup = field()
    requires_approval: bool = field(default=False)
    is_default: bool = field(default=False)

    @beartype
    def to_dict(self) -> dict[str, str | bool]:
        """Serialize for the scope listing endpoints."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "group": self.group.value,
            "requires_approval": self.requires_approval,
            "is_default": self.is_default,
        }


def _read(group: ScopeGroup, name: str, description: str, **kwargs: bool) -> Scope:
    options = {"requires_approval": False, "is_default": True, **kwargs}
    return Scope(
        f"read:{group.value}", name, description, ScopeCategory.READ, group, **options
    )


def _write(group: ScopeGroup, name: str, description: str) -> Scope:
    return Scope(
        f"write:{group.value}",
        name,
        description,
        ScopeCategory.WRITE,
        group,
        requires_approval=True,
        is_default=False,
    )


# Define all available scopes
SCOPES: dict[str, Scope] = {
    scope.id: scope
    for scope in (
        _read(ScopeGroup.PROFILE, "Read Profile", "Read user profile information"),
        _write(ScopeGroup.PROFILE, "Update Profile", "Update user profile information"),
        _read(ScopeGroup.POSTS, "Read Posts", "Read posts and content"),
        _write(ScopeGroup.POSTS, "Create Posts", "Create, update, and delete posts"),
        _read(ScopeGroup.COMMENTS, "Read Comments", "Read comments on posts"),
        _write(
            ScopeGroup.COMMENTS, "Create Comments", "Create, update, and delete comments"
        ),
        _read(ScopeGroup.FOLLOWS, "Read Follows", "Read follow relationships"),
        _write(ScopeGroup.FOLLOWS, "Manage Follows", "Follow and unfollow users"),
        _read(
            ScopeGroup.NOTIFICATIONS, "Read Notifications", "Read user notifications"
        ),
        _write(
            ScopeGroup.NOTIFICATIONS,
            "Manage Notifications",
            "Mark notifications as read",
        ),
        _read(ScopeGroup.STORAGE, "Read Storage", "Read file metadata"),
        _write(ScopeGroup.STORAGE, "Manage Storage", "Upload and delete files"),
        _read(
            ScopeGroup.ANALYTICS,
            "Read Analytics",
            "Read analytics data",
            requires_approval=True,
            is_default=False,
        ),
        _read(ScopeGroup.ACCOUNT, "Read Account", "Read account information"),
        _write(ScopeGroup.ACCOUNT, "Manage Account", "Modify account settings"),
    )
}


@frozen
class ScopeValidation:
    """Requested scopes partitioned against the catalog, order preserved."""

    valid: tuple[str, ...] = field(converter=tuple)
    invalid: tuple[str, ...] = field(converter=tuple)


class ScopeValidator:
    """Scope validation and lookup utilities."""

    @staticmethod
    @beartype
    def parse(scope: str | None) -> tuple[str, ...]:
        """Split a space-delimited scope string, dropping duplicates."""
        if not scope:
            return ()
        return tuple(dict.fromkeys(scope.split()))

    @staticmethod
    @beartype
    def validate_scopes_list(requested: Iterable[str]) -> ScopeValidation:
        """Partition requested scopes into known and unknown.

        Unknown strings are reported, never dropped.
        """
        valid: list[str] = []
        invalid: list[str] = []
        for scope in requested:
            (valid if scope in SCOPES else invalid).append(scope)
        return ScopeValidation(valid=valid, invalid=invalid)

    @staticmethod
    @beartype
    def intersect_with_approved(
        valid: Iterable[str], approved: Iterable[str]
    ) -> tuple[str, ...]:
        """Keep the scopes the application was approved for, in request order."""
        approved_set = set(approved)
        return tuple(scope for scope in valid if scope in approved_set)

    @staticmethod
    @beartype
    def resolve_requested_scopes(
        requested: Iterable[str], approved: Iterable[str]
    ) -> Result[tuple[str, ...], OAuth2Error]:
        """Validate a request against the catalog and the approved set.

        Fails when any scope is unknown, or when none of the requested
        scopes are approved for the application.
        """
        requested = tuple(requested)
        approved = tuple(approved)

        validation = ScopeValidator.validate_scopes_list(requested)
        if validation.invalid:
            return Err(
                invalid_scope(
                    f"Invalid scopes: {', '.join(validation.invalid)}. "
                    f"Available scopes: {', '.join(SCOPES)}"
                )
            )

        granted = ScopeValidator.intersect_with_approved(validation.valid, approved)
        if requested and not granted:
            return Err(
                invalid_scope(
                    f"None of the requested scopes are approved for this application. "
                    f"Requested: {', '.join(requested)}. "
                    f"Approved: {', '.join(approved) or '(none)'}"
                )
            )
        return Ok(granted)

    @staticmethod
    @beartype
    def has_scope(token_scopes: Iterable[str], required: Iterable[str]) -> bool:
        """True when the token carries at least one of the required scopes."""
        held = set(token_scopes)
        return any(scope in held for scope in required)

    @staticmethod
    @beartype
    def has_all_scopes(token_scopes: Iterable[str], required: Iterable[str]) -> bool:
        """True when the token carries every required scope."""
        return set(required).issubset(set(token_scopes))

    @staticmethod
    @beartype
    def get_scope(scope_id: str) -> Scope | None:
        """Look up a scope definition by id."""
        return SCOPES.get(scope_id)

    @staticmethod
    @beartype
    def get_all_scopes() -> list[Scope]:
        """Every scope in catalog order."""
        return list(SCOPES.values())

    @staticmethod
    @beartype
    def get_scopes_by_group(group: ScopeGroup) -> list[Scope]:
        """Scopes belonging to one resource family."""
        return [scope for scope in SCOPES.values() if scope.group is group]

    @staticmethod
    @beartype
    def get_scopes_by_category(category: ScopeCategory) -> list[Scope]:
        """Scopes of one access category."""
        return [scope for scope in SCOPES.values() if scope.category is category]

    @staticmethod
    @beartype
    def get_default_scopes() -> list[Scope]:
        """Scopes granted without manual review."""
        return [scope for scope in SCOPES.values() if scope.is_default]

    @staticmethod
    @beartype
    def get_scopes_requiring_approval() -> list[Scope]:
        """Scopes an application needs manual approval for."""
        return [scope for scope in SCOPES.values() if scope.requires_approval]
