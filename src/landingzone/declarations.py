"""Desired-state declarations and the apply context.

A declaration describes one thing that should exist in the tenant:
a management group, a subscription placement or a policy assignment.
Declarations are validated once at construction so that malformed
identifiers are rejected before any remote call is made.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from .config import (
    ASSIGNMENT_NAME_DISALLOWED_PATTERN,
    MAX_ASSIGNMENT_NAME_LENGTH,
    MAX_MANAGEMENT_GROUP_ID_LENGTH,
    VALID_LOCATION_PATTERN,
    VALID_MANAGEMENT_GROUP_ID_PATTERN,
    VALID_PREFIX_PATTERN,
    ConfigurationError,
    is_valid_subscription_id,
)

MANAGEMENT_GROUP_SCOPE_PREFIX = "/providers/Microsoft.Management/managementGroups/"

ENFORCEMENT_MODES = ("Default", "DoNotEnforce")


def sanitize_assignment_name(name: str) -> str:
    """Reduce a policy assignment name to what ARM accepts.

    Characters outside [A-Za-z0-9-] are stripped, then the result is
    truncated to 24 characters. Lookups must use the sanitized name or
    they miss assignments created under the truncated name.
    """
    return re.sub(ASSIGNMENT_NAME_DISALLOWED_PATTERN, "", name)[:MAX_ASSIGNMENT_NAME_LENGTH]


def management_group_scope(group_id: str) -> str:
    """Build the ARM scope string for a management group."""
    return f"{MANAGEMENT_GROUP_SCOPE_PREFIX}{group_id}"


def _validate_group_id(value: str, label: str) -> None:
    if not value:
        raise ConfigurationError(f"{label} is required")
    if not re.match(VALID_MANAGEMENT_GROUP_ID_PATTERN, value):
        raise ConfigurationError(
            f"{label} may only contain letters, digits, '-', '_', '.', '(' and ')': {value}"
        )
    if len(value) > MAX_MANAGEMENT_GROUP_ID_LENGTH:
        raise ConfigurationError(
            f"{label} exceeds {MAX_MANAGEMENT_GROUP_ID_LENGTH} characters: {value}"
        )


@dataclass(frozen=True)
class ApplyContext:
    """Read-only settings shared by every convergence call of a run."""

    simulate_only: bool
    naming_prefix: str
    default_region: str

    def __post_init__(self) -> None:
        if not re.match(VALID_PREFIX_PATTERN, self.naming_prefix):
            raise ConfigurationError(
                f"Naming prefix may only contain letters, digits and '-': {self.naming_prefix}"
            )
        if not re.match(VALID_LOCATION_PATTERN, self.default_region):
            raise ConfigurationError(f"Invalid default region: {self.default_region}")

    def qualify(self, group_id: str) -> str:
        """Apply the naming prefix to a short management group id."""
        if not self.naming_prefix:
            return group_id
        return f"{self.naming_prefix}-{group_id}"


@dataclass(frozen=True)
class ManagementGroupDeclaration:
    """A management group that should exist.

    ``parent_id`` is the short id of another group in the hierarchy and is
    prefixed like every other group. With ``parent_is_external`` set it is an
    existing group outside the hierarchy (e.g. the tenant root) and is used
    verbatim. No parent means the tenant root group.
    """

    id: str
    display_name: str
    parent_id: str | None = None
    parent_is_external: bool = False

    kind = "managementGroup"

    def __post_init__(self) -> None:
        _validate_group_id(self.id, "Management group id")
        if self.parent_id is not None:
            _validate_group_id(self.parent_id, "Parent management group id")
        elif self.parent_is_external:
            raise ConfigurationError(
                f"Management group '{self.id}' has an external parent flag but no parent id"
            )
        if not self.display_name:
            raise ConfigurationError(f"Management group '{self.id}' requires a display name")


@dataclass(frozen=True)
class SubscriptionPlacement:
    """A subscription that should sit under a management group.

    An empty subscription id is allowed here; it converges to Skipped.
    """

    subscription_id: str
    target_group_id: str

    kind = "subscriptionPlacement"

    def __post_init__(self) -> None:
        if self.subscription_id and not is_valid_subscription_id(self.subscription_id):
            raise ConfigurationError(
                f"Subscription id must be a valid GUID: {self.subscription_id}"
            )
        _validate_group_id(self.target_group_id, "Target management group id")


@dataclass(frozen=True)
class PolicyAssignmentDeclaration:
    """A policy assignment that should exist at a management group scope."""

    name: str
    display_name: str
    policy_definition_id: str
    scope_id: str
    parameters: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    requires_identity: bool = False
    location: str | None = None
    enforcement_mode: str = "Default"

    kind = "policyAssignment"

    def __post_init__(self) -> None:
        if not sanitize_assignment_name(self.name):
            raise ConfigurationError(
                f"Policy assignment name has no usable characters: {self.name!r}"
            )
        if not self.policy_definition_id.startswith("/providers/"):
            raise ConfigurationError(
                f"Policy definition id must be a resource id: {self.policy_definition_id}"
            )
        _validate_group_id(self.scope_id, "Policy assignment scope")
        if self.location is not None and not re.match(VALID_LOCATION_PATTERN, self.location):
            raise ConfigurationError(f"Invalid policy assignment location: {self.location}")
        if self.enforcement_mode not in ENFORCEMENT_MODES:
            raise ConfigurationError(
                f"enforcement_mode must be one of {ENFORCEMENT_MODES}: {self.enforcement_mode}"
            )

    @property
    def assignment_name(self) -> str:
        """Name as it is looked up and created in Azure."""
        return sanitize_assignment_name(self.name)


DesiredResource = ManagementGroupDeclaration | SubscriptionPlacement | PolicyAssignmentDeclaration
