"""Pydantic models for the landing zone configuration file.

These models provide:
1. Type-safe YAML parsing
2. Validation at the boundary (fail fast, fail loudly)
3. A single typed tree the planner turns into declarations
"""

from __future__ import annotations

import re
from typing import Annotated

from pydantic import BaseModel, Field, field_validator, model_validator

from .config import (
    VALID_LOCATION_PATTERN,
    VALID_MANAGEMENT_GROUP_ID_PATTERN,
    VALID_PREFIX_PATTERN,
    is_valid_subscription_id,
)

# Effects a category may request. The built-in definitions used here have a
# fixed Deny effect; Audit is expressed through enforcement mode.
VALID_EFFECTS = ("Audit", "Deny")

# Resource types a Fabric landing zone needs by default
DEFAULT_FABRIC_RESOURCE_TYPES: tuple[str, ...] = (
    "Microsoft.Fabric/capacities",
    "Microsoft.PowerBIDedicated/capacities",
    "Microsoft.Storage/storageAccounts",
    "Microsoft.KeyVault/vaults",
    "Microsoft.Network/virtualNetworks",
    "Microsoft.Network/privateEndpoints",
    "Microsoft.Network/privateDnsZones",
    "Microsoft.ManagedIdentity/userAssignedIdentities",
    "Microsoft.OperationalInsights/workspaces",
)


def _check_group_id(v: str) -> str:
    if not re.match(VALID_MANAGEMENT_GROUP_ID_PATTERN, v):
        raise ValueError(
            "must only contain letters, digits, '-', '_', '.', '(' and ')'"
        )
    return v


# =============================================================================
# Organization
# =============================================================================


class OrganizationConfig(BaseModel):
    """Organization-wide naming and region settings."""

    model_config = {"extra": "ignore"}

    prefix: str = ""
    allowed_regions: list[str] = Field(alias="allowedRegions", min_length=1)
    default_region: str | None = Field(None, alias="defaultRegion")

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        if not re.match(VALID_PREFIX_PATTERN, v):
            raise ValueError("prefix may only contain letters, digits and '-'")
        return v

    @field_validator("allowed_regions")
    @classmethod
    def validate_regions(cls, v: list[str]) -> list[str]:
        for region in v:
            if not re.match(VALID_LOCATION_PATTERN, region):
                raise ValueError(f"invalid region name: {region}")
        return v

    @model_validator(mode="after")
    def validate_default_region(self) -> OrganizationConfig:
        if self.default_region is not None and self.default_region not in self.allowed_regions:
            raise ValueError(
                f"defaultRegion '{self.default_region}' is not in allowedRegions"
            )
        return self

    @property
    def region(self) -> str:
        """Region used for resources that require one."""
        return self.default_region or self.allowed_regions[0]


# =============================================================================
# Management Group Hierarchy
# =============================================================================


class ManagementGroupConfig(BaseModel):
    """A single management group."""

    model_config = {"extra": "ignore"}

    id: Annotated[str, Field(min_length=1, max_length=80)]
    display_name: str | None = Field(None, alias="displayName")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _check_group_id(v)

    @property
    def label(self) -> str:
        return self.display_name or self.id


class RootGroupConfig(ManagementGroupConfig):
    """Top of the organization hierarchy.

    ``parentId`` is an existing group outside the hierarchy. When omitted
    the group is created under the tenant root group.
    """

    parent_id: str | None = Field(None, alias="parentId")

    @field_validator("parent_id")
    @classmethod
    def validate_parent_id(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _check_group_id(v)


class GroupSectionConfig(ManagementGroupConfig):
    """A group with child groups directly below it."""

    children: list[ManagementGroupConfig] = Field(default_factory=list)


class ManagementGroupsConfig(BaseModel):
    """Management group tree: root, platform and landing zones."""

    model_config = {"extra": "ignore"}

    root: RootGroupConfig
    platform: GroupSectionConfig
    landing_zones: GroupSectionConfig = Field(alias="landingZones")

    def all_groups(self) -> list[ManagementGroupConfig]:
        """Return every group in dependency order."""
        return [
            self.root,
            self.platform,
            *self.platform.children,
            self.landing_zones,
            *self.landing_zones.children,
        ]

    @model_validator(mode="after")
    def validate_unique_ids(self) -> ManagementGroupsConfig:
        seen: set[str] = set()
        for group in self.all_groups():
            key = group.id.lower()
            if key in seen:
                raise ValueError(f"duplicate management group id: {group.id}")
            seen.add(key)
        return self


# =============================================================================
# Subscriptions
# =============================================================================


class SubscriptionConfig(BaseModel):
    """Placement of a subscription under a management group."""

    model_config = {"extra": "ignore"}

    subscription_id: str = Field("", alias="subscriptionId")
    management_group: str = Field(alias="managementGroup")

    @field_validator("subscription_id")
    @classmethod
    def validate_subscription_id(cls, v: str) -> str:
        v = v.strip()
        if v and not is_valid_subscription_id(v):
            raise ValueError("subscriptionId must be a valid GUID")
        return v


# =============================================================================
# Policies
# =============================================================================


class PolicyCategoryConfig(BaseModel):
    """Settings shared by every policy category."""

    model_config = {"extra": "ignore"}

    enabled: bool = False
    scope: str | None = None  # Defaults to the root group


class EffectCategoryConfig(PolicyCategoryConfig):
    """A category whose intent is Audit or Deny."""

    effect: str = "Deny"

    @field_validator("effect")
    @classmethod
    def validate_effect(cls, v: str) -> str:
        if v not in VALID_EFFECTS:
            raise ValueError(f"effect must be one of {VALID_EFFECTS}")
        return v


class AllowedLocationsConfig(EffectCategoryConfig):
    """Restrict resources to the organization's allowed regions."""

    include_resource_groups: bool = Field(True, alias="includeResourceGroups")


class TagPolicyConfig(EffectCategoryConfig):
    """One assignment per tag name."""

    tags: list[str] = Field(default_factory=list)
    include_resource_groups: bool = Field(False, alias="includeResourceGroups")

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        for tag in v:
            if not tag.strip():
                raise ValueError("tag names must not be empty")
        return v


class AuditTagsConfig(TagPolicyConfig):
    """Tags reported as non-compliant without blocking deployments."""

    effect: str = "Audit"


class InheritTagsConfig(PolicyCategoryConfig):
    """Copy tags from the resource group when missing (Modify, needs identity)."""

    tags: list[str] = Field(default_factory=list)


class AllowedResourceTypesConfig(EffectCategoryConfig):
    """Limit deployable resource types."""

    resource_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FABRIC_RESOURCE_TYPES), alias="resourceTypes"
    )


class PoliciesConfig(BaseModel):
    """Per-category policy settings."""

    model_config = {"extra": "ignore"}

    allowed_locations: AllowedLocationsConfig = Field(
        default_factory=AllowedLocationsConfig, alias="allowedLocations"
    )
    required_tags: TagPolicyConfig = Field(default_factory=TagPolicyConfig, alias="requiredTags")
    audit_tags: AuditTagsConfig = Field(default_factory=AuditTagsConfig, alias="auditTags")
    inherit_tags: InheritTagsConfig = Field(
        default_factory=InheritTagsConfig, alias="inheritTags"
    )
    allowed_resource_types: AllowedResourceTypesConfig = Field(
        default_factory=AllowedResourceTypesConfig, alias="allowedResourceTypes"
    )


# =============================================================================
# Top-level Spec
# =============================================================================


class LandingZoneSpec(BaseModel):
    """Complete landing zone configuration."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    organization: OrganizationConfig
    simulate_only: bool = Field(True, alias="simulateOnly")
    management_groups: ManagementGroupsConfig = Field(alias="managementGroups")
    subscriptions: list[SubscriptionConfig] = Field(default_factory=list)
    policies: PoliciesConfig = Field(default_factory=PoliciesConfig)

    def group_ids(self) -> set[str]:
        """Short ids of every group in the hierarchy."""
        return {g.id for g in self.management_groups.all_groups()}
