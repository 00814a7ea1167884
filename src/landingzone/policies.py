"""Built-in policy catalog and policy assignment builders.

Each enabled policy category in the configuration expands into one or more
PolicyAssignmentDeclaration values. Definition ids are the well-known
built-in Azure Policy GUIDs, which are identical across all tenants.
"""

from __future__ import annotations

import logging

from .declarations import PolicyAssignmentDeclaration
from .models import LandingZoneSpec

logger = logging.getLogger(__name__)

BUILTIN_DEFINITION_PREFIX = "/providers/Microsoft.Authorization/policyDefinitions/"

# Well-known built-in policy definition GUIDs
BUILTIN_POLICY_DEFINITIONS: dict[str, str] = {
    "allowed_locations": "e56962a6-4747-49cd-b67b-bf8b01975c4c",
    "allowed_resource_group_locations": "e765b5de-1225-4ba3-bd56-1ac6695af988",
    "require_tag": "871b6d14-10aa-478d-b590-94f262ecfa99",
    "require_resource_group_tag": "96670d01-0a4d-4649-9c89-2d3abc0a5025",
    "inherit_tag_from_resource_group": "ea3f2387-9b95-492a-a190-fcdc54f7b070",
    "allowed_resource_types": "a08ec900-254a-4555-9bf5-e42af04b5c5c",
}

# Built-in definitions have a fixed effect; Audit intent maps to DoNotEnforce
# so that compliance is evaluated without blocking deployments.
EFFECT_TO_ENFORCEMENT_MODE: dict[str, str] = {
    "Audit": "DoNotEnforce",
    "Deny": "Default",
}


def get_definition_id(key: str) -> str:
    """Get the full resource id of a built-in policy definition.

    Raises:
        ValueError: If the key is not in the catalog.
    """
    guid = BUILTIN_POLICY_DEFINITIONS.get(key)
    if guid is None:
        valid_keys = list(BUILTIN_POLICY_DEFINITIONS.keys())
        raise ValueError(f"Unknown policy definition '{key}'. Valid keys: {valid_keys}")
    return f"{BUILTIN_DEFINITION_PREFIX}{guid}"


def build_policy_assignments(spec: LandingZoneSpec) -> list[PolicyAssignmentDeclaration]:
    """Expand enabled policy categories into assignment declarations.

    Categories are emitted in a fixed order: allowed locations, required
    tags, audit tags, inherited tags, allowed resource types.
    """
    root_id = spec.management_groups.root.id
    policies = spec.policies
    regions = list(spec.organization.allowed_regions)
    assignments: list[PolicyAssignmentDeclaration] = []

    locations = policies.allowed_locations
    if locations.enabled:
        scope = locations.scope or root_id
        mode = EFFECT_TO_ENFORCEMENT_MODE[locations.effect]
        assignments.append(
            PolicyAssignmentDeclaration(
                name="Allowed-Locations",
                display_name="Allowed locations",
                policy_definition_id=get_definition_id("allowed_locations"),
                scope_id=scope,
                parameters={"listOfAllowedLocations": regions},
                description=f"Resources may only be deployed to: {', '.join(regions)}",
                enforcement_mode=mode,
            )
        )
        if locations.include_resource_groups:
            assignments.append(
                PolicyAssignmentDeclaration(
                    name="Allowed-RG-Locations",
                    display_name="Allowed locations for resource groups",
                    policy_definition_id=get_definition_id("allowed_resource_group_locations"),
                    scope_id=scope,
                    parameters={"listOfAllowedLocations": regions},
                    description=(
                        f"Resource groups may only be created in: {', '.join(regions)}"
                    ),
                    enforcement_mode=mode,
                )
            )

    required = policies.required_tags
    if required.enabled:
        scope = required.scope or root_id
        mode = EFFECT_TO_ENFORCEMENT_MODE[required.effect]
        for tag in required.tags:
            assignments.append(
                PolicyAssignmentDeclaration(
                    name=f"Require-Tag-{tag}",
                    display_name=f"Require tag '{tag}' on resources",
                    policy_definition_id=get_definition_id("require_tag"),
                    scope_id=scope,
                    parameters={"tagName": tag},
                    description=f"{required.effect}: resources must carry the '{tag}' tag",
                    enforcement_mode=mode,
                )
            )
            if required.include_resource_groups:
                assignments.append(
                    PolicyAssignmentDeclaration(
                        name=f"Require-RG-Tag-{tag}",
                        display_name=f"Require tag '{tag}' on resource groups",
                        policy_definition_id=get_definition_id("require_resource_group_tag"),
                        scope_id=scope,
                        parameters={"tagName": tag},
                        description=(
                            f"{required.effect}: resource groups must carry the '{tag}' tag"
                        ),
                        enforcement_mode=mode,
                    )
                )

    audit = policies.audit_tags
    if audit.enabled:
        scope = audit.scope or root_id
        mode = EFFECT_TO_ENFORCEMENT_MODE[audit.effect]
        for tag in audit.tags:
            assignments.append(
                PolicyAssignmentDeclaration(
                    name=f"Audit-Tag-{tag}",
                    display_name=f"Audit tag '{tag}' on resources",
                    policy_definition_id=get_definition_id("require_tag"),
                    scope_id=scope,
                    parameters={"tagName": tag},
                    description=f"{audit.effect}: report resources missing the '{tag}' tag",
                    enforcement_mode=mode,
                )
            )
            if audit.include_resource_groups:
                assignments.append(
                    PolicyAssignmentDeclaration(
                        name=f"Audit-RG-Tag-{tag}",
                        display_name=f"Audit tag '{tag}' on resource groups",
                        policy_definition_id=get_definition_id("require_resource_group_tag"),
                        scope_id=scope,
                        parameters={"tagName": tag},
                        description=(
                            f"{audit.effect}: report resource groups missing the '{tag}' tag"
                        ),
                        enforcement_mode=mode,
                    )
                )

    inherit = policies.inherit_tags
    if inherit.enabled:
        scope = inherit.scope or root_id
        for tag in inherit.tags:
            assignments.append(
                PolicyAssignmentDeclaration(
                    name=f"Inherit-Tag-{tag}",
                    display_name=f"Inherit tag '{tag}' from the resource group",
                    policy_definition_id=get_definition_id("inherit_tag_from_resource_group"),
                    scope_id=scope,
                    parameters={"tagName": tag},
                    description=f"Copy the '{tag}' tag from the parent resource group if missing",
                    requires_identity=True,
                    location=spec.organization.region,
                )
            )

    resource_types = policies.allowed_resource_types
    if resource_types.enabled:
        assignments.append(
            PolicyAssignmentDeclaration(
                name="Allowed-Resource-Types",
                display_name="Allowed resource types",
                policy_definition_id=get_definition_id("allowed_resource_types"),
                scope_id=resource_types.scope or root_id,
                parameters={"listOfResourceTypesAllowed": list(resource_types.resource_types)},
                description="Only resource types required by the Fabric workload are allowed",
                enforcement_mode=EFFECT_TO_ENFORCEMENT_MODE[resource_types.effect],
            )
        )

    logger.debug("Built policy assignments", extra={"assignment_count": len(assignments)})
    return assignments
