"""Turn a landing zone configuration into an ordered plan.

The order is a hard requirement: later declarations assume the
hierarchy created by earlier ones.

    root -> platform -> platform children
         -> landing zones -> landing zone children
         -> subscription placements -> policy assignments
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import MAX_MANAGEMENT_GROUP_ID_LENGTH, ConfigurationError
from .declarations import (
    ApplyContext,
    DesiredResource,
    ManagementGroupDeclaration,
    PolicyAssignmentDeclaration,
    SubscriptionPlacement,
)
from .models import GroupSectionConfig, LandingZoneSpec
from .policies import build_policy_assignments

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Plan:
    """Apply context plus the declarations to converge, in order."""

    context: ApplyContext
    declarations: tuple[DesiredResource, ...]

    def __len__(self) -> int:
        return len(self.declarations)


def _section_groups(
    section: GroupSectionConfig, parent_id: str
) -> list[ManagementGroupDeclaration]:
    groups = [
        ManagementGroupDeclaration(
            id=section.id,
            display_name=section.label,
            parent_id=parent_id,
        )
    ]
    for child in section.children:
        groups.append(
            ManagementGroupDeclaration(
                id=child.id,
                display_name=child.label,
                parent_id=section.id,
            )
        )
    return groups


def build_management_groups(spec: LandingZoneSpec) -> list[ManagementGroupDeclaration]:
    """Declarations for the group hierarchy, parents before children."""
    tree = spec.management_groups
    root = tree.root
    groups = [
        ManagementGroupDeclaration(
            id=root.id,
            display_name=root.label,
            parent_id=root.parent_id,
            parent_is_external=root.parent_id is not None,
        )
    ]
    groups.extend(_section_groups(tree.platform, root.id))
    groups.extend(_section_groups(tree.landing_zones, root.id))
    return groups


def build_subscription_placements(spec: LandingZoneSpec) -> list[SubscriptionPlacement]:
    """Declarations for subscription moves, in configured order.

    Raises:
        ConfigurationError: If a target group is not part of the hierarchy.
    """
    known = spec.group_ids()
    placements = []
    for subscription in spec.subscriptions:
        if subscription.management_group not in known:
            raise ConfigurationError(
                f"Subscription '{subscription.subscription_id or '<empty>'}' targets unknown "
                f"management group '{subscription.management_group}'"
            )
        placements.append(
            SubscriptionPlacement(
                subscription_id=subscription.subscription_id,
                target_group_id=subscription.management_group,
            )
        )
    return placements


def _check_policy_scopes(
    spec: LandingZoneSpec, assignments: list[PolicyAssignmentDeclaration]
) -> None:
    known = spec.group_ids()
    for assignment in assignments:
        if assignment.scope_id not in known:
            raise ConfigurationError(
                f"Policy assignment '{assignment.name}' targets unknown "
                f"management group '{assignment.scope_id}'"
            )


def _check_assignment_names(assignments: list[PolicyAssignmentDeclaration]) -> None:
    # Azure matches assignment names and scopes case-insensitively
    seen: dict[tuple[str, str], PolicyAssignmentDeclaration] = {}
    for assignment in assignments:
        key = (assignment.scope_id.lower(), assignment.assignment_name.lower())
        first = seen.setdefault(key, assignment)
        if first is not assignment:
            raise ConfigurationError(
                f"Policy assignments '{first.name}' and '{assignment.name}' both map to "
                f"assignment name '{assignment.assignment_name}' at management group "
                f"'{assignment.scope_id}'"
            )


def build_plan(spec: LandingZoneSpec, simulate_override: bool | None = None) -> Plan:
    """Build the apply context and ordered declarations for a run.

    Args:
        spec: Validated landing zone configuration.
        simulate_override: Overrides ``simulateOnly`` from the file when set.

    Returns:
        Plan ready to be applied by the Reconciler.

    Raises:
        ConfigurationError: If the configuration references unknown groups,
            declares two policy assignments with the same name at one scope
            or contains identifiers Azure would reject.
    """
    simulate_only = spec.simulate_only if simulate_override is None else simulate_override

    context = ApplyContext(
        simulate_only=simulate_only,
        naming_prefix=spec.organization.prefix,
        default_region=spec.organization.region,
    )

    groups = build_management_groups(spec)
    for group in groups:
        qualified = context.qualify(group.id)
        if len(qualified) > MAX_MANAGEMENT_GROUP_ID_LENGTH:
            raise ConfigurationError(
                f"Management group id '{qualified}' exceeds "
                f"{MAX_MANAGEMENT_GROUP_ID_LENGTH} characters"
            )

    placements = build_subscription_placements(spec)
    assignments = build_policy_assignments(spec)
    _check_policy_scopes(spec, assignments)
    _check_assignment_names(assignments)

    declarations: tuple[DesiredResource, ...] = (*groups, *placements, *assignments)

    logger.info(
        "Built provisioning plan",
        extra={
            "management_groups": len(groups),
            "subscription_placements": len(placements),
            "policy_assignments": len(assignments),
            "simulate_only": simulate_only,
            "naming_prefix": context.naming_prefix,
        },
    )
    return Plan(context=context, declarations=declarations)
