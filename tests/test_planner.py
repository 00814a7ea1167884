"""Tests for plan construction."""

from typing import Any

import pytest

from landingzone.config import ConfigurationError
from landingzone.declarations import (
    ManagementGroupDeclaration,
    PolicyAssignmentDeclaration,
    SubscriptionPlacement,
)
from landingzone.models import LandingZoneSpec
from landingzone.planner import build_management_groups, build_plan


class TestBuildPlan:
    """Tests for build_plan."""

    def test_declaration_order(self, spec_data: dict[str, Any]) -> None:
        """Test groups come first, then placements, then policy assignments."""
        plan = build_plan(LandingZoneSpec.model_validate(spec_data))

        kinds = [type(d) for d in plan.declarations]
        first_placement = kinds.index(SubscriptionPlacement)
        first_assignment = kinds.index(PolicyAssignmentDeclaration)

        assert all(k is ManagementGroupDeclaration for k in kinds[:first_placement])
        assert all(k is SubscriptionPlacement for k in kinds[first_placement:first_assignment])
        assert all(k is PolicyAssignmentDeclaration for k in kinds[first_assignment:])
        assert len(plan) == 7 + 2 + 6

    def test_context_from_spec(self, spec_data: dict[str, Any]) -> None:
        plan = build_plan(LandingZoneSpec.model_validate(spec_data))

        assert plan.context.simulate_only is True
        assert plan.context.naming_prefix == "Contoso"
        assert plan.context.default_region == "westeurope"

    @pytest.mark.parametrize("override", [True, False])
    def test_simulate_override(self, spec_data: dict[str, Any], override: bool) -> None:
        spec_data["simulateOnly"] = not override

        plan = build_plan(LandingZoneSpec.model_validate(spec_data), simulate_override=override)

        assert plan.context.simulate_only is override

    def test_unknown_subscription_target(self, spec_data: dict[str, Any]) -> None:
        """Test that placements must target a group of the hierarchy."""
        spec_data["subscriptions"].append(
            {"subscriptionId": "", "managementGroup": "Sandbox"}
        )

        with pytest.raises(ConfigurationError) as exc_info:
            build_plan(LandingZoneSpec.model_validate(spec_data))

        assert "Sandbox" in str(exc_info.value)

    def test_unknown_policy_scope(self, spec_data: dict[str, Any]) -> None:
        spec_data["policies"]["auditTags"]["scope"] = "Sandbox"

        with pytest.raises(ConfigurationError) as exc_info:
            build_plan(LandingZoneSpec.model_validate(spec_data))

        assert "Sandbox" in str(exc_info.value)

    def test_tags_collapsing_to_one_assignment_name(self, spec_data: dict[str, Any]) -> None:
        """Test that two tags truncating to the same assignment name are rejected."""
        spec_data["policies"]["requiredTags"]["tags"] = ["BusinessUnitA", "BusinessUnitB"]

        with pytest.raises(ConfigurationError) as exc_info:
            build_plan(LandingZoneSpec.model_validate(spec_data))

        message = str(exc_info.value)
        assert "Require-Tag-BusinessUnitA" in message
        assert "Require-Tag-BusinessUnitB" in message
        assert "'Require-Tag-BusinessUnit'" in message

    def test_duplicate_assignment_name_case_insensitive(self, spec_data: dict[str, Any]) -> None:
        spec_data["policies"]["auditTags"]["tags"] = ["Owner", "owner"]

        with pytest.raises(ConfigurationError):
            build_plan(LandingZoneSpec.model_validate(spec_data))

    def test_qualified_id_too_long(self, spec_data: dict[str, Any]) -> None:
        """Test that prefix plus id must stay within the Azure limit."""
        spec_data["organization"]["prefix"] = "P" * 20
        spec_data["managementGroups"]["root"]["id"] = "R" * 75

        with pytest.raises(ConfigurationError) as exc_info:
            build_plan(LandingZoneSpec.model_validate(spec_data))

        assert "exceeds 90 characters" in str(exc_info.value)


class TestBuildManagementGroups:
    """Tests for build_management_groups."""

    def test_hierarchy(self, spec_data: dict[str, Any]) -> None:
        groups = build_management_groups(LandingZoneSpec.model_validate(spec_data))

        parents = {g.id: g.parent_id for g in groups}
        assert parents == {
            "ALZ": None,
            "Platform": "ALZ",
            "Management": "Platform",
            "Connectivity": "Platform",
            "LandingZones": "ALZ",
            "Fabric-Prod": "LandingZones",
            "Fabric-NonProd": "LandingZones",
        }

    def test_parents_precede_children(self, spec_data: dict[str, Any]) -> None:
        groups = build_management_groups(LandingZoneSpec.model_validate(spec_data))

        seen: set[str] = set()
        for group in groups:
            if group.parent_id is not None:
                assert group.parent_id in seen
            seen.add(group.id)

    def test_external_root_parent(self, spec_data: dict[str, Any]) -> None:
        spec_data["managementGroups"]["root"]["parentId"] = "Tenant-Corp"

        groups = build_management_groups(LandingZoneSpec.model_validate(spec_data))

        assert groups[0].parent_id == "Tenant-Corp"
        assert groups[0].parent_is_external is True
        assert all(not g.parent_is_external for g in groups[1:])

    def test_display_names(self, spec_data: dict[str, Any]) -> None:
        groups = build_management_groups(LandingZoneSpec.model_validate(spec_data))

        names = {g.id: g.display_name for g in groups}
        assert names["ALZ"] == "Azure Landing Zones"
        assert names["Management"] == "Management"
        assert names["Fabric-Prod"] == "Fabric Production"
