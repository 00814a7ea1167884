"""Tests for desired-state declarations and the apply context."""

import pytest

from landingzone.config import ConfigurationError
from landingzone.declarations import (
    ApplyContext,
    ManagementGroupDeclaration,
    PolicyAssignmentDeclaration,
    SubscriptionPlacement,
    management_group_scope,
    sanitize_assignment_name,
)

DEFINITION_ID = "/providers/Microsoft.Authorization/policyDefinitions/871b6d14-10aa-478d-b590-94f262ecfa99"


class TestSanitizeAssignmentName:
    """Tests for policy assignment name sanitization."""

    def test_long_name_truncated_to_24(self) -> None:
        """Test that long names are cut to exactly 24 characters."""
        name = sanitize_assignment_name("Require-Tag-CostCenter-Environment-LongName")

        assert name == "Require-Tag-CostCenter-E"
        assert len(name) == 24

    def test_disallowed_characters_stripped(self) -> None:
        assert sanitize_assignment_name("Require Tag: Cost_Center!") == "RequireTagCostCenter"

    def test_short_name_unchanged(self) -> None:
        assert sanitize_assignment_name("Allowed-Locations") == "Allowed-Locations"

    def test_idempotent(self) -> None:
        once = sanitize_assignment_name("Require-Tag-CostCenter-Environment-LongName")

        assert sanitize_assignment_name(once) == once


class TestApplyContext:
    """Tests for ApplyContext."""

    def test_qualify_with_prefix(self) -> None:
        context = ApplyContext(simulate_only=True, naming_prefix="Target", default_region="westeurope")

        assert context.qualify("ALZ") == "Target-ALZ"

    def test_qualify_without_prefix(self) -> None:
        context = ApplyContext(simulate_only=True, naming_prefix="", default_region="westeurope")

        assert context.qualify("ALZ") == "ALZ"

    def test_invalid_prefix(self) -> None:
        with pytest.raises(ConfigurationError):
            ApplyContext(simulate_only=True, naming_prefix="Tar get", default_region="westeurope")

    def test_invalid_region(self) -> None:
        with pytest.raises(ConfigurationError):
            ApplyContext(simulate_only=True, naming_prefix="", default_region="West Europe")

    def test_immutable(self) -> None:
        context = ApplyContext(simulate_only=True, naming_prefix="", default_region="westeurope")

        with pytest.raises(AttributeError):
            context.simulate_only = False  # type: ignore[misc]


class TestManagementGroupDeclaration:
    """Tests for ManagementGroupDeclaration."""

    def test_valid(self) -> None:
        group = ManagementGroupDeclaration(id="Platform", display_name="Platform", parent_id="ALZ")

        assert group.kind == "managementGroup"
        assert group.parent_is_external is False

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            ManagementGroupDeclaration(id="", display_name="Platform")

    def test_invalid_characters_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            ManagementGroupDeclaration(id="Platform/Corp", display_name="Platform")

    def test_too_long_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            ManagementGroupDeclaration(id="a" * 91, display_name="Long")

    def test_external_parent_requires_parent_id(self) -> None:
        with pytest.raises(ConfigurationError):
            ManagementGroupDeclaration(id="ALZ", display_name="ALZ", parent_is_external=True)

    def test_display_name_required(self) -> None:
        with pytest.raises(ConfigurationError):
            ManagementGroupDeclaration(id="ALZ", display_name="")


class TestSubscriptionPlacement:
    """Tests for SubscriptionPlacement."""

    def test_empty_subscription_allowed(self) -> None:
        placement = SubscriptionPlacement(subscription_id="", target_group_id="Fabric-Prod")

        assert placement.kind == "subscriptionPlacement"

    def test_invalid_subscription_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            SubscriptionPlacement(subscription_id="prod", target_group_id="Fabric-Prod")


class TestPolicyAssignmentDeclaration:
    """Tests for PolicyAssignmentDeclaration."""

    def test_assignment_name_is_sanitized(self) -> None:
        assignment = PolicyAssignmentDeclaration(
            name="Require-Tag-CostCenter-Environment-LongName",
            display_name="Require tag",
            policy_definition_id=DEFINITION_ID,
            scope_id="ALZ",
        )

        assert assignment.assignment_name == "Require-Tag-CostCenter-E"
        assert assignment.kind == "policyAssignment"
        assert assignment.enforcement_mode == "Default"
        assert assignment.parameters == {}

    def test_name_without_usable_characters(self) -> None:
        with pytest.raises(ConfigurationError):
            PolicyAssignmentDeclaration(
                name="***",
                display_name="Nothing",
                policy_definition_id=DEFINITION_ID,
                scope_id="ALZ",
            )

    def test_definition_id_must_be_resource_id(self) -> None:
        with pytest.raises(ConfigurationError):
            PolicyAssignmentDeclaration(
                name="Require-Tag",
                display_name="Require tag",
                policy_definition_id="871b6d14-10aa-478d-b590-94f262ecfa99",
                scope_id="ALZ",
            )

    def test_invalid_enforcement_mode(self) -> None:
        with pytest.raises(ConfigurationError):
            PolicyAssignmentDeclaration(
                name="Require-Tag",
                display_name="Require tag",
                policy_definition_id=DEFINITION_ID,
                scope_id="ALZ",
                enforcement_mode="Audit",
            )


def test_management_group_scope() -> None:
    assert (
        management_group_scope("Contoso-ALZ")
        == "/providers/Microsoft.Management/managementGroups/Contoso-ALZ"
    )
