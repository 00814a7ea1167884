"""Azure API Mock for Integration Testing.

This module provides a mock implementation of the Azure control plane APIs
the provisioner talks to, enabling integration testing without Azure
connectivity.

Key Features:
- In-memory management group hierarchy and subscription placement
- Policy assignments keyed by scope and name
- Resource Graph placement queries answered from the same state
- Error injection per operation for failure scenarios
- Credential simulation for managed identity and Azure CLI logins

Usage:
    from azure_mock import MockAzureContext

    with MockAzureContext() as ctx:
        result = await run_provisioning(config)

        # Assert on mock state
        assert ctx.state.get_group("Contoso-Platform") is not None
"""

from .context import MockAzureContext, mock_azure_context
from .credential import MockCredential, create_mock_credential
from .graph import MockResourceGraphClient
from .tenant import (
    TENANT_ROOT_GROUP_ID,
    MockManagementGroup,
    MockManagementGroupsClient,
    MockPolicyAssignment,
    MockPolicyClient,
    MockTenantState,
)

__all__ = [
    "TENANT_ROOT_GROUP_ID",
    "MockAzureContext",
    "MockCredential",
    "MockManagementGroup",
    "MockManagementGroupsClient",
    "MockPolicyAssignment",
    "MockPolicyClient",
    "MockResourceGraphClient",
    "MockTenantState",
    "create_mock_credential",
    "mock_azure_context",
]
