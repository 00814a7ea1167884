"""Remote lookup and mutation against the Azure control plane.

The reconciler only sees the RemoteLookup and RemoteMutator protocols.
AzureRemote implements both with the Azure SDK:
- Management groups and subscription moves: azure-mgmt-managementgroups
- Policy assignments: PolicyClient from azure-mgmt-resource
- Subscription placement lookup: Azure Resource Graph

Not-found responses are reported as absence (None). Every other failure
is raised as LookupFailedError or MutationFailedError.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.mgmt.managementgroups import ManagementGroupsAPI
from azure.mgmt.managementgroups.models import (
    CreateManagementGroupDetails,
    CreateManagementGroupRequest,
    CreateParentGroupInfo,
)
from azure.mgmt.resource import PolicyClient
from azure.mgmt.resource.policy.models import (
    Identity,
    ParameterValuesValue,
    PolicyAssignment,
    ResourceIdentityType,
)

from .declarations import management_group_scope
from .resource_graph import SubscriptionPlacementQuerier

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RemoteError(Exception):
    """Base class for remote call failures."""

    pass


class LookupFailedError(RemoteError):
    """A read failed for a reason other than absence (transport, auth, throttling)."""

    pass


class MutationFailedError(RemoteError):
    """The remote rejected or failed a write."""

    pass


@dataclass(frozen=True)
class RemoteGroup:
    """A management group as it exists in the tenant."""

    id: str
    display_name: str | None = None
    parent_id: str | None = None


@dataclass(frozen=True)
class RemoteAssignment:
    """A policy assignment as it exists in the tenant."""

    name: str
    scope: str
    policy_definition_id: str | None = None


class RemoteLookup(Protocol):
    """Read access to live tenant state."""

    async def find_management_group(self, group_id: str) -> RemoteGroup | None: ...

    async def find_subscription_group(self, subscription_id: str) -> str | None: ...

    async def find_policy_assignment(self, name: str, scope: str) -> RemoteAssignment | None: ...


class RemoteMutator(Protocol):
    """Write access to tenant state."""

    async def create_management_group(
        self, group_id: str, display_name: str, parent_id: str | None
    ) -> None: ...

    async def move_subscription(self, subscription_id: str, group_id: str) -> None: ...

    async def create_policy_assignment(
        self,
        name: str,
        scope: str,
        display_name: str,
        policy_definition_id: str,
        parameters: dict[str, Any],
        description: str,
        enforcement_mode: str,
        identity_location: str | None,
    ) -> None: ...


class Remote(RemoteLookup, RemoteMutator, Protocol):
    """Combined lookup and mutation capability."""


def is_not_found(error: AzureError) -> bool:
    """Check whether an SDK error means the resource does not exist."""
    if isinstance(error, ResourceNotFoundError):
        return True
    return isinstance(error, HttpResponseError) and error.status_code == 404


def describe_error(error: AzureError) -> str:
    """Short human-readable reason for an SDK error."""
    if isinstance(error, HttpResponseError):
        code = error.error.code if error.error else None
        if code:
            return f"HTTP {error.status_code} {code}: {error.message}"
        return f"HTTP {error.status_code}: {error.message}"
    return str(error)


class AzureRemote:
    """Remote implementation backed by the Azure SDK.

    SDK clients are synchronous; every call is dispatched to the default
    executor and awaited, so exactly one call is in flight at a time.
    """

    def __init__(self, credential: TokenCredential, subscription_id: str) -> None:
        """Initialize SDK clients.

        Args:
            credential: Azure credential from security.get_credential().
            subscription_id: API context subscription for the policy client.
                Management group scoped calls do not depend on it.
        """
        self._groups = ManagementGroupsAPI(credential)
        self._policy = PolicyClient(credential, subscription_id)
        self._placements = SubscriptionPlacementQuerier(credential)

    async def _call(self, operation: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, operation)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    async def find_management_group(self, group_id: str) -> RemoteGroup | None:
        try:
            group = await self._call(
                lambda: self._groups.management_groups.get(group_id, cache_control="no-cache")
            )
        except AzureError as e:
            if is_not_found(e):
                return None
            raise LookupFailedError(
                f"Failed to read management group '{group_id}': {describe_error(e)}"
            ) from e

        parent_id = None
        if group.details is not None and group.details.parent is not None:
            parent_id = group.details.parent.name
        return RemoteGroup(id=group.name, display_name=group.display_name, parent_id=parent_id)

    async def find_subscription_group(self, subscription_id: str) -> str | None:
        try:
            return await self._placements.find_parent_group(subscription_id)
        except AzureError as e:
            if is_not_found(e):
                return None
            raise LookupFailedError(
                f"Failed to read placement of subscription '{subscription_id}': "
                f"{describe_error(e)}"
            ) from e

    async def find_policy_assignment(self, name: str, scope: str) -> RemoteAssignment | None:
        try:
            assignment = await self._call(lambda: self._policy.policy_assignments.get(scope, name))
        except AzureError as e:
            if is_not_found(e):
                return None
            raise LookupFailedError(
                f"Failed to read policy assignment '{name}' at {scope}: {describe_error(e)}"
            ) from e

        return RemoteAssignment(
            name=assignment.name,
            scope=assignment.scope or scope,
            policy_definition_id=assignment.policy_definition_id,
        )

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    async def create_management_group(
        self, group_id: str, display_name: str, parent_id: str | None
    ) -> None:
        details = None
        if parent_id is not None:
            details = CreateManagementGroupDetails(
                parent=CreateParentGroupInfo(id=management_group_scope(parent_id))
            )
        request = CreateManagementGroupRequest(
            name=group_id,
            display_name=display_name,
            details=details,
        )

        try:
            poller = await self._call(
                lambda: self._groups.management_groups.begin_create_or_update(
                    group_id, request, cache_control="no-cache"
                )
            )
            # Group creation is a long-running operation; wait for it to finish
            await self._call(poller.result)
        except AzureError as e:
            raise MutationFailedError(
                f"Failed to create management group '{group_id}': {describe_error(e)}"
            ) from e

        logger.info(
            "Created management group",
            extra={"management_group_id": group_id, "parent_id": parent_id},
        )

    async def move_subscription(self, subscription_id: str, group_id: str) -> None:
        try:
            await self._call(
                lambda: self._groups.management_group_subscriptions.create(
                    group_id, subscription_id, cache_control="no-cache"
                )
            )
        except AzureError as e:
            raise MutationFailedError(
                f"Failed to move subscription '{subscription_id}' to '{group_id}': "
                f"{describe_error(e)}"
            ) from e

        logger.info(
            "Moved subscription",
            extra={"subscription_id": subscription_id, "management_group_id": group_id},
        )

    async def create_policy_assignment(
        self,
        name: str,
        scope: str,
        display_name: str,
        policy_definition_id: str,
        parameters: dict[str, Any],
        description: str,
        enforcement_mode: str,
        identity_location: str | None,
    ) -> None:
        assignment = PolicyAssignment(
            display_name=display_name,
            policy_definition_id=policy_definition_id,
            description=description or None,
            enforcement_mode=enforcement_mode,
        )
        if parameters:
            assignment.parameters = {
                key: ParameterValuesValue(value=value) for key, value in parameters.items()
            }
        if identity_location is not None:
            assignment.identity = Identity(type=ResourceIdentityType.SYSTEM_ASSIGNED)
            assignment.location = identity_location

        try:
            await self._call(lambda: self._policy.policy_assignments.create(scope, name, assignment))
        except AzureError as e:
            raise MutationFailedError(
                f"Failed to create policy assignment '{name}' at {scope}: {describe_error(e)}"
            ) from e

        logger.info(
            "Created policy assignment",
            extra={
                "assignment_name": name,
                "scope": scope,
                "policy_definition_id": policy_definition_id,
                "has_identity": identity_location is not None,
            },
        )
