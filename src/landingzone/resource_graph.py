"""Azure Resource Graph queries for subscription placement.

Resource Graph exposes the management group ancestry of every subscription
in the resourcecontainers table, which answers "which group is this
subscription under?" in a single query instead of walking the hierarchy.

The first entry of managementGroupAncestorsChain is the direct parent.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError
from azure.mgmt.resourcegraph import ResourceGraphClient
from azure.mgmt.resourcegraph.models import (
    QueryRequest,
    QueryRequestOptions,
    ResultFormat,
)

from .config import is_valid_subscription_id

logger = logging.getLogger(__name__)

MAX_GRAPH_QUERY_RESULTS = 100


class SubscriptionPlacementQuerier:
    """Looks up the parent management group of a subscription."""

    def __init__(self, credential: TokenCredential) -> None:
        self._client = ResourceGraphClient(credential=credential)

    async def find_parent_group(self, subscription_id: str) -> str | None:
        """Get the id of the management group directly above a subscription.

        Args:
            subscription_id: Subscription GUID.

        Returns:
            The parent group id, or None if the subscription is not visible.

        Raises:
            ValueError: If subscription_id is not a GUID.
            AzureError: If the query fails.
        """
        # SECURITY: the id is interpolated into KQL, validate it first
        if not is_valid_subscription_id(subscription_id):
            raise ValueError(f"Invalid subscription_id format: {subscription_id}")

        query = f"""
        resourcecontainers
        | where type =~ 'microsoft.resources/subscriptions'
        | where subscriptionId =~ '{subscription_id}'
        | extend parentGroup = tostring(properties.managementGroupAncestorsChain[0].name)
        | project subscriptionId, parentGroup
        | limit 1
        """

        rows = await self._execute_query(query.strip(), [subscription_id])
        if not rows:
            return None

        parent = rows[0].get("parentGroup")
        return parent or None

    async def _execute_query(
        self, query: str, subscriptions: list[str]
    ) -> list[dict[str, Any]]:
        """Execute a Resource Graph query.

        Args:
            query: KQL query string.
            subscriptions: Subscriptions the query is scoped to.

        Returns:
            List of result rows as dictionaries.
        """
        request = QueryRequest(
            subscriptions=subscriptions,
            query=query,
            options=QueryRequestOptions(
                result_format=ResultFormat.OBJECT_ARRAY,
                top=MAX_GRAPH_QUERY_RESULTS,
            ),
        )

        try:
            # Resource Graph client is synchronous, wrap in executor
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(None, lambda: self._client.resources(request))
        except AzureError as e:
            logger.error(
                "Resource Graph query failed",
                extra={"error": str(e), "subscriptions": subscriptions},
            )
            raise

        if response.data is None:
            return []

        # response.data is a list of dictionaries when using OBJECT_ARRAY format
        if isinstance(response.data, list):
            return response.data

        return []
