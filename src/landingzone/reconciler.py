"""Convergence of declared resources against live tenant state.

Every declaration goes through the same steps:
1. Compute the fully-qualified identity (prefix, scope, sanitized name)
2. Look up the live resource; not-found means absent
3. Found: AlreadyExists (no attribute diffing, no update in place)
4. Absent and simulating: WouldCreate, no mutating call
5. Absent: perform the single create/move call -> Created or Failed

Reconciler.apply folds an ordered plan through converge(). A failed
management group aborts the run because every later declaration assumes
the hierarchy exists; failed placements and policy assignments are
reported and the run continues.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from .config import DEFAULT_SETTLE_DELAY_SECONDS
from .declarations import (
    ApplyContext,
    DesiredResource,
    ManagementGroupDeclaration,
    PolicyAssignmentDeclaration,
    SubscriptionPlacement,
    management_group_scope,
)
from .planner import Plan
from .provenance import get_provenance_logger
from .remote import LookupFailedError, MutationFailedError, Remote

logger = logging.getLogger(__name__)


class OutcomeState(str, Enum):
    """Terminal states of a single convergence."""

    ALREADY_EXISTS = "AlreadyExists"
    WOULD_CREATE = "WouldCreate"
    CREATED = "Created"
    FAILED = "Failed"
    SKIPPED = "Skipped"


@dataclass(frozen=True)
class ApplyOutcome:
    """Result of converging one declaration."""

    kind: str
    identity: str
    state: OutcomeState
    message: str
    reason: str | None = None
    simulated: bool = False

    @property
    def failed(self) -> bool:
        return self.state == OutcomeState.FAILED

    @property
    def escalates(self) -> bool:
        """A failed management group makes the rest of the run meaningless."""
        return self.failed and self.kind == ManagementGroupDeclaration.kind


def _outcome(
    desired: DesiredResource,
    identity: str,
    state: OutcomeState,
    message: str,
    context: ApplyContext,
    reason: str | None = None,
) -> ApplyOutcome:
    return ApplyOutcome(
        kind=desired.kind,
        identity=identity,
        state=state,
        message=message,
        reason=reason,
        simulated=context.simulate_only,
    )


async def _converge_group(
    desired: ManagementGroupDeclaration, context: ApplyContext, remote: Remote
) -> ApplyOutcome:
    group_id = context.qualify(desired.id)

    try:
        existing = await remote.find_management_group(group_id)
    except LookupFailedError as e:
        return _outcome(
            desired, group_id, OutcomeState.FAILED, "Lookup failed", context, reason=str(e)
        )

    if existing is not None:
        return _outcome(
            desired, group_id, OutcomeState.ALREADY_EXISTS,
            f"Management group '{group_id}' already exists", context,
        )

    parent_id = desired.parent_id
    if parent_id is not None and not desired.parent_is_external:
        parent_id = context.qualify(parent_id)
    parent_label = parent_id or "tenant root"

    if context.simulate_only:
        return _outcome(
            desired, group_id, OutcomeState.WOULD_CREATE,
            f"Would create management group '{group_id}' under {parent_label}", context,
        )

    try:
        await remote.create_management_group(group_id, desired.display_name, parent_id)
    except MutationFailedError as e:
        return _outcome(
            desired, group_id, OutcomeState.FAILED, "Creation failed", context, reason=str(e)
        )

    return _outcome(
        desired, group_id, OutcomeState.CREATED,
        f"Created management group '{group_id}' under {parent_label}", context,
    )


async def _converge_placement(
    desired: SubscriptionPlacement, context: ApplyContext, remote: Remote
) -> ApplyOutcome:
    if not desired.subscription_id:
        return _outcome(
            desired, "", OutcomeState.SKIPPED,
            f"No subscription configured for '{desired.target_group_id}'", context,
            reason="no subscription id",
        )

    subscription_id = desired.subscription_id
    target_id = context.qualify(desired.target_group_id)

    try:
        current = await remote.find_subscription_group(subscription_id)
    except LookupFailedError as e:
        return _outcome(
            desired, subscription_id, OutcomeState.FAILED, "Lookup failed", context,
            reason=str(e),
        )

    if current is not None and current.lower() == target_id.lower():
        return _outcome(
            desired, subscription_id, OutcomeState.ALREADY_EXISTS,
            f"Subscription already under '{target_id}'", context,
        )

    source = current or "unknown"
    if context.simulate_only:
        return _outcome(
            desired, subscription_id, OutcomeState.WOULD_CREATE,
            f"Would move subscription from '{source}' to '{target_id}'", context,
        )

    try:
        await remote.move_subscription(subscription_id, target_id)
    except MutationFailedError as e:
        return _outcome(
            desired, subscription_id, OutcomeState.FAILED, "Move failed", context,
            reason=str(e),
        )

    return _outcome(
        desired, subscription_id, OutcomeState.CREATED,
        f"Moved subscription from '{source}' to '{target_id}'", context,
    )


async def _converge_assignment(
    desired: PolicyAssignmentDeclaration, context: ApplyContext, remote: Remote
) -> ApplyOutcome:
    name = desired.assignment_name
    scope = management_group_scope(context.qualify(desired.scope_id))
    identity = f"{scope}/providers/Microsoft.Authorization/policyAssignments/{name}"

    try:
        existing = await remote.find_policy_assignment(name, scope)
    except LookupFailedError as e:
        return _outcome(
            desired, identity, OutcomeState.FAILED, "Lookup failed", context, reason=str(e)
        )

    if existing is not None:
        return _outcome(
            desired, identity, OutcomeState.ALREADY_EXISTS,
            f"Policy assignment '{name}' already exists", context,
        )

    if context.simulate_only:
        return _outcome(
            desired, identity, OutcomeState.WOULD_CREATE,
            f"Would assign '{desired.display_name}' as '{name}'", context,
        )

    identity_location = None
    if desired.requires_identity:
        identity_location = desired.location or context.default_region

    try:
        await remote.create_policy_assignment(
            name=name,
            scope=scope,
            display_name=desired.display_name,
            policy_definition_id=desired.policy_definition_id,
            parameters=dict(desired.parameters),
            description=desired.description,
            enforcement_mode=desired.enforcement_mode,
            identity_location=identity_location,
        )
    except MutationFailedError as e:
        return _outcome(
            desired, identity, OutcomeState.FAILED, "Assignment failed", context, reason=str(e)
        )

    return _outcome(
        desired, identity, OutcomeState.CREATED,
        f"Assigned '{desired.display_name}' as '{name}'", context,
    )


async def converge(
    desired: DesiredResource, context: ApplyContext, remote: Remote
) -> ApplyOutcome:
    """Bring one declared resource into existence if it is missing.

    Stateless: all state is read from the remote on every call.

    Args:
        desired: The declaration to converge.
        context: Prefix, simulate flag and default region for the run.
        remote: Lookup and mutation capability.

    Returns:
        The terminal outcome for this declaration.
    """
    match desired:
        case ManagementGroupDeclaration():
            return await _converge_group(desired, context, remote)
        case SubscriptionPlacement():
            return await _converge_placement(desired, context, remote)
        case PolicyAssignmentDeclaration():
            return await _converge_assignment(desired, context, remote)
        case _:
            raise TypeError(f"Unsupported declaration: {type(desired).__name__}")


@dataclass
class RunResult:
    """Result of applying a whole plan."""

    simulate_only: bool
    outcomes: list[ApplyOutcome] = field(default_factory=list)
    aborted: bool = False
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    def count(self, state: OutcomeState) -> int:
        return sum(1 for o in self.outcomes if o.state == state)

    @property
    def failures(self) -> list[ApplyOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def success(self) -> bool:
        """True when nothing failed and the run was not aborted."""
        return not self.aborted and not self.failures


class Reconciler:
    """Applies a plan one declaration at a time.

    The settling delay after creating a management group gives the
    directory time to replicate before children, placements or policy
    assignments reference the new group.
    """

    def __init__(
        self,
        remote: Remote,
        settle_delay_seconds: float = DEFAULT_SETTLE_DELAY_SECONDS,
    ) -> None:
        """Initialize reconciler.

        Args:
            remote: Lookup and mutation capability (AzureRemote in production).
            settle_delay_seconds: Wall-clock wait after each created group.
        """
        self._remote = remote
        self._settle_delay_seconds = settle_delay_seconds

    async def converge(self, desired: DesiredResource, context: ApplyContext) -> ApplyOutcome:
        """Converge a single declaration and log its outcome."""
        outcome = await converge(desired, context, self._remote)
        self._log_outcome(outcome)
        return outcome

    async def apply(self, plan: Plan) -> RunResult:
        """Converge every declaration of the plan in order.

        Args:
            plan: Context and ordered declarations from planner.build_plan().

        Returns:
            RunResult with one outcome per declaration.
        """
        context = plan.context
        result = RunResult(simulate_only=context.simulate_only)

        logger.info(
            "Starting provisioning run",
            extra={
                "declarations": len(plan.declarations),
                "simulate_only": context.simulate_only,
                "naming_prefix": context.naming_prefix,
            },
        )

        abort_reason: str | None = None
        for desired in plan.declarations:
            if abort_reason is not None:
                result.outcomes.append(self._skip_after_abort(desired, context, abort_reason))
                continue

            outcome = await self.converge(desired, context)
            result.outcomes.append(outcome)

            if outcome.escalates:
                abort_reason = f"run aborted: management group {outcome.identity} failed"
                result.aborted = True
                logger.error(
                    "Management group failed, aborting remaining declarations",
                    extra={"management_group_id": outcome.identity, "reason": outcome.reason},
                )
            elif (
                outcome.state == OutcomeState.CREATED
                and outcome.kind == ManagementGroupDeclaration.kind
                and self._settle_delay_seconds > 0
            ):
                logger.info(
                    f"Waiting {self._settle_delay_seconds}s for management group to settle",
                    extra={"management_group_id": outcome.identity},
                )
                await asyncio.sleep(self._settle_delay_seconds)

        result.end_time = datetime.now(UTC)

        if result.count(OutcomeState.ALREADY_EXISTS):
            # Existing resources are never updated to match changed attributes
            logger.info(
                "Existing resources were left unchanged",
                extra={"already_exists": result.count(OutcomeState.ALREADY_EXISTS)},
            )

        get_provenance_logger().log_run(context, result)
        return result

    def _skip_after_abort(
        self, desired: DesiredResource, context: ApplyContext, reason: str
    ) -> ApplyOutcome:
        outcome = _outcome(
            desired, _declared_identity(desired, context), OutcomeState.SKIPPED,
            "Not attempted", context, reason=reason,
        )
        self._log_outcome(outcome)
        return outcome

    def _log_outcome(self, outcome: ApplyOutcome) -> None:
        """Log outcome with structured data for audit."""
        level = logging.INFO
        if outcome.state == OutcomeState.FAILED:
            level = logging.ERROR
        elif outcome.state == OutcomeState.SKIPPED:
            level = logging.WARNING

        logger.log(
            level,
            outcome.message,
            extra={
                "kind": outcome.kind,
                "identity": outcome.identity,
                "state": outcome.state.value,
                "simulated": outcome.simulated,
                "reason": outcome.reason,
            },
        )


def _declared_identity(desired: DesiredResource, context: ApplyContext) -> str:
    """Identity of a declaration without contacting the remote."""
    match desired:
        case ManagementGroupDeclaration():
            return context.qualify(desired.id)
        case SubscriptionPlacement():
            return desired.subscription_id
        case PolicyAssignmentDeclaration():
            scope = management_group_scope(context.qualify(desired.scope_id))
            return f"{scope}/providers/Microsoft.Authorization/policyAssignments/{desired.assignment_name}"
        case _:
            raise TypeError(f"Unsupported declaration: {type(desired).__name__}")
