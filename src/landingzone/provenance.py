"""Run provenance for audit.

Every provisioning run ends with one structured record that answers:
- "What did the run do, and was it only a simulation?"
- "Which configuration revision and tool version was running?"
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .declarations import ApplyContext
    from .reconciler import RunResult

logger = logging.getLogger(__name__)

# Version is set at build time or falls back to dev
PROVISIONER_VERSION = os.environ.get("PROVISIONER_VERSION", "dev")


@dataclass
class OutcomeSummary:
    """Outcome counts for a run."""

    already_exists_count: int = 0
    would_create_count: int = 0
    created_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0

    @property
    def total(self) -> int:
        return (
            self.already_exists_count
            + self.would_create_count
            + self.created_count
            + self.failed_count
            + self.skipped_count
        )


@dataclass
class RunProvenance:
    """Provenance record for one provisioning run."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    provisioner_version: str = PROVISIONER_VERSION
    git_commit_sha: str = ""
    git_branch: str = ""

    naming_prefix: str = ""
    default_region: str = ""
    simulate_only: bool = True

    aborted: bool = False
    outcomes: OutcomeSummary = field(default_factory=OutcomeSummary)
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result


class ProvenanceLogger:
    """Writes provenance records to the structured log."""

    def __init__(self) -> None:
        self._git_commit_sha = os.environ.get("GIT_COMMIT_SHA", "")
        self._git_branch = os.environ.get("GIT_BRANCH", "")

    def create_provenance(self, context: ApplyContext, result: RunResult) -> RunProvenance:
        """Build the provenance record for a finished run.

        Args:
            context: Apply context the run used.
            result: Outcomes of the run.

        Returns:
            Populated provenance record.
        """
        from .reconciler import OutcomeState

        summary = OutcomeSummary(
            already_exists_count=result.count(OutcomeState.ALREADY_EXISTS),
            would_create_count=result.count(OutcomeState.WOULD_CREATE),
            created_count=result.count(OutcomeState.CREATED),
            failed_count=result.count(OutcomeState.FAILED),
            skipped_count=result.count(OutcomeState.SKIPPED),
        )
        return RunProvenance(
            provisioner_version=PROVISIONER_VERSION,
            git_commit_sha=self._git_commit_sha,
            git_branch=self._git_branch,
            naming_prefix=context.naming_prefix,
            default_region=context.default_region,
            simulate_only=context.simulate_only,
            aborted=result.aborted,
            outcomes=summary,
            duration_seconds=result.duration_seconds,
        )

    def log_provenance(self, provenance: RunProvenance) -> None:
        """Log a completed provenance record.

        Args:
            provenance: Completed provenance record.
        """
        log_level = logging.INFO
        if provenance.aborted or provenance.outcomes.failed_count:
            log_level = logging.ERROR

        logger.log(
            log_level,
            "Provisioning run provenance",
            extra={
                "provenance": provenance.to_dict(),
                # Flatten key fields for easier querying
                "simulate_only": provenance.simulate_only,
                "created_count": provenance.outcomes.created_count,
                "failed_count": provenance.outcomes.failed_count,
                "aborted": provenance.aborted,
                "git_commit": provenance.git_commit_sha,
                "provisioner_version": provenance.provisioner_version,
                "duration_seconds": provenance.duration_seconds,
            },
        )

    def log_run(self, context: ApplyContext, result: RunResult) -> RunProvenance:
        """Create and log the provenance record of a run."""
        provenance = self.create_provenance(context, result)
        self.log_provenance(provenance)
        return provenance


# Global singleton for provenance logging
_provenance_logger: ProvenanceLogger | None = None


def get_provenance_logger() -> ProvenanceLogger:
    """Get the global provenance logger instance."""
    global _provenance_logger
    if _provenance_logger is None:
        _provenance_logger = ProvenanceLogger()
    return _provenance_logger
