"""Main entry point for the Fabric landing zone provisioner.

Runs one provisioning pass configured entirely from the environment
(see Config.from_env) and exits with:
    0  every declaration converged (or would converge in simulation)
    1  configuration error, load error or at least one failed declaration
    2  secretless violation, credentials found in the environment
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from typing import TextIO

from .config import Config, ConfigurationError
from .planner import build_plan
from .reconciler import Reconciler, RunResult
from .remote import AzureRemote
from .security import SecretlessViolationError, get_credential
from .spec_loader import SpecLoadError, load_spec

# LogRecord attributes that are not user-supplied extra fields
_RESERVED_LOG_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_LOG_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(json_output: bool = True, stream: TextIO | None = None) -> None:
    """Configure root logging.

    Args:
        json_output: Emit JSON lines; plain text otherwise.
        stream: Output stream (default: stdout).
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)

    # Reduce noise from Azure SDK
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


async def run_provisioning(config: Config) -> RunResult:
    """Load the configuration file, plan and apply it.

    Args:
        config: Validated runtime configuration.

    Returns:
        RunResult of the run.

    Raises:
        SpecLoadError: If the configuration file cannot be loaded.
        ConfigurationError: If the configuration is internally inconsistent.
        SecretlessViolationError: If credentials are found in the environment.
    """
    spec = load_spec(config.config_file)
    plan = build_plan(spec, simulate_override=config.simulate_only)

    credential = get_credential(
        use_managed_identity=config.use_managed_identity,
        client_id=config.client_id,
    )
    remote = AzureRemote(credential, config.subscription_id)

    reconciler = Reconciler(remote, settle_delay_seconds=config.settle_delay_seconds)
    return await reconciler.apply(plan)


async def main() -> int:
    """Run one provisioning pass.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error("Configuration error", extra={"error": str(e)})
        return 1

    setup_logging(json_output=config.enable_audit_logging)
    logger = logging.getLogger(__name__)

    logger.info(
        "Starting Fabric landing zone provisioner",
        extra={
            "config_file": str(config.config_file),
            "subscription_id": config.subscription_id,
            "simulate_override": config.simulate_only,
        },
    )

    try:
        result = await run_provisioning(config)
    except (SpecLoadError, ConfigurationError) as e:
        # User configuration error
        logger.error(
            "Landing zone configuration rejected",
            extra={"error": str(e), "config_file": str(config.config_file)},
        )
        return 1
    except SecretlessViolationError as e:
        # SECURITY: Credential detected in environment - fatal security error
        logger.critical(
            "Security violation: credentials detected in environment",
            extra={"error": str(e)},
        )
        return 2

    if not result.success:
        logger.error(
            "Provisioning run finished with failures",
            extra={
                "failed": [o.identity for o in result.failures],
                "aborted": result.aborted,
                "duration_seconds": result.duration_seconds,
            },
        )
        return 1

    logger.info(
        "Provisioning run completed",
        extra={
            "declarations": len(result.outcomes),
            "simulate_only": result.simulate_only,
            "duration_seconds": result.duration_seconds,
        },
    )
    return 0


def run() -> None:
    """Entry point for the provisioner."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
