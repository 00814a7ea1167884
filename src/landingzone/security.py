"""Credential selection with a secretless rule.

The provisioner authenticates either with a managed identity (pipelines and
hosted runners) or with the operator's Azure CLI login (workstations).
Service principal secrets, certificates and passwords in the environment
are refused outright.

SECURITY INVARIANTS:
1. AZURE_CLIENT_SECRET and friends must never be present in the environment
2. Credentials come from azure-identity, never from files or arguments
"""

from __future__ import annotations

import logging
import os

from azure.core.credentials import TokenCredential
from azure.identity import AzureCliCredential, ManagedIdentityCredential

logger = logging.getLogger(__name__)

# Environment variables that indicate credential leakage
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

SECRETLESS_VIOLATION_MESSAGE = (
    "Detected {env_var} in the environment. Secret, certificate and password "
    "based authentication is not allowed. Remove the variable and sign in with "
    "'az login' or run under a managed identity."
)


class SecretlessViolationError(Exception):
    """Raised when a credential secret is present in the environment.

    Fatal: the provisioner must not contact Azure in this state.
    """

    pass


def enforce_secretless_architecture() -> None:
    """Refuse to run when credential secrets are present in the environment.

    Raises:
        SecretlessViolationError: If any credential environment variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Secretless architecture violation",
                extra={
                    "security_event": "credential_detected",
                    "env_var": env_var,
                    "action": "startup_blocked",
                },
            )
            raise SecretlessViolationError(SECRETLESS_VIOLATION_MESSAGE.format(env_var=env_var))

    logger.info(
        "Secretless architecture verified",
        extra={"security_event": "secretless_verified"},
    )


def get_credential(
    use_managed_identity: bool = False,
    client_id: str | None = None,
) -> TokenCredential:
    """Get an Azure credential after verifying the secretless rule.

    Args:
        use_managed_identity: Use a managed identity instead of the Azure CLI login.
        client_id: Client ID of a user-assigned managed identity. Ignored for
            the Azure CLI login.

    Returns:
        ManagedIdentityCredential or AzureCliCredential.

    Raises:
        SecretlessViolationError: If credential environment variables are detected.
    """
    enforce_secretless_architecture()

    if not use_managed_identity:
        logger.info("Using Azure CLI credential")
        return AzureCliCredential()

    if client_id:
        logger.info(
            "Using user-assigned managed identity",
            extra={"client_id": client_id[:8] + "..." if len(client_id) > 8 else client_id},
        )
        return ManagedIdentityCredential(client_id=client_id)

    logger.info("Using system-assigned managed identity")
    return ManagedIdentityCredential()
