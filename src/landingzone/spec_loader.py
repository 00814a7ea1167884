"""Landing zone configuration loading with validation.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Input validation is performed at the boundary.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .models import LandingZoneSpec

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def _read_yaml(spec_path: Path) -> dict[str, Any]:
    if not spec_path.exists():
        raise SpecLoadError(f"Config file not found: {spec_path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = spec_path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat config file {spec_path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Config file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {spec_path}"
        )

    try:
        content = spec_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read config file {spec_path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {spec_path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Config file must contain a YAML mapping: {spec_path}")

    return raw_data


def load_spec(spec_path: Path) -> LandingZoneSpec:
    """Load and validate a landing zone configuration from YAML.

    Args:
        spec_path: Path to the YAML file.

    Returns:
        Validated spec instance.

    Raises:
        SpecLoadError: If the file cannot be loaded or fails validation.
    """
    raw_data = _read_yaml(spec_path)

    # Support both flat format and Kubernetes-style wrapper
    if "apiVersion" in raw_data and "spec" in raw_data:
        spec_data = raw_data.get("spec", {})
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {spec_path}")
    else:
        spec_data = raw_data

    try:
        spec = LandingZoneSpec.model_validate(spec_data)
    except ValidationError as e:
        # Format Pydantic validation errors for readability
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {spec_path}:\n{error_list}") from e

    logger.info(
        "Loaded landing zone config from %s",
        spec_path,
        extra={"organization_prefix": spec.organization.prefix},
    )
    return spec
