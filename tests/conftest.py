"""Pytest configuration and fixtures."""

import copy
import sys
from pathlib import Path
from typing import Any

import pytest
import yaml

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for azure_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

PROD_SUBSCRIPTION_ID = "11111111-1111-1111-1111-111111111111"

SAMPLE_SPEC: dict[str, Any] = {
    "organization": {
        "prefix": "Contoso",
        "allowedRegions": ["westeurope", "northeurope"],
        "defaultRegion": "westeurope",
    },
    "simulateOnly": True,
    "managementGroups": {
        "root": {"id": "ALZ", "displayName": "Azure Landing Zones"},
        "platform": {
            "id": "Platform",
            "children": [{"id": "Management"}, {"id": "Connectivity"}],
        },
        "landingZones": {
            "id": "LandingZones",
            "displayName": "Landing Zones",
            "children": [
                {"id": "Fabric-Prod", "displayName": "Fabric Production"},
                {"id": "Fabric-NonProd", "displayName": "Fabric Non-Production"},
            ],
        },
    },
    "subscriptions": [
        {"subscriptionId": PROD_SUBSCRIPTION_ID, "managementGroup": "Fabric-Prod"},
        {"subscriptionId": "", "managementGroup": "Fabric-NonProd"},
    ],
    "policies": {
        "allowedLocations": {"enabled": True},
        "requiredTags": {"enabled": True, "tags": ["CostCenter", "Environment"]},
        "auditTags": {"enabled": True, "tags": ["Owner"]},
        "inheritTags": {"enabled": True, "tags": ["CostCenter"]},
        "allowedResourceTypes": {"enabled": False},
    },
}


@pytest.fixture
def spec_data() -> dict[str, Any]:
    """A complete landing zone configuration as parsed YAML."""
    return copy.deepcopy(SAMPLE_SPEC)


@pytest.fixture
def spec_file(tmp_path: Path, spec_data: dict[str, Any]) -> Path:
    """The sample configuration written to a YAML file."""
    path = tmp_path / "landing-zone.yaml"
    path.write_text(yaml.safe_dump(spec_data, sort_keys=False))
    return path
