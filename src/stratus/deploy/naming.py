"""Naming conventions for deployed resources.

Every resource name is derived from a *prefix* ``{environment}-{region code}``
so that relocating a deployment to another region yields a fresh, non-colliding
set of names::

    dev-euw                     prefix
    dev-euw-rg-app              resource group
    deveuwstapp                 storage account (alphanumeric, <= 24 chars)
    dev-euw-acs-app             communication (messaging) service
    dev-euw-cosmos-app          document database account
    dev-euw-app-app-api         app service
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

STORAGE_NAME_MAX_LENGTH = 24
STORAGE_NAME_MIN_LENGTH = 3

REGION_CODES: dict[str, str] = {
    "westeurope": "euw",
    "northeurope": "eun",
    "uksouth": "uks",
    "ukwest": "ukw",
    "francecentral": "frc",
    "germanywestcentral": "gwc",
    "swedencentral": "sec",
    "southafricanorth": "san",
    "southafricawest": "saw",
    "eastus": "eus",
    "eastus2": "eus2",
    "westus": "wus",
    "westus2": "wus2",
    "centralus": "cus",
    "eastasia": "ea",
    "southeastasia": "sea",
    "australiaeast": "aue",
}

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def region_code(location: str) -> str:
    """Short code for *location*; unknown regions use their first four alphanumerics."""
    key = location.strip().lower().replace(" ", "")
    if key in REGION_CODES:
        return REGION_CODES[key]
    return _NON_ALNUM.sub("", key)[:4] or "reg"


def resource_prefix(environment: str, location: str) -> str:
    return f"{environment.strip().lower()}-{region_code(location)}"


def resource_group_name(prefix: str, application: str) -> str:
    return f"{prefix}-rg-{application}"


def storage_account_name(prefix: str, application: str) -> str:
    """Globally unique storage name: lowercase alphanumerics only, at most 24 chars."""
    name = _NON_ALNUM.sub("", f"{prefix}st{application}".lower())
    name = name[:STORAGE_NAME_MAX_LENGTH]
    if len(name) < STORAGE_NAME_MIN_LENGTH:
        name = (name + "st0")[:STORAGE_NAME_MIN_LENGTH]
    return name


def messaging_service_name(prefix: str, application: str) -> str:
    return f"{prefix}-acs-{application}"


def database_account_name(prefix: str, application: str) -> str:
    return f"{prefix}-cosmos-{application}"


def app_service_name(prefix: str, application: str) -> str:
    return f"{prefix}-app-{application}-api"


def deployment_name(application: str, environment: str, now: datetime | None = None) -> str:
    """Timestamped provider deployment name, unique per attempt."""
    moment = now or datetime.now(timezone.utc)
    return f"{application}-{environment}-{moment.strftime('%Y%m%d-%H%M%S')}"


def derived_names(environment: str, location: str, application: str) -> dict[str, str]:
    """All names for one environment/region, keyed by role."""
    prefix = resource_prefix(environment, location)
    return {
        "prefix": prefix,
        "resource_group": resource_group_name(prefix, application),
        "storage": storage_account_name(prefix, application),
        "messaging": messaging_service_name(prefix, application),
        "database": database_account_name(prefix, application),
        "app_service": app_service_name(prefix, application),
    }


__all__ = [
    "REGION_CODES",
    "STORAGE_NAME_MAX_LENGTH",
    "app_service_name",
    "database_account_name",
    "deployment_name",
    "derived_names",
    "messaging_service_name",
    "region_code",
    "resource_group_name",
    "resource_prefix",
    "storage_account_name",
]
