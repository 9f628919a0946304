from __future__ import annotations

from typing import Dict, Optional

from ..logging import get_logger
from .model import OsCategory

LOG = get_logger(__name__)

LINUX_LABEL = "Linux/UNIX"
WINDOWS_LABEL = "Windows"

# Keys are upper-cased so lookups are case-insensitive.
PRODUCT_DESCRIPTIONS: Dict[str, OsCategory] = {
    "LINUX/UNIX": OsCategory.LINUX,
    "LINUX/UNIX (AMAZON VPC)": OsCategory.LINUX,
    "WINDOWS": OsCategory.WINDOWS,
    "WINDOWS (AMAZON VPC)": OsCategory.WINDOWS,
    "RED HAT ENTERPRISE LINUX": OsCategory.RHEL,
}


def classify(product_description: Optional[str]) -> OsCategory:
    """
    Map a reserved-instance product description to its OS category.
    Unrecognised descriptions fall back to UNKNOWN and are logged at ERROR.
    """
    raw = product_description or ""
    category = PRODUCT_DESCRIPTIONS.get(raw.upper())
    if category is None:
        LOG.error(
            "Unknown product description (%s)",
            raw,
            extra={"step": "classify", "phase": "error", "product_description": raw},
        )
        return OsCategory.UNKNOWN
    return category


def classify_platform(platform: Optional[str]) -> OsCategory:
    """
    Usage-side shortcut: EC2 only sets Platform for Windows instances, so any
    platform hint is read as Windows and everything else as Linux/UNIX.
    """
    return classify(WINDOWS_LABEL if platform else LINUX_LABEL)
