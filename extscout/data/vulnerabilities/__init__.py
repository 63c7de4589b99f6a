"""Vulnerability catalog.

Loads the bundled (or user supplied) catalog of known extension and core
vulnerabilities into an immutable, slug-indexed database.
"""

from extscout.data.vulnerabilities.database import (
    CORE_SLUG,
    VulnerabilityDatabase,
    load_database,
)
from extscout.data.vulnerabilities.loader import CatalogLoadError
from extscout.data.vulnerabilities.models import VulnerabilityRecord

__all__ = [
    "CORE_SLUG",
    "CatalogLoadError",
    "VulnerabilityDatabase",
    "VulnerabilityRecord",
    "load_database",
]
