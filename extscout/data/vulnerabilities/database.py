"""Immutable, loaded-once vulnerability database."""

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

from extscout.data.vulnerabilities.loader import load_records
from extscout.services.scan.models import Vulnerability

logger = logging.getLogger(__name__)

# Catalog slug used for vulnerabilities of the CMS core itself
CORE_SLUG = "joomla"


class VulnerabilityDatabase:
    """Vulnerabilities indexed by extension slug.

    The index is built once and exposed read-only, so concurrent lookups need
    no locking. Duplicate slugs accumulate in declaration order.
    """

    def __init__(self, vulnerabilities: Iterable[Vulnerability]):
        index: dict[str, list[Vulnerability]] = {}
        spellings: dict[str, str] = {}
        count = 0
        for vuln in vulnerabilities:
            key = vuln.slug.casefold()
            index.setdefault(key, []).append(vuln)
            spellings.setdefault(key, vuln.slug)
            count += 1
        self._index: Mapping[str, tuple[Vulnerability, ...]] = MappingProxyType(
            {slug: tuple(vulns) for slug, vulns in index.items()}
        )
        self._spellings: Mapping[str, str] = MappingProxyType(spellings)
        self._count = count

    @classmethod
    def load(cls, source: Path | str) -> "VulnerabilityDatabase":
        """Load the database from a catalog file or directory.

        Args:
            source: JSON/YAML file or directory of them

        Returns:
            Loaded database

        Raises:
            CatalogLoadError: If the catalog is missing, corrupt or empty
        """
        records = load_records(source)
        database = cls(record.to_vulnerability() for record in records)
        logger.info(
            f"Vulnerability database loaded: {len(database)} entries "
            f"for {len(database.slugs())} slugs"
        )
        return database

    def lookup(self, slug: str) -> tuple[Vulnerability, ...]:
        """Get the vulnerabilities recorded for a slug (case-insensitive)."""
        return self._index.get(slug.casefold(), ())

    def slugs(self) -> tuple[str, ...]:
        """All slugs with at least one vulnerability, sorted.

        Each slug is spelled as it was first declared in the catalog.
        """
        return tuple(sorted(self._spellings.values(), key=str.casefold))

    def extension_slugs(self) -> tuple[str, ...]:
        """Slugs that name extensions, i.e. everything but the core."""
        return tuple(s for s in self.slugs() if s.casefold() != CORE_SLUG)

    def __len__(self) -> int:
        return self._count

    def __contains__(self, slug: str) -> bool:
        return slug.casefold() in self._index


def load_database(source: Path | str) -> VulnerabilityDatabase:
    """Load a :class:`VulnerabilityDatabase` from ``source``."""
    return VulnerabilityDatabase.load(source)
