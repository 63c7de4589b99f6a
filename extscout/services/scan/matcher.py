"""Matching detected versions against the vulnerability database."""

import logging
from typing import Protocol

from extscout.services.scan.models import (
    DetectionResult,
    Vulnerability,
    VulnerabilityMatch,
)
from extscout.services.scan.version import VersionComparator, VersionComparison

logger = logging.getLogger(__name__)


class VulnerabilityLookup(Protocol):
    """Anything that returns the vulnerabilities recorded for a slug."""

    def lookup(self, slug: str) -> tuple[Vulnerability, ...]: ...


class VulnerabilityMatcher:
    """Decides which catalog vulnerabilities affect a detected version.

    A vulnerability affects ``version`` when any of its declared predicates
    holds:

    - ``version`` equals one of ``affected_versions``;
    - ``version`` is strictly lower than ``fixed_in``;
    - ``introduced <= version <= last_affected``.

    A vulnerability declaring none of these has no known fix and affects
    every version.
    """

    def __init__(self, comparator: VersionComparator | None = None):
        self.comparator = comparator or VersionComparator()

    def match(
        self,
        detection: DetectionResult,
        database: VulnerabilityLookup,
    ) -> tuple[VulnerabilityMatch, ...]:
        """Get the vulnerabilities affecting a detection.

        Args:
            detection: Detected extension
            database: Vulnerability database to consult (read only)

        Returns:
            Matches in catalog declaration order; empty for unknown versions
        """
        if not detection.present or detection.version is None:
            return ()
        return self.match_version(detection.slug, detection.version, database)

    def match_version(
        self,
        slug: str,
        version: str,
        database: VulnerabilityLookup,
    ) -> tuple[VulnerabilityMatch, ...]:
        """Match a bare slug/version pair (used for the CMS core too)."""
        matches = []
        for vuln in database.lookup(slug):
            affected, low_confidence = self.is_affected(version, vuln)
            if affected:
                matches.append(VulnerabilityMatch(
                    vulnerability=vuln,
                    version=version,
                    low_confidence=low_confidence,
                ))
        if matches:
            logger.debug(f"{slug} {version}: {len(matches)} vulnerabilities")
        return tuple(matches)

    def is_affected(self, version: str, vuln: Vulnerability) -> tuple[bool, bool]:
        """Evaluate a vulnerability's affected-version predicate.

        Returns:
            (affected, low_confidence); low_confidence is set when a
            comparison behind the decision fell back to lexical ordering
        """
        if not vuln.has_predicate:
            return True, False

        low_confidence = False

        for listed in vuln.affected_versions:
            if listed.strip() == version.strip():
                return True, False
            result = self.comparator(version, listed)
            if result.equal:
                return True, result.low_confidence
            low_confidence |= result.low_confidence

        if vuln.fixed_in:
            result = self.comparator(version, vuln.fixed_in)
            if result.less:
                return True, result.low_confidence
            low_confidence |= result.low_confidence

        if vuln.affected_range:
            lower = self.comparator(version, vuln.affected_range.introduced)
            upper = self.comparator(version, vuln.affected_range.last_affected)
            if not lower.less and not upper.greater:
                return True, _any_low(lower, upper)
            low_confidence |= _any_low(lower, upper)

        return False, low_confidence


def _any_low(*results: VersionComparison) -> bool:
    return any(r.low_confidence for r in results)
