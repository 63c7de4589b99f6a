"""Extension fingerprinting.

Turns one probe outcome into a presence/version verdict:

1. presence: the primary path answered 2xx/3xx and the body is not one of
   the soft-404 pages some hosts serve with a 200;
2. version: fingerprint rules are tried in declaration order (manifest XML,
   changelog, then strings embedded in the primary body) and the first rule
   yielding a plausible version wins. Fetched manifests and changelogs get
   the same soft-404 check as the primary path.
"""

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from extscout.services.scan.models import (
    DetectionEvidence,
    DetectionResult,
    ExtensionCandidate,
    ExtensionKind,
    FingerprintRule,
    ProbeDocument,
    ProbeOutcome,
    RuleSource,
)
from extscout.services.scan.version import is_plausible_version

logger = logging.getLogger(__name__)


# Bodies that mean "not here" even when served with a 2xx status
DEFAULT_NOT_FOUND_SIGNATURES: dict[ExtensionKind, tuple[str, ...]] = {
    ExtensionKind.COMPONENT: (
        r"(?i)404\s*-\s*component not found",
        r"(?i)<title>[^<]*\b404\b[^<]*</title>",
        r"(?i)\bpage not found\b",
    ),
    ExtensionKind.MODULE: (
        r"(?i)<title>[^<]*\b404\b[^<]*</title>",
        r"(?i)\bpage not found\b",
    ),
    ExtensionKind.TEMPLATE: (
        r"(?i)<title>[^<]*\b404\b[^<]*</title>",
        r"(?i)\bpage not found\b",
    ),
}

# Upper bound on how much of a body is searched for patterns
MAX_SCAN_BYTES = 512 * 1024


class MalformedResponseError(ValueError):
    """Raised when a fetched document cannot be parsed."""

    pass


@dataclass(frozen=True)
class ManifestInfo:
    """Fields read from an extension XML manifest."""
    version: str | None = None
    description: str = ""
    author: str = ""
    author_url: str = ""


def _text(root: ET.Element, tag: str) -> str:
    element = root.find(tag)
    if element is None or element.text is None:
        return ""
    return " ".join(element.text.split())


def parse_manifest(body: str) -> ManifestInfo:
    """Parse a Joomla! extension manifest.

    Args:
        body: XML document text

    Returns:
        ManifestInfo with the version (if any) and descriptive fields

    Raises:
        MalformedResponseError: If the body is not XML or not a manifest
    """
    try:
        root = ET.fromstring(body.strip()[:MAX_SCAN_BYTES])
    except ET.ParseError as e:
        raise MalformedResponseError(f"Invalid manifest XML: {e}")

    if root.tag not in ("extension", "install", "mosinstall"):
        raise MalformedResponseError(f"Unexpected manifest root <{root.tag}>")

    return ManifestInfo(
        version=_text(root, "version") or None,
        description=_text(root, "description"),
        author=_text(root, "author"),
        author_url=_text(root, "authorUrl"),
    )


def search_version(pattern: str, text: str) -> str | None:
    """Apply a version pattern, returning the first plausible capture."""
    if not pattern or not text:
        return None
    try:
        regex = re.compile(pattern)
    except re.error as e:
        logger.warning(f"Invalid fingerprint pattern {pattern!r}: {e}")
        return None
    for match in regex.finditer(text[:MAX_SCAN_BYTES]):
        value = match.group(1) if match.groups() else match.group(0)
        value = value.strip()
        if is_plausible_version(value):
            return value
    return None


class FingerprintExtractor:
    """Decides presence and version of a candidate from its probe outcome."""

    def __init__(
        self,
        not_found_signatures: dict[ExtensionKind, tuple[str, ...]] | None = None,
    ):
        """Initialize the extractor.

        Args:
            not_found_signatures: Soft-404 body patterns per kind
                (defaults to DEFAULT_NOT_FOUND_SIGNATURES)
        """
        signatures = not_found_signatures or DEFAULT_NOT_FOUND_SIGNATURES
        self._not_found = {
            kind: tuple(re.compile(p) for p in signatures.get(kind, ()))
            for kind in ExtensionKind
        }

    def is_present(
        self,
        candidate: ExtensionCandidate,
        status: int | None,
        body: str,
    ) -> bool:
        """Check whether a primary response indicates an installed extension."""
        if status is None or not 200 <= status < 400:
            return False
        sample = (body or "")[:MAX_SCAN_BYTES]
        return not any(sig.search(sample) for sig in self._not_found[candidate.kind])

    def is_usable(
        self,
        candidate: ExtensionCandidate,
        document: ProbeDocument | None,
    ) -> bool:
        """Check whether a fetched file is real content, not a soft-404."""
        if document is None or not document.ok:
            return False
        return self.is_present(candidate, document.status, document.body)

    def manifest_version(
        self,
        candidate: ExtensionCandidate,
        rule: FingerprintRule,
        document: ProbeDocument | None,
    ) -> tuple[str | None, ManifestInfo | None, str | None]:
        """Read a manifest document.

        Returns:
            (version, manifest info, document url); all None when the
            document is missing or a soft-404, info None when it is not XML
        """
        if not self.is_usable(candidate, document):
            return None, None, None
        try:
            info = parse_manifest(document.body)
        except MalformedResponseError as e:
            logger.debug(f"{candidate.slug}: {e}; trying raw pattern")
            return search_version(rule.pattern, document.body), None, document.url
        version = info.version if is_plausible_version(info.version) else None
        return version, info, document.url

    def is_manifest(
        self,
        candidate: ExtensionCandidate,
        rule: FingerprintRule,
        document: ProbeDocument | None,
    ) -> bool:
        """Check whether a document is the extension's manifest."""
        version, info, _ = self.manifest_version(candidate, rule, document)
        return info is not None or version is not None

    def extract(
        self,
        candidate: ExtensionCandidate,
        outcome: ProbeOutcome,
    ) -> DetectionResult:
        """Build the detection verdict for one candidate.

        Never raises: unparseable documents only mean that rule yields no
        version.

        Args:
            candidate: Candidate that was probed
            outcome: Outcome of probing it

        Returns:
            DetectionResult, with ``version=None`` when no rule succeeds
        """
        if outcome.error is not None or not self.is_present(
            candidate, outcome.status, outcome.body
        ):
            return DetectionResult(
                slug=candidate.slug,
                kind=candidate.kind,
                present=False,
            )

        version: str | None = None
        version_source: RuleSource | None = None
        manifest_url: str | None = None
        info = ManifestInfo()

        for rule in candidate.fingerprint_rules:
            found, rule_info, url = self._apply_rule(candidate, rule, outcome)
            if rule_info is not None and manifest_url is None:
                info, manifest_url = rule_info, url
            if found:
                version, version_source = found, rule.source
                if rule_info is not None:
                    info = rule_info
                if url is not None:
                    manifest_url = url
                break

        if version is None:
            logger.debug(f"{candidate.slug}: present, version unknown")

        return DetectionResult(
            slug=candidate.slug,
            kind=candidate.kind,
            present=True,
            version=version,
            evidence=DetectionEvidence(
                extension_url=outcome.url,
                manifest_url=manifest_url,
                description=info.description,
                author=info.author,
                author_url=info.author_url,
                version_source=version_source,
            ),
        )

    def _apply_rule(
        self,
        candidate: ExtensionCandidate,
        rule: FingerprintRule,
        outcome: ProbeOutcome,
    ) -> tuple[str | None, ManifestInfo | None, str | None]:
        """Run one rule.

        Returns:
            (version, manifest info, document url); the url is only set for
            manifest rules, the info only when that manifest parsed
        """
        match rule.source:
            case RuleSource.BODY:
                return search_version(rule.pattern, outcome.body), None, None
            case RuleSource.CHANGELOG:
                document = outcome.documents.get(rule.path or "")
                if not self.is_usable(candidate, document):
                    return None, None, None
                return search_version(rule.pattern, document.body), None, None
            case RuleSource.MANIFEST:
                document = outcome.documents.get(rule.path or "")
                return self.manifest_version(candidate, rule, document)
