"""Data models for extension scanning."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class ExtensionKind(str, Enum):
    """Kind of installable extension."""
    COMPONENT = "component"
    MODULE = "module"
    TEMPLATE = "template"

    @property
    def order(self) -> int:
        """Position of the kind in declaration order, used for sorting."""
        return list(ExtensionKind).index(self)


class RuleSource(str, Enum):
    """Where a fingerprint rule looks for a version."""
    MANIFEST = "manifest"
    CHANGELOG = "changelog"
    BODY = "body"


class ProbeErrorKind(str, Enum):
    """Why a candidate could not be probed."""
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    DNS = "dns"
    PROTOCOL = "protocol"
    TRANSPORT = "transport"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FingerprintRule:
    """One version extraction rule.

    Manifest and changelog rules name the file they read (``path``, relative
    to the scan target). Body rules run against the primary probe response.
    """
    source: RuleSource
    pattern: str
    path: str | None = None

    @property
    def fetches_file(self) -> bool:
        return self.source in (RuleSource.MANIFEST, RuleSource.CHANGELOG)


@dataclass(frozen=True)
class ExtensionCandidate:
    """An extension the scanner knows how to probe for."""
    slug: str
    kind: ExtensionKind
    probe_paths: tuple[str, ...]
    fingerprint_rules: tuple[FingerprintRule, ...] = ()

    @property
    def key(self) -> tuple[str, str]:
        return (self.kind.value, self.slug)


@dataclass(frozen=True)
class ProbeDocument:
    """A file fetched for a fingerprint rule."""
    url: str
    status: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of probing one candidate."""
    slug: str
    kind: ExtensionKind
    url: str
    status: int | None = None
    body: str = ""
    error: ProbeErrorKind | None = None
    documents: Mapping[str, ProbeDocument] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def key(self) -> tuple[str, str]:
        return (self.kind.value, self.slug)

    @property
    def reachable(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DetectionEvidence:
    """Evidence collected while fingerprinting a present extension."""
    extension_url: str
    manifest_url: str | None = None
    description: str = ""
    author: str = ""
    author_url: str = ""
    version_source: RuleSource | None = None


@dataclass(frozen=True)
class DetectionResult:
    """Presence and version verdict for one candidate."""
    slug: str
    kind: ExtensionKind
    present: bool
    version: str | None = None
    evidence: DetectionEvidence | None = None


@dataclass(frozen=True)
class AffectedRange:
    """Inclusive range of affected versions."""
    introduced: str
    last_affected: str


@dataclass(frozen=True)
class Vulnerability:
    """A known vulnerability in one extension."""
    title: str
    slug: str
    references: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    fixed_in: str | None = None
    affected_versions: tuple[str, ...] = ()
    affected_range: AffectedRange | None = None

    @property
    def has_predicate(self) -> bool:
        return bool(
            self.fixed_in or self.affected_versions or self.affected_range
        )


@dataclass(frozen=True)
class VulnerabilityMatch:
    """A vulnerability that affects a detected version."""
    vulnerability: Vulnerability
    version: str
    low_confidence: bool = False


@dataclass(frozen=True)
class ReportEntry:
    """One detected extension plus the vulnerabilities affecting it."""
    detection: DetectionResult
    matches: tuple[VulnerabilityMatch, ...] = ()


@dataclass(frozen=True)
class TargetFindings:
    """Target level observations made outside extension probing."""
    core_version: str | None = None
    core_vulnerabilities: tuple[VulnerabilityMatch, ...] = ()
    registration_enabled: bool = False
    registration_url: str | None = None
    interesting_headers: tuple[tuple[str, str], ...] = ()
    listings: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScanReport:
    """Outcome of one scan, handed to a rendering sink."""
    target: str
    entries: tuple[ReportEntry, ...] = ()
    probed: int = 0
    unreachable: int = 0
    timed_out: int = 0
    cancelled: bool = False
    target_findings: TargetFindings | None = None

    @property
    def vulnerable_entries(self) -> tuple[ReportEntry, ...]:
        return tuple(e for e in self.entries if e.matches)
