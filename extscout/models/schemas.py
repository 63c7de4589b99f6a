"""Pydantic schemas for API request/response validation."""

from pydantic import BaseModel, Field

from extscout.services.scan.models import (
    DetectionResult,
    ExtensionCandidate,
    ExtensionKind,
    ReportEntry,
    ScanReport,
    TargetFindings,
    Vulnerability,
    VulnerabilityMatch,
)


# ============================================================================
# Catalog Schemas
# ============================================================================


class FingerprintRuleResponse(BaseModel):
    """Schema for one fingerprint rule."""

    source: str
    pattern: str
    path: str | None = None


class CandidateResponse(BaseModel):
    """Schema for an extension candidate."""

    slug: str
    kind: ExtensionKind
    probe_paths: list[str]
    fingerprint_rules: list[FingerprintRuleResponse] = []

    @classmethod
    def from_candidate(cls, candidate: ExtensionCandidate) -> "CandidateResponse":
        return cls(
            slug=candidate.slug,
            kind=candidate.kind,
            probe_paths=list(candidate.probe_paths),
            fingerprint_rules=[
                FingerprintRuleResponse(
                    source=rule.source.value,
                    pattern=rule.pattern,
                    path=rule.path,
                )
                for rule in candidate.fingerprint_rules
            ],
        )


class VulnerabilityResponse(BaseModel):
    """Schema for a catalog vulnerability."""

    title: str
    slug: str
    references: dict[str, list[str]] = {}
    fixed_in: str | None = None
    affected_versions: list[str] = []
    affected_range: dict[str, str] | None = None

    @classmethod
    def from_vulnerability(cls, vuln: Vulnerability) -> "VulnerabilityResponse":
        affected_range = None
        if vuln.affected_range:
            affected_range = {
                "introduced": vuln.affected_range.introduced,
                "last_affected": vuln.affected_range.last_affected,
            }
        return cls(
            title=vuln.title,
            slug=vuln.slug,
            references={k: list(v) for k, v in vuln.references.items()},
            fixed_in=vuln.fixed_in,
            affected_versions=list(vuln.affected_versions),
            affected_range=affected_range,
        )


# ============================================================================
# Scan Schemas
# ============================================================================


class ScanRequest(BaseModel):
    """Schema for starting a scan."""

    target: str = Field(..., min_length=1, description="Base URL of the site")
    kinds: list[ExtensionKind] | None = Field(
        None,
        description="Extension kinds to probe (all when omitted)",
    )
    threads: int | None = Field(None, ge=1, le=200)
    timeout: float | None = Field(None, gt=0, le=300)
    inspect_target: bool = True


class MatchResponse(BaseModel):
    """Schema for a vulnerability affecting a detected version."""

    vulnerability: VulnerabilityResponse
    version: str
    low_confidence: bool = False

    @classmethod
    def from_match(cls, match: VulnerabilityMatch) -> "MatchResponse":
        return cls(
            vulnerability=VulnerabilityResponse.from_vulnerability(match.vulnerability),
            version=match.version,
            low_confidence=match.low_confidence,
        )


class DetectionResponse(BaseModel):
    """Schema for a detected extension."""

    slug: str
    kind: ExtensionKind
    version: str | None = None
    extension_url: str | None = None
    manifest_url: str | None = None
    description: str = ""
    author: str = ""
    author_url: str = ""
    version_source: str | None = None

    @classmethod
    def from_detection(cls, detection: DetectionResult) -> "DetectionResponse":
        evidence = detection.evidence
        return cls(
            slug=detection.slug,
            kind=detection.kind,
            version=detection.version,
            extension_url=evidence.extension_url if evidence else None,
            manifest_url=evidence.manifest_url if evidence else None,
            description=evidence.description if evidence else "",
            author=evidence.author if evidence else "",
            author_url=evidence.author_url if evidence else "",
            version_source=(
                evidence.version_source.value
                if evidence and evidence.version_source
                else None
            ),
        )


class ReportEntryResponse(BaseModel):
    """Schema for one report entry."""

    extension: DetectionResponse
    vulnerabilities: list[MatchResponse] = []

    @classmethod
    def from_entry(cls, entry: ReportEntry) -> "ReportEntryResponse":
        return cls(
            extension=DetectionResponse.from_detection(entry.detection),
            vulnerabilities=[MatchResponse.from_match(m) for m in entry.matches],
        )


class TargetFindingsResponse(BaseModel):
    """Schema for target level findings."""

    core_version: str | None = None
    core_vulnerabilities: list[MatchResponse] = []
    registration_enabled: bool = False
    registration_url: str | None = None
    interesting_headers: list[tuple[str, str]] = []
    listings: list[str] = []

    @classmethod
    def from_findings(cls, findings: TargetFindings) -> "TargetFindingsResponse":
        return cls(
            core_version=findings.core_version,
            core_vulnerabilities=[
                MatchResponse.from_match(m) for m in findings.core_vulnerabilities
            ],
            registration_enabled=findings.registration_enabled,
            registration_url=findings.registration_url,
            interesting_headers=list(findings.interesting_headers),
            listings=list(findings.listings),
        )


class ScanReportResponse(BaseModel):
    """Schema for a finished scan."""

    target: str
    entries: list[ReportEntryResponse] = []
    probed: int = 0
    unreachable: int = 0
    timed_out: int = 0
    cancelled: bool = False
    target_findings: TargetFindingsResponse | None = None

    @classmethod
    def from_report(cls, report: ScanReport) -> "ScanReportResponse":
        return cls(
            target=report.target,
            entries=[ReportEntryResponse.from_entry(e) for e in report.entries],
            probed=report.probed,
            unreachable=report.unreachable,
            timed_out=report.timed_out,
            cancelled=report.cancelled,
            target_findings=(
                TargetFindingsResponse.from_findings(report.target_findings)
                if report.target_findings
                else None
            ),
        )
