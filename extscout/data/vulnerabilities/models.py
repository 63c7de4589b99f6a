"""Pydantic models for vulnerability catalog records."""

from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from extscout.services.scan.models import AffectedRange, Vulnerability

REFERENCE_KINDS = ("edbid", "cveid", "osvdbid")


class AffectedRangeRecord(BaseModel):
    """Inclusive range of affected versions."""

    model_config = ConfigDict(extra="forbid")

    introduced: str = Field(..., min_length=1, description="First affected version")
    last_affected: str = Field(..., min_length=1, description="Last affected version")

    @field_validator("introduced", "last_affected", mode="before")
    @classmethod
    def stringify_bound(cls, v: Any) -> Any:
        if isinstance(v, (int, float)):
            return str(v)
        return v


class VulnerabilityRecord(BaseModel):
    """A single vulnerability catalog record.

    Reference identifiers may be given either under ``references`` or, as in
    older catalogs, as top-level ``edbid`` / ``cveid`` / ``osvdbid`` keys.
    Each reference is a single identifier or a list of them.
    """

    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, description="Vulnerability title")
    slug: str = Field(
        ...,
        description="Extension folder name, or 'joomla' for the core",
        pattern=r"^[A-Za-z0-9_.\-]+$",
    )
    fixed_in: str | None = Field(None, description="First version without the flaw")
    affected_versions: list[str] = Field(
        default_factory=list,
        description="Explicitly affected versions",
    )
    affected_range: AffectedRangeRecord | None = Field(
        None,
        description="Inclusive affected range",
    )
    references: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Reference identifiers keyed by kind",
    )

    @model_validator(mode="before")
    @classmethod
    def collect_legacy_references(cls, data: Any) -> Any:
        """Move top-level edbid/cveid/osvdbid keys into ``references``."""
        if not isinstance(data, dict):
            return data
        legacy = {k: data[k] for k in REFERENCE_KINDS if k in data}
        if not legacy:
            return data
        data = {k: v for k, v in data.items() if k not in REFERENCE_KINDS}
        references = dict(data.get("references") or {})
        for kind, value in legacy.items():
            if value is not None:
                references.setdefault(kind, value)
        data["references"] = references
        return data

    @field_validator("references", mode="before")
    @classmethod
    def normalize_references(cls, v: Any) -> Any:
        """Accept one identifier or many per reference kind."""
        if not isinstance(v, dict):
            return v
        normalized = {}
        for kind, ids in v.items():
            if ids is None:
                continue
            if isinstance(ids, (str, int)):
                ids = [ids]
            if isinstance(ids, list):
                ids = [str(i) for i in ids]
            normalized[str(kind)] = ids
        return normalized

    @field_validator("fixed_in", mode="before")
    @classmethod
    def stringify_version(cls, v: Any) -> Any:
        """YAML turns ``1.5`` into a float; keep versions as text."""
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("affected_versions", mode="before")
    @classmethod
    def stringify_versions(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [str(i) if isinstance(i, (int, float)) else i for i in v]
        return v

    def to_vulnerability(self) -> Vulnerability:
        """Convert the record into the immutable scan model."""
        affected_range = None
        if self.affected_range:
            affected_range = AffectedRange(
                introduced=self.affected_range.introduced,
                last_affected=self.affected_range.last_affected,
            )
        return Vulnerability(
            title=self.title,
            slug=self.slug,
            references=MappingProxyType(
                {k: tuple(ids) for k, ids in self.references.items()}
            ),
            fixed_in=self.fixed_in,
            affected_versions=tuple(self.affected_versions),
            affected_range=affected_range,
        )


class VulnerabilityCatalogFile(BaseModel):
    """Top-level structure of a catalog file."""

    vulnerabilities: list[VulnerabilityRecord] = Field(default_factory=list)
