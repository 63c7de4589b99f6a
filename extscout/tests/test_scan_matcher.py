"""Tests for vulnerability matching."""

import pytest

from extscout.data.vulnerabilities import VulnerabilityDatabase
from extscout.services.scan.matcher import VulnerabilityMatcher
from extscout.services.scan.models import (
    AffectedRange,
    DetectionResult,
    ExtensionKind,
    Vulnerability,
)


def detection(slug, version, present=True):
    return DetectionResult(
        slug=slug, kind=ExtensionKind.COMPONENT, present=present, version=version
    )


class TestVulnerabilityMatcher:
    @pytest.fixture
    def matcher(self):
        return VulnerabilityMatcher()

    @pytest.mark.parametrize("version,affected", [
        ("3.4.4", True),
        ("3.4.5", False),
        ("3.4.6", False),
        ("3.4", True),
        ("3.4.5-rc1", True),
    ])
    def test_fixed_in(self, matcher, version, affected):
        vuln = Vulnerability(title="X", slug="com_x", fixed_in="3.4.5")
        assert matcher.is_affected(version, vuln) == (affected, False)

    def test_affected_versions_exact(self, matcher):
        vuln = Vulnerability(title="X", slug="com_x", affected_versions=("2.5", "3.2"))
        assert matcher.is_affected("3.2", vuln)[0]
        assert matcher.is_affected("3.2.0", vuln)[0]
        assert not matcher.is_affected("3.3", vuln)[0]

    def test_affected_versions_unparseable_exact_match(self, matcher):
        vuln = Vulnerability(title="X", slug="com_x", affected_versions=("beta-3",))
        assert matcher.is_affected("beta-3", vuln) == (True, False)

    @pytest.mark.parametrize("version,affected", [
        ("1.0.0", True),
        ("1.1.5", True),
        ("1.2.0", True),
        ("1.2.1", False),
        ("0.9", False),
    ])
    def test_inclusive_range(self, matcher, version, affected):
        vuln = Vulnerability(
            title="X", slug="com_x",
            affected_range=AffectedRange(introduced="1.0.0", last_affected="1.2.0"),
        )
        assert matcher.is_affected(version, vuln)[0] is affected

    def test_no_predicate_affects_everything(self, matcher):
        vuln = Vulnerability(title="X", slug="com_x")
        assert matcher.is_affected("99.0", vuln) == (True, False)

    def test_low_confidence_propagates(self, matcher):
        vuln = Vulnerability(title="X", slug="com_x", fixed_in="3.4.5")
        assert matcher.is_affected("dev-trunk", vuln) == (False, True)

    def test_unknown_version_yields_nothing(self, matcher, database):
        assert matcher.match(detection("com_k2", None), database) == ()

    def test_absent_yields_nothing(self, matcher, database):
        assert matcher.match(detection("com_k2", "2.5.1", present=False), database) == ()

    def test_unknown_slug(self, matcher, database):
        assert matcher.match(detection("com_unknown", "1.0"), database) == ()

    def test_matches_keep_catalog_order(self, matcher, database):
        matches = matcher.match(detection("com_k2", "2.5.1"), database)
        assert [m.vulnerability.title for m in matches] == [
            "K2 - Local File Inclusion",
            "K2 2.5.x - SQL Injection",
        ]
        assert all(m.version == "2.5.1" for m in matches)

    def test_match_is_independent_of_other_entries(self, matcher):
        noisy = VulnerabilityDatabase([
            Vulnerability(title="Other", slug="com_other"),
            Vulnerability(title="K2", slug="com_k2", fixed_in="2.6.9"),
        ])
        quiet = VulnerabilityDatabase([
            Vulnerability(title="K2", slug="com_k2", fixed_in="2.6.9"),
        ])
        found = detection("com_k2", "2.6.8")
        assert matcher.match(found, noisy) == matcher.match(found, quiet)

    def test_core_match(self, matcher, database):
        matches = matcher.match_version("joomla", "3.4.5", database)
        assert [m.vulnerability.title for m in matches] == ["Joomla! Object Injection"]

