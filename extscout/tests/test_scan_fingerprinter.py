"""Tests for fingerprint extraction."""

from types import MappingProxyType

import pytest

from extscout.services.scan.catalog import build_candidate
from extscout.services.scan.fingerprinter import (
    FingerprintExtractor,
    MalformedResponseError,
    parse_manifest,
    search_version,
)
from extscout.services.scan.models import (
    ExtensionKind,
    ProbeDocument,
    ProbeErrorKind,
    ProbeOutcome,
    RuleSource,
)
from extscout.tests.conftest import NOT_FOUND_PAGE, manifest

K2_MANIFEST = "administrator/components/com_k2/k2.xml"
K2_CHANGELOG = "administrator/components/com_k2/changelog.txt"


def outcome_for(candidate, status=200, body="", documents=None, error=None):
    return ProbeOutcome(
        slug=candidate.slug,
        kind=candidate.kind,
        url=f"http://joomla.test/{candidate.probe_paths[0]}",
        status=status,
        body=body,
        error=error,
        documents=MappingProxyType({
            path: ProbeDocument(url=f"http://joomla.test/{path}", status=code, body=text)
            for path, (code, text) in (documents or {}).items()
        }),
    )


class TestParseManifest:
    def test_fields(self):
        info = parse_manifest(manifest(
            "2.6.8", description="K2 content", author="JoomlaWorks",
            authorUrl="https://getk2.org",
        ))
        assert info.version == "2.6.8"
        assert info.author == "JoomlaWorks"
        assert info.author_url == "https://getk2.org"

    def test_legacy_root(self):
        assert parse_manifest(manifest("1.0", root="mosinstall")).version == "1.0"

    def test_not_xml(self):
        with pytest.raises(MalformedResponseError):
            parse_manifest("<html><body>")

    def test_wrong_root(self):
        with pytest.raises(MalformedResponseError):
            parse_manifest("<rss><version>2.0</version></rss>")


class TestSearchVersion:
    def test_first_plausible_capture(self):
        assert search_version(r"version (\S+)", "version n/a version 1.2.3") == "1.2.3"

    def test_invalid_pattern(self):
        assert search_version(r"(", "1.0") is None


class TestFingerprintExtractor:
    @pytest.fixture
    def extractor(self):
        return FingerprintExtractor()

    @pytest.fixture
    def k2(self):
        return build_candidate("com_k2", ExtensionKind.COMPONENT)

    def test_absent_on_404(self, extractor, k2):
        result = extractor.extract(k2, outcome_for(k2, status=404))
        assert result.present is False

    def test_soft_404_is_absent(self, extractor, k2):
        result = extractor.extract(k2, outcome_for(k2, status=200, body=NOT_FOUND_PAGE))
        assert result.present is False

    def test_transport_error_is_absent(self, extractor, k2):
        outcome = outcome_for(k2, status=None, error=ProbeErrorKind.TIMEOUT)
        assert extractor.extract(k2, outcome).present is False

    def test_redirect_counts_as_present(self, extractor, k2):
        assert extractor.is_present(k2, 301, "")

    def test_manifest_version(self, extractor, k2):
        result = extractor.extract(k2, outcome_for(
            k2,
            documents={K2_MANIFEST: (200, manifest("2.6.8", author="JoomlaWorks"))},
        ))
        assert result.present
        assert result.version == "2.6.8"
        assert result.evidence.version_source is RuleSource.MANIFEST
        assert result.evidence.manifest_url.endswith(K2_MANIFEST)
        assert result.evidence.author == "JoomlaWorks"

    def test_manifest_beats_changelog_and_body(self, extractor, k2):
        result = extractor.extract(k2, outcome_for(
            k2,
            body='<script src="k2.js?v=1&ver=9.9.9"></script>',
            documents={
                K2_MANIFEST: (200, manifest("2.6.8")),
                K2_CHANGELOG: (200, "Version 2.7.0\n"),
            },
        ))
        assert result.version == "2.6.8"

    def test_changelog_fallback(self, extractor, k2):
        result = extractor.extract(k2, outcome_for(
            k2, documents={K2_CHANGELOG: (200, "Changelog\n\nVersion 2.7.1 - fixes\n")},
        ))
        assert result.version == "2.7.1"
        assert result.evidence.version_source is RuleSource.CHANGELOG

    def test_body_fallback(self, extractor, k2):
        result = extractor.extract(k2, outcome_for(
            k2, body='<script src="/media/k2/k2.js?ver=2.6.5"></script>',
        ))
        assert result.version == "2.6.5"
        assert result.evidence.version_source is RuleSource.BODY

    def test_malformed_manifest_uses_raw_pattern(self, extractor, k2):
        result = extractor.extract(k2, outcome_for(
            k2, documents={K2_MANIFEST: (200, "<extension><version>2.6.1</version>")},
        ))
        assert result.version == "2.6.1"
        assert result.evidence.version_source is RuleSource.MANIFEST
        assert result.evidence.manifest_url.endswith(K2_MANIFEST)

    def test_soft_404_documents_yield_no_version(self, extractor, k2):
        result = extractor.extract(k2, outcome_for(
            k2,
            documents={
                K2_MANIFEST: (200, NOT_FOUND_PAGE + "<version>9.9.9</version>"),
                K2_CHANGELOG: (200, NOT_FOUND_PAGE + "\nVersion 9.9.9\n"),
            },
        ))
        assert result.present
        assert result.version is None
        assert result.evidence.manifest_url is None

    def test_is_manifest(self, extractor, k2):
        rule = k2.fingerprint_rules[0]
        page = ProbeDocument(url="http://joomla.test/x.xml", status=200, body=NOT_FOUND_PAGE)
        real = ProbeDocument(url="http://joomla.test/x.xml", status=200, body=manifest("2.6.8"))
        assert not extractor.is_manifest(k2, rule, page)
        assert not extractor.is_manifest(k2, rule, None)
        assert extractor.is_manifest(k2, rule, real)

    def test_manifest_without_version_keeps_metadata(self, extractor, k2):
        result = extractor.extract(k2, outcome_for(
            k2, documents={K2_MANIFEST: (200, "<extension><author>JoomlaWorks</author></extension>")},
        ))
        assert result.present
        assert result.version is None
        assert result.evidence.author == "JoomlaWorks"

    def test_present_without_version(self, extractor, k2):
        result = extractor.extract(k2, outcome_for(k2, body="<html></html>"))
        assert result.present
        assert result.version is None

    def test_custom_signatures(self, k2):
        extractor = FingerprintExtractor({ExtensionKind.COMPONENT: (r"Nothing to see",)})
        assert not extractor.is_present(k2, 200, "Nothing to see here")
        assert extractor.is_present(k2, 200, NOT_FOUND_PAGE)
