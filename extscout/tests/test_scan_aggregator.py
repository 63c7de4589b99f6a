"""Tests for report aggregation."""

import random

from extscout.services.scan.aggregator import ResultAggregator
from extscout.services.scan.models import (
    DetectionResult,
    ExtensionKind,
    Vulnerability,
    VulnerabilityMatch,
)


def found(slug, kind=ExtensionKind.COMPONENT, version="1.0", present=True):
    return DetectionResult(slug=slug, kind=kind, present=present, version=version)


class TestResultAggregator:
    def test_sorted_by_slug_case_insensitive(self):
        detections = [found("com_zoo"), found("Com_Alpha"), found("com_beta")]
        entries = ResultAggregator().aggregate(detections, {})
        assert [e.detection.slug for e in entries] == ["Com_Alpha", "com_beta", "com_zoo"]

    def test_same_slug_ordered_by_kind(self):
        detections = [
            found("shared", kind=ExtensionKind.TEMPLATE),
            found("shared", kind=ExtensionKind.MODULE),
        ]
        entries = ResultAggregator().aggregate(detections, {})
        assert [e.detection.kind for e in entries] == [
            ExtensionKind.MODULE, ExtensionKind.TEMPLATE,
        ]

    def test_absent_dropped(self):
        entries = ResultAggregator().aggregate(
            [found("com_a"), found("com_b", present=False)], {}
        )
        assert [e.detection.slug for e in entries] == ["com_a"]

    def test_order_independent_of_input_order(self):
        detections = [found(f"com_{i:02d}") for i in range(30)]
        expected = ResultAggregator().aggregate(detections, {})
        shuffled = list(detections)
        random.Random(7).shuffle(shuffled)
        assert ResultAggregator().aggregate(shuffled, {}) == expected

    def test_idempotent(self):
        aggregator = ResultAggregator()
        detections = [found("com_b"), found("com_a")]
        assert aggregator.aggregate(detections, {}) == aggregator.aggregate(detections, {})

    def test_unknown_version_kept_without_matches(self):
        vuln = Vulnerability(title="X", slug="com_k2")
        match = VulnerabilityMatch(vulnerability=vuln, version="1.0")
        entries = ResultAggregator().aggregate(
            [found("com_k2", version=None)], {"com_k2": [match]}
        )
        assert len(entries) == 1
        assert entries[0].matches == ()

    def test_matches_attached(self):
        vuln = Vulnerability(title="X", slug="com_k2")
        match = VulnerabilityMatch(vulnerability=vuln, version="1.0")
        entries = ResultAggregator().aggregate([found("com_k2")], {"com_k2": [match]})
        assert entries[0].matches == (match,)
