"""Tests for API response schemas."""

from extscout.models.schemas import TargetFindingsResponse
from extscout.services.scan.models import TargetFindings


class TestTargetFindingsResponse:
    def test_repeated_headers_kept(self):
        findings = TargetFindings(interesting_headers=(
            ("x-powered-by", "PHP/5.4.45"),
            ("x-powered-by", "PleskLin"),
        ))
        response = TargetFindingsResponse.from_findings(findings)
        assert response.model_dump(mode="json")["interesting_headers"] == [
            ["x-powered-by", "PHP/5.4.45"],
            ["x-powered-by", "PleskLin"],
        ]

    def test_defaults(self):
        response = TargetFindingsResponse.from_findings(TargetFindings())
        assert response.interesting_headers == []
        assert response.core_version is None
