"""
Tests for scans router.
"""

import pytest
from fastapi.testclient import TestClient

from extscout.routers.scans import get_scan_client
from extscout.tests.conftest import FakeSite, manifest


@pytest.fixture
def fake_site(client: TestClient) -> FakeSite:
    site = FakeSite({
        "components/com_k2/": (200, ""),
        "administrator/components/com_k2/k2.xml": (200, manifest("2.6.8")),
    })
    client.app.dependency_overrides[get_scan_client] = site.client
    return site


class TestCatalogEndpoints:
    """Tests for the catalog endpoints."""

    def test_list_candidates(self, client: TestClient):
        """Test listing every candidate."""
        response = client.get("/api/catalog")
        assert response.status_code == 200
        data = response.json()
        slugs = [c["slug"] for c in data]
        assert "com_k2" in slugs
        assert {c["kind"] for c in data} == {"component", "module", "template"}

    def test_list_candidates_by_kind(self, client: TestClient):
        """Test filtering candidates by kind."""
        response = client.get("/api/catalog?kind=template")
        assert response.status_code == 200
        assert all(c["kind"] == "template" for c in response.json())

    def test_list_candidates_invalid_kind(self, client: TestClient):
        """Test an unknown kind is rejected."""
        response = client.get("/api/catalog?kind=plugin")
        assert response.status_code == 422

    def test_get_vulnerabilities(self, client: TestClient):
        """Test listing the vulnerabilities of one extension."""
        response = client.get("/api/vulnerabilities/COM_K2")
        assert response.status_code == 200
        data = response.json()
        assert data[0]["slug"] == "com_k2"
        assert data[0]["fixed_in"]

    def test_get_vulnerabilities_not_found(self, client: TestClient):
        """Test an extension without vulnerabilities returns 404."""
        response = client.get("/api/vulnerabilities/com_nothing")
        assert response.status_code == 404

    def test_catalog_unavailable(self, client: TestClient):
        """Test the API refuses to work without a catalog."""
        client.app.state.database = None
        client.app.state.catalog_error = "Vulnerability catalog not found"
        response = client.get("/api/catalog")
        assert response.status_code == 503
        assert "not found" in response.json()["detail"]


class TestScansRouter:
    """Tests for the scan endpoint."""

    def test_create_scan(self, client: TestClient, fake_site: FakeSite):
        """Test a scan finds and matches an installed extension."""
        response = client.post("/api/scans", json={
            "target": "http://joomla.test",
            "threads": 4,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["target"] == "http://joomla.test/"
        assert data["unreachable"] == 0
        assert data["cancelled"] is False
        entry = data["entries"][0]
        assert entry["extension"]["slug"] == "com_k2"
        assert entry["extension"]["version"] == "2.6.8"
        assert entry["vulnerabilities"]
        assert data["target_findings"]["core_version"] is None

    def test_create_scan_kind_filter(self, client: TestClient, fake_site: FakeSite):
        """Test restricting a scan to some kinds."""
        response = client.post("/api/scans", json={
            "target": "joomla.test",
            "kinds": ["module"],
            "inspect_target": False,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["entries"] == []
        assert data["target_findings"] is None
        assert not any(p.startswith("components/") for p in fake_site.requests)

    def test_create_scan_invalid_threads(self, client: TestClient):
        """Test thread count is validated."""
        response = client.post("/api/scans", json={"target": "joomla.test", "threads": 0})
        assert response.status_code == 422

    def test_create_scan_without_catalog(self, client: TestClient):
        """Test scanning is refused when the catalog failed to load."""
        client.app.state.database = None
        response = client.post("/api/scans", json={"target": "joomla.test"})
        assert response.status_code == 503
