"""Shared fixtures: a fake Joomla! site served through httpx.MockTransport."""

import json
from typing import Callable

import httpx
import pytest

from extscout.data.vulnerabilities import VulnerabilityDatabase
from extscout.services.scan.models import AffectedRange, Vulnerability

BASE_URL = "http://joomla.test/"

NOT_FOUND_PAGE = "<html><title>404 - Not Found</title><body>Page not found</body></html>"


def manifest(version: str, root: str = "extension", **fields: str) -> str:
    """Render a minimal extension manifest."""
    extra = "".join(f"<{tag}>{value}</{tag}>" for tag, value in fields.items())
    return f'<?xml version="1.0"?><{root} type="component"><version>{version}</version>{extra}</{root}>'


class FakeSite:
    """Routes ``path -> (status, body)`` and records every request made.

    Unrouted paths get ``default``; set it to a 200 page to imitate hosts
    that answer every missing path with a soft-404.
    """

    def __init__(self, routes: dict[str, tuple[int, str]] | None = None):
        self.routes = dict(routes or {})
        self.default: tuple[int, str] = (404, NOT_FOUND_PAGE)
        self.requests: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.headers: dict[str, dict[str, str] | list[tuple[str, str]]] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.raw_path.decode().lstrip("/")
        self.requests.append(path)
        if path in self.failures:
            raise self.failures[path]
        status, body = self.routes.get(path, self.default)
        return httpx.Response(status, text=body, headers=self.headers.get(path))

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def populated_site(count: int) -> FakeSite:
    """Components com_ext00..: every third installed, with a manifest."""
    site = FakeSite()
    for i in range(0, count, 3):
        slug = f"com_ext{i:02d}"
        site.routes[f"components/{slug}/"] = (200, "<html></html>")
        site.routes[f"administrator/components/{slug}/ext{i:02d}.xml"] = (
            200, manifest(f"1.{i}.0"),
        )
    return site


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def make_client() -> Callable[..., httpx.AsyncClient]:
    """Build a client around an arbitrary request handler."""
    def _make(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return _make


@pytest.fixture
def sample_vulnerabilities() -> list[Vulnerability]:
    return [
        Vulnerability(
            title="K2 - Local File Inclusion",
            slug="com_k2",
            fixed_in="2.6.9",
        ),
        Vulnerability(
            title="K2 2.5.x - SQL Injection",
            slug="com_k2",
            affected_range=AffectedRange(introduced="2.5.0", last_affected="2.5.7"),
        ),
        Vulnerability(
            title="Fabrik - Arbitrary File Upload",
            slug="com_fabrik",
            affected_versions=("3.0.8", "3.0.8-rc1"),
        ),
        Vulnerability(
            title="Joomla! Object Injection",
            slug="joomla",
            fixed_in="3.4.6",
        ),
    ]


@pytest.fixture
def database(sample_vulnerabilities) -> VulnerabilityDatabase:
    return VulnerabilityDatabase(sample_vulnerabilities)


@pytest.fixture
def catalog_dir(tmp_path):
    """A catalog directory holding one JSON and one YAML file."""
    (tmp_path / "components.json").write_text(json.dumps({
        "com_k2": [
            {"title": "K2 - Local File Inclusion", "fixed_in": "2.6.9", "edbid": "31337"},
        ],
    }))
    (tmp_path / "modules.yaml").write_text(
        "- title: Jfancy - Cross-Site Scripting\n"
        "  slug: mod_jfancy\n"
        "  fixed_in: 1.5\n"
    )
    return tmp_path


@pytest.fixture
def client():
    """API test client; the bundled catalog is loaded by the app lifespan."""
    from fastapi.testclient import TestClient

    from extscout.main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
