"""Target level checks run before extension probing.

- where the site root redirects to;
- CMS core version, from ``README.txt`` or the core files manifest;
- whether user registration is open;
- response headers worth reporting;
- directory listings on the extension folders.

Transport errors here never abort a scan; they only mean "not observed".
"""

import logging
import re
from urllib.parse import urljoin, urlsplit

import httpx

from extscout.data.vulnerabilities.database import CORE_SLUG
from extscout.services.scan.fingerprinter import (
    MalformedResponseError,
    parse_manifest,
    search_version,
)
from extscout.services.scan.matcher import VulnerabilityLookup, VulnerabilityMatcher
from extscout.services.scan.models import TargetFindings
from extscout.services.scan.transport import join_url, normalize_target

logger = logging.getLogger(__name__)

README_PATH = "README.txt"
CORE_MANIFEST_PATH = "administrator/manifests/files/joomla.xml"

README_VERSION_PATTERNS = (
    r"(?i)package to version\s+(\d+(?:\.\d+)+)",
    r"(?i)joomla!?\s+(\d+\.\d+(?:\.\d+)?)\s+version history",
)

REGISTRATION_PATHS = (
    "index.php?option=com_users&view=registration",
    "index.php?option=com_user&view=register",
)
REGISTRATION_FORM_RE = re.compile(
    r'id="member-registration"|name="jform\[email1\]"|id="josForm"', re.I
)

LISTING_PATHS = (
    "administrator/components/",
    "components/",
    "administrator/modules/",
    "modules/",
)
LISTING_RE = re.compile(r"<title>\s*Index of\b", re.I)

# Headers every site sends; anything else is worth showing
BORING_HEADERS = frozenset({
    "accept-ranges",
    "age",
    "cache-control",
    "connection",
    "content-encoding",
    "content-language",
    "content-length",
    "content-type",
    "date",
    "etag",
    "expires",
    "keep-alive",
    "last-modified",
    "location",
    "pragma",
    "set-cookie",
    "transfer-encoding",
    "vary",
})


class TargetInspector:
    """Runs the target level checks over a shared client."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float,
        matcher: VulnerabilityMatcher | None = None,
    ):
        self.client = client
        self.timeout = timeout
        self.matcher = matcher or VulnerabilityMatcher()

    async def _get(self, url: str) -> httpx.Response | None:
        try:
            return await self.client.get(url, timeout=self.timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug(f"Request to {url} failed: {e}")
            return None

    async def redirects_to(self, base_url: str) -> str | None:
        """Get the URL the site root redirects to, if it redirects elsewhere.

        Args:
            base_url: Scan target

        Returns:
            Normalized redirect target, or None
        """
        base_url = normalize_target(base_url)
        response = await self._get(base_url)
        if response is None or not response.is_redirect:
            return None
        location = response.headers.get("location")
        if not location:
            return None

        redirected = urljoin(base_url, location)
        parts = urlsplit(redirected)
        # Only keep scheme, host and directory of the new location
        path = parts.path if parts.path.endswith("/") else parts.path.rsplit("/", 1)[0] + "/"
        redirected = normalize_target(f"{parts.scheme}://{parts.netloc}{path}")
        return None if redirected == base_url else redirected

    async def core_version(self, base_url: str) -> str | None:
        """Identify the CMS core version."""
        response = await self._get(join_url(base_url, README_PATH))
        if response is not None and response.status_code == 200:
            for pattern in README_VERSION_PATTERNS:
                version = search_version(pattern, response.text)
                if version:
                    logger.info(f"Core version {version} identified from {README_PATH}")
                    return version

        response = await self._get(join_url(base_url, CORE_MANIFEST_PATH))
        if response is not None and response.status_code == 200:
            try:
                version = parse_manifest(response.text).version
            except MalformedResponseError as e:
                logger.debug(f"Core manifest unusable: {e}")
                version = None
            if version:
                logger.info(f"Core version {version} identified from core manifest")
                return version

        return None

    async def registration_url(self, base_url: str) -> str | None:
        """Get the URL of an open user registration form, if any."""
        for path in REGISTRATION_PATHS:
            url = join_url(base_url, path)
            response = await self._get(url)
            if (
                response is not None
                and response.status_code == 200
                and REGISTRATION_FORM_RE.search(response.text)
            ):
                return url
        return None

    async def interesting_headers(self, base_url: str) -> tuple[tuple[str, str], ...]:
        """Get root response headers that are not part of every response."""
        response = await self._get(base_url)
        if response is None:
            return ()
        return tuple(
            (name, value)
            for name, value in response.headers.multi_items()
            if name.lower() not in BORING_HEADERS
        )

    async def listings(self, base_url: str) -> tuple[str, ...]:
        """Get the extension folders that expose a directory listing."""
        found = []
        for path in LISTING_PATHS:
            url = join_url(base_url, path)
            response = await self._get(url)
            if (
                response is not None
                and response.status_code == 200
                and LISTING_RE.search(response.text)
            ):
                found.append(url)
        return tuple(found)

    async def inspect(
        self,
        base_url: str,
        database: VulnerabilityLookup,
    ) -> TargetFindings:
        """Run every target level check.

        Args:
            base_url: Scan target
            database: Catalog used to match the core version

        Returns:
            TargetFindings
        """
        version = await self.core_version(base_url)
        core_vulns = (
            self.matcher.match_version(CORE_SLUG, version, database)
            if version
            else ()
        )
        registration = await self.registration_url(base_url)
        return TargetFindings(
            core_version=version,
            core_vulnerabilities=core_vulns,
            registration_enabled=registration is not None,
            registration_url=registration,
            interesting_headers=await self.interesting_headers(base_url),
            listings=await self.listings(base_url),
        )
