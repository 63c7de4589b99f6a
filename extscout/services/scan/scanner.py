"""Extension scan orchestrator.

Main entry point combining:
- the vulnerability database (loaded before anything touches the network)
- target level inspection
- concurrent probing of the extension catalog
- fingerprint extraction, vulnerability matching and aggregation
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable

import httpx

from extscout.config import Settings
from extscout.data.vulnerabilities import VulnerabilityDatabase, load_database
from extscout.services.scan.aggregator import ResultAggregator
from extscout.services.scan.catalog import ExtensionCatalog
from extscout.services.scan.fingerprinter import FingerprintExtractor
from extscout.services.scan.inspector import TargetInspector
from extscout.services.scan.matcher import VulnerabilityMatcher
from extscout.services.scan.models import (
    DetectionResult,
    ExtensionCandidate,
    ExtensionKind,
    ScanReport,
    TargetFindings,
    VulnerabilityMatch,
)
from extscout.services.scan.prober import (
    DEFAULT_CONCURRENCY,
    DEFAULT_TIMEOUT,
    ConcurrentProber,
)
from extscout.services.scan.transport import (
    TransportConfig,
    build_client,
    normalize_target,
)

logger = logging.getLogger(__name__)


class ExtensionScanner:
    """Main extension scan orchestrator."""

    def __init__(
        self,
        database: VulnerabilityDatabase,
        catalog: ExtensionCatalog | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: float = DEFAULT_TIMEOUT,
        overall_timeout: float | None = None,
        transport: TransportConfig | None = None,
        client: httpx.AsyncClient | None = None,
        extractor: FingerprintExtractor | None = None,
        matcher: VulnerabilityMatcher | None = None,
        aggregator: ResultAggregator | None = None,
    ):
        """Initialize the scanner.

        Args:
            database: Loaded vulnerability database
            catalog: Candidates to probe (defaults to the bundled catalog
                plus every extension named in the database)
            concurrency: Number of probe workers
            timeout: Per-request timeout in seconds
            overall_timeout: Optional wall-clock budget for probing
            transport: Proxy/auth/user-agent settings for the client
            client: Pre-built client to use instead of building one
            extractor: Fingerprint extractor
            matcher: Vulnerability matcher
            aggregator: Result aggregator
        """
        self.database = database
        self.catalog = catalog or ExtensionCatalog.default().extended(
            database.extension_slugs()
        )
        self.concurrency = concurrency
        self.timeout = timeout
        self.overall_timeout = overall_timeout
        self.transport = transport or TransportConfig()
        self.client = client
        self.extractor = extractor or FingerprintExtractor()
        self.matcher = matcher or VulnerabilityMatcher()
        self.aggregator = aggregator or ResultAggregator()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        database: VulnerabilityDatabase | None = None,
        **kwargs,
    ) -> "ExtensionScanner":
        """Build a scanner from settings, loading the database if needed.

        Raises:
            CatalogLoadError: If the configured catalog cannot be loaded
        """
        if database is None:
            database = load_database(settings.vulnerability_data_path)
        kwargs.setdefault("concurrency", settings.scan_threads)
        kwargs.setdefault("timeout", settings.request_timeout_seconds)
        kwargs.setdefault("overall_timeout", settings.scan_timeout_seconds)
        kwargs.setdefault("transport", TransportConfig.from_settings(settings))
        return cls(database=database, **kwargs)

    def _client(self) -> tuple[httpx.AsyncClient, bool]:
        if self.client is not None:
            return self.client, False
        return build_client(self.transport, self.concurrency, self.timeout), True

    async def redirects_to(self, target: str) -> str | None:
        """Where the target root redirects to, for the caller to decide on."""
        client, owned = self._client()
        try:
            return await TargetInspector(client, self.timeout).redirects_to(target)
        finally:
            if owned:
                await client.aclose()

    async def scan(
        self,
        target: str,
        kinds: Iterable[ExtensionKind] | None = None,
        cancel_event: asyncio.Event | None = None,
        inspect_target: bool = True,
    ) -> ScanReport:
        """Scan a target for installed, vulnerable extensions.

        Args:
            target: Base URL, already resolved past any redirect
            kinds: Extension kinds to probe (all when None)
            cancel_event: Set to stop probing early; the report then holds
                what was observed so far
            inspect_target: Also run the target level checks

        Returns:
            ScanReport with entries sorted by slug
        """
        base_url = normalize_target(target)
        candidates = self.catalog.candidates(kinds)
        logger.info(f"Scanning {base_url} for {len(candidates)} extensions")

        client, owned = self._client()
        try:
            findings: TargetFindings | None = None
            if inspect_target:
                inspector = TargetInspector(client, self.timeout, self.matcher)
                findings = await inspector.inspect(base_url, self.database)

            prober = ConcurrentProber(
                extractor=self.extractor,
                concurrency=self.concurrency,
                timeout=self.timeout,
                overall_timeout=self.overall_timeout,
                client=client,
            )
            run = await prober.probe(base_url, candidates, cancel_event)
        finally:
            if owned:
                await client.aclose()

        by_key = {c.key: c for c in candidates}
        detections = [
            self.extractor.extract(by_key[outcome.key], outcome)
            for outcome in run.outcomes
        ]
        present = [d for d in detections if d.present]
        entries = self.aggregator.aggregate(present, self.match_all(present))

        report = ScanReport(
            target=base_url,
            entries=entries,
            probed=len(run.outcomes) - run.not_probed,
            unreachable=run.unreachable,
            timed_out=run.timed_out,
            cancelled=run.cancelled,
            target_findings=findings,
        )
        logger.info(
            f"Scan of {base_url} finished: {len(entries)} extensions found, "
            f"{len(report.vulnerable_entries)} vulnerable, "
            f"{report.unreachable} unreachable"
        )
        return report

    def match_all(
        self,
        detections: Iterable[DetectionResult],
    ) -> dict[str, tuple[VulnerabilityMatch, ...]]:
        """Match every present detection against the database."""
        return {
            d.slug: self.matcher.match(d, self.database)
            for d in detections
            if d.present
        }

    def candidates(
        self,
        kinds: Iterable[ExtensionKind] | None = None,
    ) -> tuple[ExtensionCandidate, ...]:
        return self.catalog.candidates(kinds)


async def run_scan(
    target: str,
    settings: Settings,
    kinds: Iterable[ExtensionKind] | None = None,
    data_path: Path | str | None = None,
    cancel_event: asyncio.Event | None = None,
    **scanner_kwargs,
) -> ScanReport:
    """Load the catalog, then scan.

    The catalog is loaded first, so a missing or corrupt catalog aborts
    before a single request is sent.

    Raises:
        CatalogLoadError: If the vulnerability catalog cannot be loaded
    """
    database = load_database(data_path or settings.vulnerability_data_path)
    scanner = ExtensionScanner.from_settings(
        settings, database=database, **scanner_kwargs
    )
    return await scanner.scan(target, kinds=kinds, cancel_event=cancel_event)
