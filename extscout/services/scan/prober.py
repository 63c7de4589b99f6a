"""Concurrent probing of extension candidates.

A fixed pool of worker tasks drains a shared queue of candidates. Each worker
requests a candidate's primary path and, when the extension looks present,
the files its fingerprint rules read (manifest, changelog). All workers share
one httpx client whose pool is capped at the worker count.

A transport failure only marks that candidate unreachable. The probe ends
when the queue is exhausted, when the optional overall budget elapses
(pending candidates are recorded as timed out) or when the cancel event is set
(pending candidates are recorded as cancelled). Every candidate gets exactly
one outcome either way.
"""

import asyncio
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable

import httpx

from extscout.services.scan.fingerprinter import FingerprintExtractor
from extscout.services.scan.models import (
    ExtensionCandidate,
    ProbeDocument,
    ProbeErrorKind,
    ProbeOutcome,
    RuleSource,
)
from extscout.services.scan.transport import (
    TransportConfig,
    build_client,
    join_url,
)

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 20
DEFAULT_TIMEOUT = 10.0

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated",
)


class TransportError(Exception):
    """A single request failed below the HTTP layer."""

    def __init__(self, kind: ProbeErrorKind, url: str, detail: str = ""):
        self.kind = kind
        self.url = url
        self.detail = detail
        super().__init__(f"{kind.value} error for {url}: {detail}")


def classify_transport_error(exc: Exception) -> ProbeErrorKind:
    """Map an httpx exception onto a probe error kind."""
    if isinstance(exc, httpx.TimeoutException):
        return ProbeErrorKind.TIMEOUT
    if isinstance(exc, httpx.ConnectError):
        message = str(exc).lower()
        if any(marker in message for marker in _DNS_MARKERS):
            return ProbeErrorKind.DNS
        return ProbeErrorKind.CONNECTION
    if isinstance(exc, httpx.ProtocolError):
        return ProbeErrorKind.PROTOCOL
    if isinstance(exc, httpx.NetworkError):
        return ProbeErrorKind.CONNECTION
    return ProbeErrorKind.TRANSPORT


@dataclass(frozen=True)
class ProbeRun:
    """All outcomes of one probing pass plus failure counters."""
    outcomes: tuple[ProbeOutcome, ...]
    cancelled: bool = False
    budget_exhausted: bool = False
    # Candidates whose outcome was filled in after the pool stopped
    abandoned: int = 0

    @property
    def unreachable(self) -> int:
        """Candidates that could not be probed (timeouts included)."""
        return sum(
            1 for o in self.outcomes
            if o.error is not None and o.error is not ProbeErrorKind.CANCELLED
        )

    @property
    def timed_out(self) -> int:
        return sum(1 for o in self.outcomes if o.error is ProbeErrorKind.TIMEOUT)

    @property
    def not_probed(self) -> int:
        """Candidates the pool stopped before finishing, for any reason."""
        return self.abandoned


class ConcurrentProber:
    """Bounded worker pool issuing the HTTP probes for a set of candidates."""

    def __init__(
        self,
        extractor: FingerprintExtractor | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: float = DEFAULT_TIMEOUT,
        overall_timeout: float | None = None,
        transport: TransportConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the prober.

        Args:
            extractor: Presence check used to decide whether to fetch files
            concurrency: Number of workers (and pooled connections)
            timeout: Per-request timeout in seconds
            overall_timeout: Optional wall-clock budget for the whole pass
            transport: Settings used to build a client when none is given
            client: Pre-built client to share (not closed by the prober)
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.extractor = extractor or FingerprintExtractor()
        self.concurrency = concurrency
        self.timeout = timeout
        self.overall_timeout = overall_timeout
        self.transport = transport or TransportConfig()
        self.client = client

    async def probe(
        self,
        base_url: str,
        candidates: Iterable[ExtensionCandidate],
        cancel_event: asyncio.Event | None = None,
    ) -> ProbeRun:
        """Probe every candidate once.

        Args:
            base_url: Scan target, already resolved past redirects
            candidates: Candidates to probe; duplicates are probed once
            cancel_event: Set by the caller to abort the pass early

        Returns:
            ProbeRun with one outcome per unique candidate, sorted by key
        """
        unique: dict[tuple[str, str], ExtensionCandidate] = {}
        for candidate in candidates:
            unique.setdefault(candidate.key, candidate)
        if not unique:
            return ProbeRun(outcomes=())

        cancel_event = cancel_event or asyncio.Event()
        queue: asyncio.Queue[ExtensionCandidate] = asyncio.Queue()
        for candidate in unique.values():
            queue.put_nowait(candidate)

        outcomes: dict[tuple[str, str], ProbeOutcome] = {}
        worker_count = min(self.concurrency, len(unique))
        logger.info(
            f"Probing {len(unique)} candidates on {base_url} "
            f"with {worker_count} workers"
        )

        close_client = self.client is None
        client = self.client or build_client(
            self.transport, self.concurrency, self.timeout
        )
        try:
            stop_reason = await self._run_workers(
                client, base_url, queue, outcomes, cancel_event, worker_count
            )
        finally:
            if close_client:
                await client.aclose()

        missing_error = (
            ProbeErrorKind.TIMEOUT
            if stop_reason is ProbeErrorKind.TIMEOUT
            else ProbeErrorKind.CANCELLED
        )
        abandoned = 0
        for key, candidate in unique.items():
            if key not in outcomes:
                abandoned += 1
                outcomes[key] = ProbeOutcome(
                    slug=candidate.slug,
                    kind=candidate.kind,
                    url=join_url(base_url, candidate.probe_paths[0]),
                    error=missing_error,
                )

        run = ProbeRun(
            outcomes=tuple(outcomes[key] for key in sorted(outcomes)),
            cancelled=stop_reason is ProbeErrorKind.CANCELLED,
            budget_exhausted=stop_reason is ProbeErrorKind.TIMEOUT,
            abandoned=abandoned,
        )
        logger.info(
            f"Probing finished: {len(run.outcomes)} outcomes, "
            f"{run.unreachable} unreachable, {run.not_probed} not probed"
        )
        return run

    async def _run_workers(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        queue: asyncio.Queue,
        outcomes: dict[tuple[str, str], ProbeOutcome],
        cancel_event: asyncio.Event,
        worker_count: int,
    ) -> ProbeErrorKind | None:
        """Run the pool until the queue drains, the budget ends or cancel.

        Returns:
            None on normal completion, TIMEOUT when the budget elapsed,
            CANCELLED when the cancel event fired
        """
        loop = asyncio.get_running_loop()
        deadline = (
            loop.time() + self.overall_timeout
            if self.overall_timeout is not None
            else None
        )
        pending = {
            asyncio.create_task(
                self._worker(client, base_url, queue, outcomes, cancel_event)
            )
            for _ in range(worker_count)
        }
        waiter = asyncio.create_task(cancel_event.wait())
        stop_reason: ProbeErrorKind | None = None

        try:
            while pending:
                remaining = None
                if deadline is not None:
                    remaining = max(0.0, deadline - loop.time())
                done, pending = await asyncio.wait(
                    pending | {waiter},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                pending.discard(waiter)
                for task in done:
                    if task is not waiter:
                        task.result()
                if waiter in done:
                    stop_reason = ProbeErrorKind.CANCELLED
                    logger.warning("Scan cancelled, stopping probe workers")
                    break
                if not done:
                    stop_reason = ProbeErrorKind.TIMEOUT
                    logger.warning(
                        f"Scan budget of {self.overall_timeout}s exhausted, "
                        "stopping probe workers"
                    )
                    break
        finally:
            waiter.cancel()
            for task in pending:
                task.cancel()
            await asyncio.gather(waiter, *pending, return_exceptions=True)

        return stop_reason

    async def _worker(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        queue: asyncio.Queue,
        outcomes: dict[tuple[str, str], ProbeOutcome],
        cancel_event: asyncio.Event,
    ) -> None:
        """Take candidates off the queue until it is empty or cancelled."""
        while not cancel_event.is_set():
            try:
                candidate = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                outcome = await self.probe_candidate(
                    client, base_url, candidate, cancel_event
                )
                outcomes[candidate.key] = outcome
            finally:
                queue.task_done()

    async def probe_candidate(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        candidate: ExtensionCandidate,
        cancel_event: asyncio.Event | None = None,
    ) -> ProbeOutcome:
        """Issue the requests for one candidate.

        Args:
            client: Shared HTTP client
            base_url: Scan target
            candidate: Candidate to probe
            cancel_event: Checked before every follow-up request

        Returns:
            ProbeOutcome; transport failures are reported in ``error``
        """
        status: int | None = None
        body = ""
        url = join_url(base_url, candidate.probe_paths[0])
        present = False

        for path in candidate.probe_paths:
            url = join_url(base_url, path)
            try:
                status, body = await self._get(client, url)
            except TransportError as e:
                logger.debug(f"{candidate.slug}: {e}")
                return ProbeOutcome(
                    slug=candidate.slug,
                    kind=candidate.kind,
                    url=url,
                    error=e.kind,
                )
            present = self.extractor.is_present(candidate, status, body)
            if present:
                break

        documents: dict[str, ProbeDocument] = {}
        if present:
            documents = await self._fetch_documents(
                client, base_url, candidate, cancel_event
            )

        return ProbeOutcome(
            slug=candidate.slug,
            kind=candidate.kind,
            url=url,
            status=status,
            body=body,
            documents=MappingProxyType(documents),
        )

    async def _fetch_documents(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        candidate: ExtensionCandidate,
        cancel_event: asyncio.Event | None,
    ) -> dict[str, ProbeDocument]:
        """Fetch the files read by the candidate's fingerprint rules.

        Manifests are tried in order until one holds a real manifest (a 2xx
        answer that is not a soft-404 and parses or carries a version);
        changelogs are always fetched. A failed fetch just leaves that
        document out.
        """
        documents: dict[str, ProbeDocument] = {}
        manifest_found = False

        for rule in candidate.fingerprint_rules:
            if not rule.fetches_file or not rule.path or rule.path in documents:
                continue
            if rule.source is RuleSource.MANIFEST and manifest_found:
                continue
            if cancel_event is not None and cancel_event.is_set():
                break

            url = join_url(base_url, rule.path)
            try:
                status, body = await self._get(client, url)
            except TransportError as e:
                logger.debug(f"{candidate.slug}: {e}")
                continue

            document = ProbeDocument(url=url, status=status, body=body)
            documents[rule.path] = document
            if rule.source is RuleSource.MANIFEST:
                manifest_found = self.extractor.is_manifest(candidate, rule, document)

        return documents

    async def _get(self, client: httpx.AsyncClient, url: str) -> tuple[int, str]:
        """GET a URL with the per-request timeout.

        Raises:
            TransportError: On any failure below the HTTP layer
        """
        try:
            response = await client.get(url, timeout=self.timeout)
            return response.status_code, response.text
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(classify_transport_error(e), url, str(e))
