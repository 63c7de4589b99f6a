"""Scan and catalog API endpoints."""

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from extscout.config import Settings, get_settings
from extscout.data.vulnerabilities import VulnerabilityDatabase
from extscout.models.schemas import (
    CandidateResponse,
    ScanReportResponse,
    ScanRequest,
    VulnerabilityResponse,
)
from extscout.services.scan.models import ExtensionKind
from extscout.services.scan.scanner import ExtensionScanner

router = APIRouter()
logger = logging.getLogger(__name__)


def get_database(request: Request) -> VulnerabilityDatabase:
    """Return the database loaded at startup, or refuse to scan without it."""
    database = getattr(request.app.state, "database", None)
    if database is None:
        error = getattr(request.app.state, "catalog_error", None) or "not loaded"
        raise HTTPException(
            status_code=503,
            detail=f"Vulnerability catalog unavailable: {error}",
        )
    return database


def get_scan_client() -> httpx.AsyncClient | None:
    """HTTP client for scans; None lets the scanner build its own."""
    return None


@router.get("/catalog", response_model=list[CandidateResponse])
async def list_candidates(
    kind: ExtensionKind | None = Query(None, description="Filter by kind"),
    database: VulnerabilityDatabase = Depends(get_database),
):
    """List the extensions a scan probes for."""
    scanner = ExtensionScanner(database=database)
    candidates = scanner.candidates([kind] if kind else None)
    return [CandidateResponse.from_candidate(c) for c in candidates]


@router.get("/vulnerabilities/{slug}", response_model=list[VulnerabilityResponse])
async def get_vulnerabilities(
    slug: str,
    database: VulnerabilityDatabase = Depends(get_database),
):
    """List the known vulnerabilities of one extension."""
    vulns = database.lookup(slug)
    if not vulns:
        raise HTTPException(status_code=404, detail=f"No vulnerabilities for {slug}")
    return [VulnerabilityResponse.from_vulnerability(v) for v in vulns]


@router.post("/scans", response_model=ScanReportResponse)
async def create_scan(
    scan_request: ScanRequest,
    database: VulnerabilityDatabase = Depends(get_database),
    client: httpx.AsyncClient | None = Depends(get_scan_client),
    settings: Settings = Depends(get_settings),
):
    """Run a scan and return its report."""
    overrides = {}
    if scan_request.threads is not None:
        overrides["concurrency"] = scan_request.threads
    if scan_request.timeout is not None:
        overrides["timeout"] = scan_request.timeout

    scanner = ExtensionScanner.from_settings(
        settings,
        database=database,
        client=client,
        **overrides,
    )
    logger.info(f"API scan requested for {scan_request.target}")
    report = await scanner.scan(
        scan_request.target,
        kinds=scan_request.kinds,
        inspect_target=scan_request.inspect_target,
    )
    return ScanReportResponse.from_report(report)
