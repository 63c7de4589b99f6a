"""Command line scanner.

Usage:
    extscout -u http://example.com -a                 # everything
    extscout -u example.com -c --threads 40 -v         # components only
    extscout -u example.com -a --json > report.json    # machine readable
"""

import argparse
import asyncio
import logging
import signal
import sys
import time

from extscout.config import Settings, get_settings
from extscout.data.vulnerabilities import CatalogLoadError, load_database
from extscout.models.schemas import ScanReportResponse
from extscout.services.scan.models import (
    ExtensionKind,
    ReportEntry,
    ScanReport,
    VulnerabilityMatch,
)
from extscout.services.scan.scanner import ExtensionScanner
from extscout.services.scan.transport import TransportConfig, normalize_target

logger = logging.getLogger(__name__)

REFERENCE_URLS = {
    "edbid": "https://www.exploit-db.com/exploits/{}/",
    "cveid": "https://www.cvedetails.com/cve/CVE-{}/",
    "osvdbid": "http://osvdb.org/{}/",
}

RULE = "-" * 60


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="extscout",
        description="Scan a Joomla! site for vulnerable extensions.",
    )
    basic = parser.add_argument_group("Basic options")
    basic.add_argument("-u", "--url", required=True, help="The Joomla URL/domain to scan")
    basic.add_argument(
        "--basic-auth",
        metavar="USER:PASSWORD",
        help="HTTP basic authentication credentials",
    )
    basic.add_argument("-v", "--verbose", action="store_true", help="Enable verbose mode")

    enum = parser.add_argument_group("Enumeration options")
    enum.add_argument("-a", "--scan-all", action="store_true", help="Scan for all vulnerable extensions")
    enum.add_argument("-c", "--scan-components", action="store_true", help="Scan for vulnerable components")
    enum.add_argument("-m", "--scan-modules", action="store_true", help="Scan for vulnerable modules")
    enum.add_argument("-t", "--scan-templates", action="store_true", help="Scan for vulnerable templates")

    advanced = parser.add_argument_group("Advanced options")
    advanced.add_argument(
        "--follow-redirection",
        action="store_true",
        help="Automatically follow redirections",
    )
    advanced.add_argument(
        "--proxy",
        metavar="[PROTOCOL://]HOST:PORT",
        help="HTTP or SOCKS proxy; HTTP is used when no protocol is given",
    )
    advanced.add_argument("--proxy-auth", metavar="USER:PASSWORD", help="Proxy credentials")
    advanced.add_argument("--threads", type=int, help="Number of concurrent requests (default: 20)")
    advanced.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    advanced.add_argument("--scan-timeout", type=float, help="Overall probing budget in seconds")
    advanced.add_argument("--user-agent", help="User-Agent header for all requests")
    advanced.add_argument("--no-verify-tls", action="store_true", help="Skip TLS certificate checks")
    advanced.add_argument("--data", metavar="PATH", help="Vulnerability catalog file or directory")
    advanced.add_argument("--json", action="store_true", help="Print the report as JSON")
    return parser


def selected_kinds(args: argparse.Namespace) -> list[ExtensionKind]:
    """Extension kinds requested on the command line."""
    if args.scan_all:
        return list(ExtensionKind)
    kinds = []
    if args.scan_components:
        kinds.append(ExtensionKind.COMPONENT)
    if args.scan_modules:
        kinds.append(ExtensionKind.MODULE)
    if args.scan_templates:
        kinds.append(ExtensionKind.TEMPLATE)
    return kinds


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Layer command line flags over environment settings."""
    overrides = {
        "scan_threads": args.threads,
        "request_timeout_seconds": args.timeout,
        "scan_timeout_seconds": args.scan_timeout,
        "user_agent": args.user_agent,
        "proxy": args.proxy,
        "proxy_auth": args.proxy_auth,
        "basic_auth": args.basic_auth,
        "vulnerability_data_path": args.data,
    }
    update = {k: v for k, v in overrides.items() if v is not None}
    if args.follow_redirection:
        update["follow_redirection"] = True
    if args.no_verify_tls:
        update["verify_tls"] = False
    return settings.model_copy(update=update)


def format_references(match: VulnerabilityMatch) -> list[str]:
    lines = []
    for kind, ids in match.vulnerability.references.items():
        template = REFERENCE_URLS.get(kind)
        for ref in ids:
            if template:
                ref = ref.removeprefix("CVE-") if kind == "cveid" else ref
                lines.append(f" |  Reference: {template.format(ref)}")
            else:
                lines.append(f" |  Reference ({kind}): {ref}")
    return lines


def format_matches(matches: tuple[VulnerabilityMatch, ...]) -> list[str]:
    lines = []
    for match in matches:
        lines.append("")
        lines.append(f"[!] Title: {match.vulnerability.title}")
        lines.extend(format_references(match))
        if match.vulnerability.fixed_in:
            lines.append(f"[i] Fixed in: {match.vulnerability.fixed_in}")
        if match.low_confidence:
            lines.append(f"[i] Version {match.version} could not be compared reliably")
    return lines


def format_entry(entry: ReportEntry) -> list[str]:
    detection = entry.detection
    evidence = detection.evidence
    lines = ["", f"[+] Name: {detection.slug} - v{detection.version or 'unknown'}"]
    if evidence:
        lines.append(f" |  Location: {evidence.extension_url}")
        if evidence.manifest_url:
            lines.append(f" |  Manifest: {evidence.manifest_url}")
        if evidence.description:
            lines.append(f" |  Description: {evidence.description}")
        if evidence.author:
            lines.append(f" |  Author: {evidence.author}")
        if evidence.author_url:
            lines.append(f" |  Author URL: {evidence.author_url}")
    lines.extend(format_matches(entry.matches))
    lines.append(RULE)
    return lines


def format_report(report: ScanReport, kinds: list[ExtensionKind]) -> str:
    """Render a report as plain text."""
    lines: list[str] = []
    findings = report.target_findings
    if findings:
        if findings.registration_enabled:
            lines.append(f"[!] Registration is enabled: {findings.registration_url}")
        lines.append(f"[+] Found {len(findings.interesting_headers)} interesting headers.")
        lines.extend(f" |  {name}: {value}" for name, value in findings.interesting_headers)
        lines.extend(f"[!] Listing enabled: {url}" for url in findings.listings)
        lines.append("")
        if findings.core_version:
            lines.append(f"[+] Joomla version {findings.core_version} identified")
            lines.append(
                f"[!] Found {len(findings.core_vulnerabilities)} vulnerabilities "
                "affecting this version of Joomla!"
            )
            lines.extend(format_matches(findings.core_vulnerabilities))
        else:
            lines.append("[-] Couldn't determine the Joomla version")

    for kind in kinds:
        entries = [e for e in report.entries if e.detection.kind is kind]
        vulnerable = [e for e in entries if e.matches]
        lines.append("")
        lines.append(
            f"[!] Found {len(vulnerable)} vulnerable {kind.value}s "
            f"({len(entries)} detected)."
        )
        lines.append(RULE)
        for entry in entries:
            lines.extend(format_entry(entry))

    lines.append("")
    if report.unreachable:
        lines.append(
            f"[-] {report.unreachable} candidates unreachable "
            f"({report.timed_out} timed out)"
        )
    if report.cancelled:
        lines.append("[-] Scan aborted, results are partial")
    return "\n".join(lines)


def confirm_redirect(redirected: str) -> str:
    """Ask whether to follow a redirect. Returns 'y', 'n' or 'a'.

    The prompt goes to stderr so a --json report on stdout stays parseable.
    """
    print(f"[i] The remote host tried to redirect to: {redirected}", file=sys.stderr)
    sys.stderr.write("Do you want to follow the redirection? [Y]es [N]o [A]bort: ")
    sys.stderr.flush()
    answer = input()
    return (answer.strip()[:1] or "n").lower()


async def scan(args: argparse.Namespace, settings: Settings) -> int:
    """Run one scan from parsed arguments; returns the exit status."""
    try:
        database = load_database(settings.vulnerability_data_path)
    except CatalogLoadError as e:
        print(f"[-] Cannot load the vulnerability catalog: {e}", file=sys.stderr)
        print("[-] Fix or point --data at a valid catalog; scan aborted.", file=sys.stderr)
        return 2

    scanner = ExtensionScanner(
        database=database,
        concurrency=settings.scan_threads,
        timeout=settings.request_timeout_seconds,
        overall_timeout=settings.scan_timeout_seconds,
        transport=TransportConfig.from_settings(settings),
    )

    target = normalize_target(args.url)
    redirected = await scanner.redirects_to(target)
    if redirected:
        answer = "y" if settings.follow_redirection else confirm_redirect(redirected)
        if answer == "a":
            print("[+] Scan aborted", file=sys.stderr)
            return 1
        if answer == "y":
            target = redirected
            logger.info(f"Now targeting {target}")

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        pass

    kinds = selected_kinds(args)
    started = time.strftime("%a %b %d %H:%M:%S %Y")
    if not args.json:
        print(f"[+] URL: {target}")
        print(f"[+] Started: {started}")

    report = await scanner.scan(target, kinds=kinds, cancel_event=cancel_event)

    if args.json:
        print(ScanReportResponse.from_report(report).model_dump_json(indent=2))
    else:
        print(format_report(report, kinds))
        print("[+] Finished")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Console entry point."""
    args = build_parser().parse_args(argv)
    settings = apply_overrides(get_settings(), args)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return asyncio.run(scan(args, settings))


if __name__ == "__main__":
    sys.exit(main())
