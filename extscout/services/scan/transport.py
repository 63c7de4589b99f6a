"""HTTP client construction from caller supplied transport settings."""

import logging
from dataclasses import dataclass, field

import httpx

from extscout.config import DEFAULT_USER_AGENT, Settings

logger = logging.getLogger(__name__)


def _split_credentials(value: str) -> tuple[str, str] | None:
    """Split ``user:password`` credentials."""
    if not value:
        return None
    username, _, password = value.partition(":")
    return username, password


def normalize_target(target: str) -> str:
    """Give a bare host a scheme and make sure the URL ends with a slash."""
    target = target.strip()
    if not target.startswith(("http://", "https://")):
        target = f"http://{target}"
    return target if target.endswith("/") else f"{target}/"


def join_url(base_url: str, path: str) -> str:
    """Append a relative path to the scan target."""
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


@dataclass(frozen=True)
class TransportConfig:
    """Opaque-to-the-scanner transport settings.

    Attributes:
        user_agent: User-Agent header value
        proxy: Proxy URL; a bare ``host:port`` is treated as HTTP
        proxy_auth: ``username:password`` for the proxy
        basic_auth: ``username:password`` for the target
        verify_tls: Verify TLS certificates
        headers: Extra headers sent with every request
    """
    user_agent: str = DEFAULT_USER_AGENT
    proxy: str = ""
    proxy_auth: str = ""
    basic_auth: str = ""
    verify_tls: bool = True
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TransportConfig":
        return cls(
            user_agent=settings.user_agent,
            proxy=settings.proxy,
            proxy_auth=settings.proxy_auth,
            basic_auth=settings.basic_auth,
            verify_tls=settings.verify_tls,
        )

    def build_proxy(self) -> httpx.Proxy | None:
        """Build the httpx proxy definition, if any."""
        if not self.proxy:
            return None
        url = self.proxy if "://" in self.proxy else f"http://{self.proxy}"
        return httpx.Proxy(url, auth=_split_credentials(self.proxy_auth))


def build_client(
    transport: TransportConfig,
    concurrency: int,
    timeout: float,
) -> httpx.AsyncClient:
    """Create the shared client used by every probe worker.

    The connection pool is capped at ``concurrency`` so the number of
    simultaneous requests to the target never exceeds the worker count.

    Args:
        transport: Transport settings
        concurrency: Number of probe workers
        timeout: Per-request timeout in seconds

    Returns:
        Configured httpx.AsyncClient (caller closes it)
    """
    credentials = _split_credentials(transport.basic_auth)
    headers = {"User-Agent": transport.user_agent, **transport.headers}
    proxy = transport.build_proxy()
    if proxy is not None:
        logger.debug(f"Routing requests through proxy {proxy.url}")

    return httpx.AsyncClient(
        headers=headers,
        auth=httpx.BasicAuth(*credentials) if credentials else None,
        proxy=proxy,
        verify=transport.verify_tls,
        timeout=httpx.Timeout(timeout),
        limits=httpx.Limits(
            max_connections=concurrency,
            max_keepalive_connections=concurrency,
        ),
        follow_redirects=False,
    )
