"""Configuration settings for Extscout.

All settings are loaded from environment variables (or a ``.env`` file) using
pydantic-settings. The ``get_settings()`` function returns a cached singleton
instance. Command line flags override these values per run.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 6.3; rv:36.0) Gecko/20100101 Firefox/36.0"
)

BUNDLED_DATA_PATH = Path(__file__).parent / "data" / "vulnerabilities" / "definitions"


class Settings(BaseSettings):
    """Scanner settings loaded from environment variables.

    Attributes:
        scan_threads: Number of concurrent probe workers.
        request_timeout_seconds: Timeout applied to every single HTTP request.
        scan_timeout_seconds: Optional wall-clock budget for the probing phase.
            Candidates still pending when it elapses are recorded as timed out.
        user_agent: User-Agent header sent with every request.
        proxy: Proxy URL (``http://``, ``socks5://``...). Empty disables it.
        proxy_auth: ``username:password`` credentials for the proxy.
        basic_auth: ``username:password`` HTTP basic auth for the target.
        verify_tls: Verify the target's TLS certificate.
        follow_redirection: Follow a root redirect without asking.
        vulnerability_data_path: File or directory holding the vulnerability
            catalog (JSON or YAML).
        api_host: Bind address for the HTTP API.
        api_port: Bind port for the HTTP API.
        log_level: Logging level (debug, info, warning, error, critical).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Scanning
    scan_threads: int = 20
    request_timeout_seconds: float = 10.0
    scan_timeout_seconds: float | None = None

    # Transport
    user_agent: str = DEFAULT_USER_AGENT
    proxy: str = ""
    proxy_auth: str = ""
    basic_auth: str = ""
    verify_tls: bool = True
    follow_redirection: bool = False

    # Data
    vulnerability_data_path: Path = BUNDLED_DATA_PATH

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "info"


@lru_cache
def get_settings() -> Settings:
    """Get or create the cached settings singleton.

    Returns:
        Cached Settings instance.
    """
    return Settings()
