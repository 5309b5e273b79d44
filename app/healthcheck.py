"""HTTP health check probe for container orchestration.

Execute a lightweight HTTP GET request against the sidecar's own proxied
health endpoint. Return appropriate exit codes for container runtime health
probes (e.g. a Docker ``HEALTHCHECK``).

Exit Codes:
    0: Healthy - Endpoint returned HTTP 200.
    1: Unhealthy - Connection failed, non-200 response or sidecar terminating.

Environment Variables:
    HEALTHCHECK_HOST: Target host address (default: 127.0.0.1).
    HEALTHCHECK_PORT: Target port number (default: PORT, then 8080).
    HEALTHCHECK_PATH: Target path (default: /healthz).
    HEALTHCHECK_TIMEOUT: Probe timeout in seconds (default: 2).
"""

import os
import sys
import urllib.error
import urllib.request
from typing import Mapping, Optional

DEFAULT_TIMEOUT = 2.0  # seconds


def build_url(environ: Mapping[str, str]) -> str:
    host = environ.get("HEALTHCHECK_HOST", "127.0.0.1")
    port = environ.get("HEALTHCHECK_PORT") or environ.get("PORT", "8080")
    path = environ.get("HEALTHCHECK_PATH", "/healthz")
    return f"http://{host}:{port}{path}"


def check(url: str, timeout: float = DEFAULT_TIMEOUT) -> int:
    """Probe `url` once and return the process exit code."""
    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            return 0 if response.status == 200 else 1
    except (urllib.error.URLError, TimeoutError, ConnectionError):
        # HTTPError (4xx, 5xx, including 503 while draining) is a URLError.
        return 1


def main(environ: Optional[Mapping[str, str]] = None) -> None:
    environ = os.environ if environ is None else environ
    try:
        timeout = float(environ.get("HEALTHCHECK_TIMEOUT", DEFAULT_TIMEOUT))
    except ValueError:
        timeout = DEFAULT_TIMEOUT
    sys.exit(check(build_url(environ), timeout=timeout))


if __name__ == "__main__":
    main()
