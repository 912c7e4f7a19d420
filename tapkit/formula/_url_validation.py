"""URL validation for artifact downloads -- SSRF prevention.

Validates that download URLs use HTTPS and do not target private/reserved IPs.
"""

import ipaddress
import logging
import socket
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def is_https_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme == "https" and bool(parsed.hostname)


def validate_download_url(url: str) -> None:
    """Validate URL before download -- SSRF prevention.

    Raises:
        ValueError: If the URL scheme is not HTTPS, has no hostname,
                    or resolves to a private/reserved/loopback IP.
    """
    parsed = urlparse(url)
    if parsed.scheme != "https":
        raise ValueError(f"Only HTTPS URLs allowed for downloads, got: {parsed.scheme!r}")
    if not parsed.hostname:
        raise ValueError("URL must have a hostname")

    try:
        resolved_ip = ipaddress.ip_address(socket.gethostbyname(parsed.hostname))
    except socket.gaierror:
        # Unresolvable hosts fail at download time with a transport error
        logger.debug(f"Could not resolve {parsed.hostname} during URL validation")
        return

    if resolved_ip.is_private or resolved_ip.is_reserved or resolved_ip.is_loopback:
        raise ValueError(f"Downloads from private/reserved IPs not allowed: {resolved_ip}")
