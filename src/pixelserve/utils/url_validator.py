"""SSRF guard for user-supplied image URLs."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
import socket
from collections.abc import Iterable
from urllib.parse import urlsplit

from pixelserve.config.defaults import BLOCKED_DOMAINS
from pixelserve.errors.exceptions import ForbiddenError, ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = {"http", "https"}
_HEX_COLOR_RE = re.compile(r"^(?:[0-9A-Fa-f]{3}|[0-9A-Fa-f]{6})$")

# Carrier-grade NAT is not flagged by ipaddress.is_private
_CGNAT = ipaddress.ip_network("100.64.0.0/10")


def is_private_ip(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_reserved
        or (isinstance(ip, ipaddress.IPv4Address) and ip in _CGNAT)
    )


async def validate_url(
    url: str,
    allowed_domains: Iterable[str] = (),
    blocked_domains: Iterable[str] = BLOCKED_DOMAINS,
) -> str:
    """Return ``url`` if it is safe to fetch, else raise.

    Raises ValidationError for malformed URLs and ForbiddenError for
    disallowed schemes, hosts, or hosts resolving to private addresses.
    DNS failures are logged and let through.
    """
    try:
        parts = urlsplit(url)
        hostname = (parts.hostname or "").lower()
    except ValueError as e:
        raise ValidationError("Invalid URL format") from e
    if not parts.scheme or not hostname:
        raise ValidationError("Invalid URL format")

    if parts.scheme.lower() not in _ALLOWED_SCHEMES:
        raise ForbiddenError("Only HTTP/HTTPS URLs are allowed")

    if _matches_domain(hostname, blocked_domains):
        raise ForbiddenError("Blocked domain")

    allowed = [d.lower() for d in allowed_domains]
    if allowed and not _matches_domain(hostname, allowed):
        raise ForbiddenError("Domain not in allowlist")

    if is_private_ip(hostname):
        raise ForbiddenError("Private IP addresses are not allowed")

    # Resolve to catch hostnames that point at internal addresses
    try:
        addresses = await _resolve(hostname)
    except OSError as e:
        logger.warning("DNS resolution warning for %s: %s", hostname, e)
        return url

    if not addresses:
        logger.warning("No DNS records found for %s", hostname)
    for address in addresses:
        if is_private_ip(address):
            raise ForbiddenError("Private IP addresses are not allowed")

    return url


def is_valid_hex_color(color: str) -> bool:
    return bool(_HEX_COLOR_RE.match(color))


def sanitize_hex_color(color: str) -> str:
    cleaned = color.lstrip("#")
    if not is_valid_hex_color(cleaned):
        raise ValidationError(f"Invalid hex color: {color}")
    return cleaned


def _matches_domain(hostname: str, domains: Iterable[str]) -> bool:
    return any(hostname == d or hostname.endswith(f".{d}") for d in domains)


async def _resolve(hostname: str) -> list[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})
