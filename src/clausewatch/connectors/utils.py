from __future__ import annotations

from dataclasses import dataclass
import ipaddress
import re
import socket
from urllib.parse import urlparse

from clausewatch.errors import InvalidInputUrl

SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
HOST_LABEL_RE = re.compile(r"^[a-z0-9_]([a-z0-9_-]*[a-z0-9_])?$", re.IGNORECASE)
INTERNAL_HOST_SUFFIXES = (".local", ".internal")
NUMERIC_LABEL_RE = re.compile(r"^(0x[0-9a-f]+|[0-9]+)$", re.IGNORECASE)

MSG_REQUIRED = "URL is required"
MSG_MALFORMED = "Input must be a valid URL"
MSG_SCHEME = "Only HTTPS URLs are allowed"
MSG_PRIVATE = "Private or internal URLs are not allowed"


@dataclass(slots=True, frozen=True)
class SanitizedUrl:
    url: str
    hostname: str


def is_private_hostname(hostname: str) -> bool:
    """True for localhost, internal suffixes and literal non-public IP addresses."""
    host = (hostname or "").strip().lower().rstrip(".")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if host == "localhost" or host.endswith(INTERNAL_HOST_SUFFIXES):
        return True
    if _is_numeric_host(host):
        ip = _numeric_ipv4(host)
        if ip is None:
            return False
    else:
        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            return False
    return ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_unspecified or ip.is_reserved


def _is_numeric_host(host: str) -> bool:
    return all(NUMERIC_LABEL_RE.match(label) for label in host.split("."))


def _numeric_ipv4(host: str) -> ipaddress.IPv4Address | None:
    """Resolve shorthand IPv4 spellings such as 127.1, 2130706433 or 0x7f000001."""
    try:
        return ipaddress.IPv4Address(socket.inet_aton(host))
    except OSError:
        return None


def _looks_like_hostname(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        pass
    labels = host.split(".")
    return all(label and HOST_LABEL_RE.match(label) for label in labels)


def sanitize_url(value: object) -> SanitizedUrl:
    """
    Validate and normalize a user supplied vendor URL.

    A bare domain gets `https://` prepended. Only HTTPS is accepted and hosts that
    point at private, loopback or link-local space are rejected. Returns the origin.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputUrl(f"Invalid URL: {MSG_REQUIRED}")

    raw = value.strip()
    if not SCHEME_RE.match(raw):
        raw = f"https://{raw}"

    parsed = urlparse(raw)
    if parsed.scheme.lower() != "https":
        raise InvalidInputUrl(f"Invalid URL: {MSG_SCHEME}")

    try:
        hostname = (parsed.hostname or "").lower()
        port = parsed.port
    except ValueError:
        raise InvalidInputUrl(f"Invalid URL: {MSG_MALFORMED}") from None
    if not hostname or any(ch.isspace() for ch in raw) or not _looks_like_hostname(hostname):
        raise InvalidInputUrl(f"Invalid URL: {MSG_MALFORMED}", hostname=hostname)

    if is_private_hostname(hostname):
        raise InvalidInputUrl(f"Invalid URL: {MSG_PRIVATE}", hostname=hostname)
    if _is_numeric_host(hostname) and str(_numeric_ipv4(hostname)) != hostname:
        # Only the canonical dotted quad is accepted for public addresses.
        raise InvalidInputUrl(f"Invalid URL: {MSG_MALFORMED}", hostname=hostname)

    host_part = f"[{hostname}]" if ":" in hostname else hostname
    origin = f"https://{host_part}" if port in (None, 443) else f"https://{host_part}:{port}"
    return SanitizedUrl(url=origin, hostname=hostname)
