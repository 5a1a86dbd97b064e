"""
Address parsing compatible with Caddy's site address syntax.

Aliases and upstreams are parsed the way Caddy parses addresses in its own
configuration, so whatever devalias accepts, Caddy accepts too:

    [scheme://]host[:port][/path]

IPv6 hosts go in brackets. Parsing is lenient about the host (like Caddy)
and strict about the port and scheme.
"""

import ipaddress
import logging
import re
from dataclasses import dataclass

from .errors import ConfigError

logger = logging.getLogger("devalias.address")

# Caddy truncates absurdly long addresses before parsing
MAX_ADDRESS_LENGTH = 4096

ALLOWED_SCHEMES = {"http", "https"}

# RFC 1035/1123 length limits
MAX_HOSTNAME_LENGTH = 253
MAX_LABEL_LENGTH = 63

VALID_LABEL_PATTERN = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$", re.IGNORECASE)

LOOPBACK_IP = "127.0.0.1"


@dataclass(frozen=True)
class Address:
    """A parsed address; empty strings mean "not given"."""

    original: str
    scheme: str = ""
    host: str = ""
    port: str = ""
    path: str = ""

    def port_number(self, default: int | None = None) -> int | None:
        return int(self.port) if self.port else default

    def join_host_port(self, port: int | str | None = None) -> str:
        """host:port with IPv6 hosts bracketed."""
        port = self.port if port is None else port
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{port}" if port != "" else host

    def __str__(self) -> str:
        text = self.join_host_port()
        if self.scheme:
            text = f"{self.scheme}://{text}"
        return text + self.path


def _split_host_port(hostport: str) -> tuple[str, str]:
    """Split host:port the way Go's net.SplitHostPort does; raises ValueError."""
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError("missing ']' in address")
        rest = hostport[end + 1 :]
        if not rest.startswith(":"):
            raise ValueError("missing port in address")
        host, port = hostport[1:end], rest[1:]
        if ":" in port:
            raise ValueError("too many colons in address")
    else:
        idx = hostport.rfind(":")
        if idx < 0:
            raise ValueError("missing port in address")
        host, port = hostport[:idx], hostport[idx + 1 :]
        if ":" in host:
            raise ValueError("too many colons in address")
    if any(c in host for c in "[]") or any(c in port for c in "[]"):
        raise ValueError("unexpected bracket in address")
    return host, port


def parse_address(value: str) -> Address:
    """
    Parse an address string.

    Raises:
        ConfigError: on a disallowed scheme or an invalid/out-of-range port
    """
    remaining = str(value)[:MAX_ADDRESS_LENGTH].strip()
    original = remaining
    scheme = ""

    if "://" in remaining:
        scheme, remaining = remaining.split("://", 1)
        scheme = scheme.lower()
        if scheme not in ALLOWED_SCHEMES:
            raise ConfigError(f"invalid scheme '{scheme}' in '{original}': only http/https allowed")

    hostport, slash, rest = remaining.partition("/")
    try:
        host, port = _split_host_port(hostport)
    except ValueError:
        try:
            host, port = _split_host_port(hostport + ":")
        except ValueError:
            host, port = hostport, ""

    path = "/" + rest if slash else ""

    if port:
        if not port.isdigit():
            raise ConfigError(f"invalid port '{port}' in '{original}'")
        if int(port) > 65535:
            raise ConfigError(f"port {int(port)} is out of range in '{original}'")

    return Address(original=original, scheme=scheme, host=host, port=port, path=path)


def normalize_upstream(value) -> str:
    """
    Expand shorthand upstreams to host:port.

    Accepts: 4000, "4000", ":4000" -> "127.0.0.1:4000"; anything else unchanged.
    """
    if isinstance(value, bool):
        raise ConfigError(f"invalid upstream: {value!r}")
    if isinstance(value, int):
        return f"{LOOPBACK_IP}:{value}"
    text = str(value).strip()
    if text.isdigit():
        return f"{LOOPBACK_IP}:{text}"
    if text.startswith(":") and text[1:].isdigit():
        return f"{LOOPBACK_IP}{text}"
    return text


def validate_hostname(hostname: str) -> tuple[bool, str | None]:
    """Check a hostname is safe to write to the hosts file."""
    if not hostname:
        return (False, "Hostname cannot be empty")

    if any(c in hostname for c in ["\r", "\n", "\x00", " ", "\t", "#"]):
        return (False, "Hostname contains whitespace or control characters")

    if not all(c.isalnum() or c in ".-" for c in hostname):
        return (False, "Hostname contains invalid characters")

    if len(hostname) > MAX_HOSTNAME_LENGTH:
        return (False, f"Hostname too long: {len(hostname)} chars (max {MAX_HOSTNAME_LENGTH} per RFC 1035)")

    for label in hostname.rstrip(".").split("."):
        if not label:
            return (False, "Empty label in hostname")
        if len(label) > MAX_LABEL_LENGTH:
            return (False, f"Label '{label}' too long: {len(label)} chars (max {MAX_LABEL_LENGTH} per RFC 1035)")
        if not VALID_LABEL_PATTERN.match(label):
            return (False, f"Label '{label}' does not meet RFC 1123 requirements")

    return (True, None)


def validate_ip(ip: str) -> bool:
    """Validate an IPv4 or IPv6 address"""
    try:
        ipaddress.ip_address(ip)
    except ValueError:
        return False
    return True


def is_loopback_host(host: str) -> bool:
    """True for ``localhost`` and loopback IPs (127.0.0.0/8, ::1)"""
    if host.lower() == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False
