"""
Timeouts for everything that waits on another process.

The admin API, the Caddy readiness probe and the start handshake all use
these instead of hard-coded values, so a dead or wedged daemon surfaces as
an error rather than a hang.
"""

# Timeout constants (in seconds)

TIMEOUT_QUICK = 5
"""Quick operations: admin API requests, version checks."""

TIMEOUT_STANDARD = 15
"""Standard operations: Caddy startup, daemon handshake, sudo writes."""

TIMEOUT_LONG = 30
"""Long operations: a full config load on a busy Caddy instance."""

POLL_INTERVAL = 0.1
"""Sleep between readiness probes."""


TIMEOUTS = {
    # Admin API
    "admin_stop": TIMEOUT_QUICK,
    "admin_load": TIMEOUT_LONG,
    "admin_probe": 1.0,
    # Process lifecycle
    "caddy_ready": TIMEOUT_STANDARD,
    "caddy_stop": TIMEOUT_QUICK,
    "daemon_ready": TIMEOUT_STANDARD + TIMEOUT_QUICK,
    # Hosts file
    "sudo": TIMEOUT_LONG,
}


def get_timeout(operation: str, default: float = TIMEOUT_STANDARD) -> float:
    """
    Get the timeout for a named operation.

    Examples:
        >>> get_timeout("admin_stop")
        5
        >>> get_timeout("unknown_operation")
        15
    """
    return TIMEOUTS.get(operation, default)
