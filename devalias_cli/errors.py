"""
Error types for devalias.

Every failure the control operations can report derives from DevaliasError,
so callers (the CLI included) can catch one type and print a single line.

Categories:
- ConfigError: bad upstream/alias syntax, document generation failures
- HostsError: the hosts file could not be read or written
- DaemonStateError: precondition violations ("already running")
- TransportError: the admin API is unreachable or rejected a request
- LifecycleError: spawning or tracking the daemon process failed
- EngineError: the caddy binary is missing or exited unexpectedly
"""


class DevaliasError(Exception):
    """Base class for all devalias failures."""


class ConfigError(DevaliasError):
    """Configuration could not be parsed or turned into a Caddy document."""


class HostsError(DevaliasError):
    """The hosts table mutator failed."""


class DaemonStateError(DevaliasError):
    """The daemon is not in the state the operation requires."""


class AlreadyRunningError(DaemonStateError):
    def __init__(self, pid: int | None = None):
        self.pid = pid
        suffix = f" (PID {pid})" if pid else ""
        super().__init__(f"daemon is already running{suffix}")


class TransportError(DevaliasError):
    """A request to the Caddy admin API failed."""


class DaemonNotReachableError(TransportError):
    def __init__(self, address: str, reason: str = ""):
        self.address = address
        message = f"daemon not reachable at {address}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AdminAPIError(TransportError):
    """The admin API answered with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class LifecycleError(DevaliasError):
    """Spawning, locking or handshaking with the daemon process failed."""


class EngineError(DevaliasError):
    """The Caddy engine could not be found, started or kept alive."""
