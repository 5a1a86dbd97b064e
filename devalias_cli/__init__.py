"""
devalias - friendly local domain names for local and remote upstreams.
Keeps the hosts file and a Caddy reverse proxy in step with one config.
"""

__version__ = "0.1.0"

from .config import Config, Directive
from .control import apply_config, determine_api_address, reload, run, start, status, stop
from .daemon import DaemonContext, daemon_context
from .hosts import HostsController

__all__ = [
    "Config",
    "Directive",
    "HostsController",
    "DaemonContext",
    "daemon_context",
    "apply_config",
    "determine_api_address",
    "run",
    "start",
    "status",
    "stop",
    "reload",
    "__version__",
]
