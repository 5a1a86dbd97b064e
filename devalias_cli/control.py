"""
Control protocol: run, start, stop, status and reload.

Each operation reconciles the hosts file with the config before anything is
sent to Caddy, so the hosts table and the proxy config never drift apart:

    apply_config (hosts)  ->  to_caddy_json  ->  load / POST /load

Daemon state is always read from the PID file (see daemon.py).
"""

import logging
import signal
import threading
import time
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path

import psutil

from .address import LOOPBACK_IP
from .config import Config, determine_api_address
from .daemon import DaemonContext, daemon_context
from .engine import AdminClient, CaddyEngine
from .errors import AdminAPIError, AlreadyRunningError, ConfigError, EngineError
from .hosts import HostsController
from .timeouts import POLL_INTERVAL, get_timeout

logger = logging.getLogger("devalias.control")

SNAPSHOT_FILE_NAME = "daemon-config.yml"


def apply_config(hosts, cfg: Config) -> None:
    """
    Reconcile the hosts table with ``cfg``.

    Every alias is bound to the loopback address. All directives are parsed
    before anything is staged, and nothing is committed unless all of them
    are valid.
    """
    hosts.clear()

    hostnames = []
    for directive in cfg.directives:
        alias = directive.alias_address()
        directive.upstream_address()
        hostnames.append(alias.host)

    for hostname in hostnames:
        hosts.set(LOOPBACK_IP, hostname)
    hosts.apply()
    logger.info("Reconciled %d aliases into the hosts table", len(hostnames))


@contextmanager
def _forward_signals(engine: CaddyEngine, stopping: threading.Event):
    """Turn SIGTERM/SIGINT into a Caddy shutdown while run() blocks."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, _frame):
        logger.info("Received signal %d, stopping Caddy", signum)
        stopping.set()
        if engine.process is not None and engine.process.poll() is None:
            engine.process.terminate()

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGTERM, signal.SIGINT)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def run(
    hosts,
    cfg: Config,
    engine: CaddyEngine | None = None,
    on_ready: Callable[[], None] | None = None,
) -> None:
    """
    Reconcile, start a fresh Caddy with the config, and block until it exits.

    ``on_ready`` is called once Caddy's admin API answers.
    """
    apply_config(hosts, cfg)
    document, _warnings = cfg.to_caddy_json()
    address = determine_api_address(cfg)

    engine = engine or CaddyEngine()
    stopping = threading.Event()
    with _forward_signals(engine, stopping):
        try:
            engine.load(document, address)
            if on_ready is not None:
                on_ready()
            code = engine.wait()
        finally:
            engine.terminate()

    if code != 0 and not stopping.is_set():
        raise EngineError(f"Caddy exited with code {code}")
    logger.info("Run finished")


def status(context: DaemonContext | None = None) -> psutil.Process | None:
    """The running daemon process, or None."""
    context = context or daemon_context()
    return context.search()


def start(hosts, cfg: Config, context: DaemonContext | None = None) -> int:
    """
    Reconcile and launch the daemon in the background.

    Returns the daemon PID once it reports that Caddy loaded the config.
    """
    context = context or daemon_context()
    existing = status(context)
    if existing is not None:
        raise AlreadyRunningError(existing.pid)

    apply_config(hosts, cfg)
    # Fail on document errors here rather than inside the detached child
    cfg.to_caddy_json()

    snapshot = Config(directives=list(cfg.directives), admin=cfg.admin)
    snapshot_path = snapshot.save(context.work_dir / SNAPSHOT_FILE_NAME)

    args = ["_run", "--config", str(snapshot_path)]
    hosts_file = getattr(hosts, "path", None)
    if hosts_file is not None:
        args.extend(["--hosts-file", str(hosts_file)])

    proc = context.reborn(args)
    pid = context.wait_ready(proc)
    logger.info("Daemon started (PID %d)", pid)
    return pid


def serve_daemon(config_path: Path, hosts_file: Path | None = None, context: DaemonContext | None = None) -> None:
    """Daemon-side entry point: own the PID file for the lifetime of run()."""
    context = context or daemon_context()
    context.acquire()
    try:
        cfg = Config.load(config_path)
        run(HostsController(hosts_file), cfg, on_ready=context.mark_ready)
    finally:
        context.release()


def stop(cfg: Config, context: DaemonContext | None = None) -> None:
    """
    Ask the running Caddy to stop via the admin API.

    The daemon releases its own PID file when Caddy exits; this only waits
    (bounded) for that to happen.
    """
    try:
        address = determine_api_address(cfg)
    except ConfigError as e:
        raise ConfigError(f"could not determine api address: {e}") from e

    try:
        AdminClient(address).stop()
    except AdminAPIError as e:
        raise AdminAPIError(f"request to /stop failed: {e}", e.status_code) from e
    logger.info("Sent stop request to %s", address)

    context = context or daemon_context()
    deadline = time.monotonic() + get_timeout("caddy_stop")
    while time.monotonic() < deadline:
        if context.search() is None:
            return
        time.sleep(POLL_INTERVAL)
    logger.warning("Daemon still present after stop request; it may take a moment to exit")


def reload(hosts, cfg: Config) -> None:
    """Reconcile and hot-swap the running Caddy's configuration."""
    apply_config(hosts, cfg)
    document, _warnings = cfg.to_caddy_json()

    try:
        address = determine_api_address(cfg)
    except ConfigError as e:
        raise ConfigError(f"could not determine api address: {e}") from e

    try:
        AdminClient(address).load(document)
    except AdminAPIError as e:
        raise AdminAPIError(f"failed to send config to daemon: {e}", e.status_code) from e
    logger.info("Reloaded config on %s", address)
