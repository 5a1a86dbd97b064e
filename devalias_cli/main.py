"""Main entry point for devalias CLI"""

import argparse
import logging
import sys
from pathlib import Path

from . import __version__, control
from .config import Config
from .errors import AlreadyRunningError, DaemonNotReachableError, DevaliasError
from .hosts import HostsController
from .output import console, print_aliases, print_error, print_info, print_success, print_warning
from .structured_logging import setup_logging

logger = logging.getLogger("devalias.cli")


def _load(args, create: bool = False) -> Config:
    if create and args.config and not Path(args.config).exists():
        return Config(path=Path(args.config))
    return Config.load(args.config)


def _hosts(args) -> HostsController:
    return HostsController(args.hosts_file)


def cmd_run(args) -> bool:
    cfg = _load(args)
    print_info(f"Serving {len(cfg.directives)} aliases (Ctrl+C to stop)")
    control.run(_hosts(args), cfg)
    return True


def cmd_start(args) -> bool:
    cfg = _load(args)
    try:
        pid = control.start(_hosts(args), cfg)
    except AlreadyRunningError as e:
        print_warning(str(e))
        return False
    print_success(f"Daemon started (PID {pid})")
    return True


def cmd_stop(args) -> bool:
    try:
        control.stop(_load(args))
    except DaemonNotReachableError as e:
        print_error(str(e))
        print_info("Is the daemon running? Check with 'devalias status'")
        return False
    print_success("Daemon stopped")
    return True


def cmd_status(args) -> bool:
    proc = control.status()
    if proc is None:
        print_info("Daemon is not running")
        return False
    print_success(f"Daemon is running (PID {proc.pid})")
    return True


def cmd_reload(args) -> bool:
    control.reload(_hosts(args), _load(args))
    print_success("Configuration reloaded")
    return True


def cmd_list(args) -> bool:
    cfg = _load(args)
    entries = _hosts(args).entries()
    print_aliases(cfg.directives, entries)
    if cfg.path:
        console.print(f"[dim]{cfg.path}[/dim]")
    return True


def cmd_set(args) -> bool:
    cfg = _load(args, create=True)
    directive = cfg.set(args.alias, args.upstream)
    path = cfg.save()
    print_success(f"{directive.alias} -> {directive.upstream} ({path})")
    print_info("Run 'devalias reload' to apply to a running daemon")
    return True


def cmd_rm(args) -> bool:
    cfg = _load(args)
    if not cfg.remove(args.alias):
        print_warning(f"No alias named {args.alias}")
        return False
    cfg.save()
    print_success(f"Removed {args.alias}")
    return True


def cmd_clear(args) -> bool:
    cfg = _load(args)
    count = len(cfg.directives)
    cfg.clear()
    cfg.save()
    print_success(f"Removed {count} aliases")
    return True


def cmd_hosts(args) -> bool:
    hosts = _hosts(args)
    entries = hosts.entries()
    if not entries:
        print_info(f"No devalias entries in {hosts.path}")
        return True
    for hostname, ip in entries.items():
        console.print(f"{ip} {hostname}", highlight=False)
    return True


def cmd_debug_config(args) -> bool:
    cfg = _load(args)
    document, warnings = cfg.to_caddy_json()
    for warning in warnings:
        print_warning(warning)
    console.print_json(document.decode("utf-8"))
    return True


def cmd_daemon_run(args) -> bool:
    hosts_file = Path(args.hosts_file) if args.hosts_file else None
    control.serve_daemon(Path(args.config), hosts_file)
    return True


COMMANDS = {
    "run": cmd_run,
    "start": cmd_start,
    "stop": cmd_stop,
    "status": cmd_status,
    "reload": cmd_reload,
    "list": cmd_list,
    "set": cmd_set,
    "rm": cmd_rm,
    "clear": cmd_clear,
    "hosts": cmd_hosts,
    "debug-config": cmd_debug_config,
    "_run": cmd_daemon_run,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devalias",
        description="devalias - friendly local domains reverse-proxied by Caddy",
    )
    parser.add_argument("--version", action="version", version=f"devalias {__version__}")
    parser.add_argument("-c", "--config", help="Config file (default: discovered .devalias.yml)")
    parser.add_argument("--hosts-file", help="Hosts file to manage (default: system hosts file)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.add_parser("run", help="Apply config and serve in the foreground")
    subparsers.add_parser("start", help="Apply config and start the background daemon")
    subparsers.add_parser("stop", help="Stop the background daemon")
    subparsers.add_parser("status", help="Show whether the daemon is running")
    subparsers.add_parser("reload", help="Apply config to the running daemon")
    subparsers.add_parser("list", help="List configured aliases")

    set_parser = subparsers.add_parser("set", help="Add or update an alias")
    set_parser.add_argument("alias", help="Alias, e.g. api.local or https://api.local")
    set_parser.add_argument("upstream", help="Upstream, e.g. 4000 or 127.0.0.1:4000")

    rm_parser = subparsers.add_parser("rm", help="Remove an alias")
    rm_parser.add_argument("alias")

    subparsers.add_parser("clear", help="Remove all aliases")
    subparsers.add_parser("hosts", help="Show the devalias entries in the hosts file")
    subparsers.add_parser("debug-config", help="Print the generated Caddy JSON config")

    # Internal: the detached daemon started by 'start'
    daemon_parser = subparsers.add_parser("_run")
    daemon_parser.add_argument("--config", dest="config", required=True)
    daemon_parser.add_argument("--hosts-file", dest="hosts_file")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "_run":
        setup_logging(level="INFO")
    elif args.verbose:
        setup_logging(level="DEBUG")
    else:
        setup_logging()

    try:
        ok = COMMANDS[args.command](args)
    except DevaliasError as e:
        logger.debug("%s failed", args.command, exc_info=True)
        print_error(str(e))
        return 1
    except KeyboardInterrupt:
        print()
        return 130
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
