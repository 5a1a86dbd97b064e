"""
Caddy JSON configuration generation.

Every alias becomes a host-matched route on a loopback server whose handler
reverse-proxies to the alias's upstream. Servers are grouped by listen port
(explicit alias port, else 80 for http:// aliases and 443 otherwise).
"""

import json
import logging
from typing import Any

from .address import LOOPBACK_IP
from .config import Config, determine_api_address
from .errors import ConfigError

logger = logging.getLogger("devalias.caddy")

HTTP_PORT = 80
HTTPS_PORT = 443


def _listen_port(scheme: str, port: str) -> int:
    if port:
        return int(port)
    return HTTP_PORT if scheme == "http" else HTTPS_PORT


def _alias_scheme(scheme: str, port: int) -> str:
    if scheme:
        return scheme
    return "http" if port == HTTP_PORT else "https"


def _proxy_handler(upstream, warnings: list[str], alias: str) -> dict[str, Any]:
    if upstream.path:
        warnings.append(f"{alias}: upstream path '{upstream.path}' is ignored")

    port = upstream.port
    if not port:
        port = str(HTTPS_PORT if upstream.scheme == "https" else HTTP_PORT)
        warnings.append(f"{alias}: upstream '{upstream.original}' has no port, using {port}")

    handler: dict[str, Any] = {
        "handler": "reverse_proxy",
        "upstreams": [{"dial": upstream.join_host_port(port)}],
    }
    if upstream.scheme == "https":
        handler["transport"] = {"protocol": "http", "tls": {}}
    return handler


def build_caddy_config(cfg: Config) -> tuple[bytes, list[str]]:
    """
    Build the Caddy JSON document for ``cfg``.

    Returns (document bytes, warnings). Raises ConfigError on bad directives.
    """
    warnings: list[str] = []
    # host -> (listen port, scheme, route); later duplicates replace earlier ones
    routes_by_host: dict[str, tuple[int, str, dict[str, Any]]] = {}

    for directive in cfg.directives:
        alias = directive.alias_address()
        upstream = directive.upstream_address()

        if alias.path:
            warnings.append(f"{directive.alias}: alias path '{alias.path}' is ignored")

        port = _listen_port(alias.scheme, alias.port)
        scheme = _alias_scheme(alias.scheme, port)
        host = alias.host.lower()
        if host in routes_by_host:
            warnings.append(f"{directive.alias}: duplicate alias for {host}, the last one wins")

        route = {
            "match": [{"host": [host]}],
            "handle": [_proxy_handler(upstream, warnings, directive.alias)],
            "terminal": True,
        }
        routes_by_host[host] = (port, scheme, route)

    servers: dict[str, dict[str, Any]] = {}
    tls_subjects: list[str] = []
    for host, (port, scheme, route) in routes_by_host.items():
        name = f"devalias_{port}"
        server = servers.setdefault(name, {"listen": [f"{LOOPBACK_IP}:{port}"], "routes": [], "_schemes": set()})
        server["routes"].append(route)
        server["_schemes"].add(scheme)
        if scheme == "https":
            tls_subjects.append(host)

    for server in servers.values():
        if server.pop("_schemes") == {"http"}:
            server["automatic_https"] = {"disable": True}

    apps: dict[str, Any] = {}
    if servers:
        apps["http"] = {"servers": dict(sorted(servers.items(), key=lambda item: int(item[0].rsplit("_", 1)[1])))}
    if tls_subjects:
        apps["tls"] = {
            "automation": {
                "policies": [
                    {
                        "subjects": sorted(tls_subjects),
                        "issuers": [{"module": "internal"}],
                    }
                ]
            }
        }

    document = {"admin": {"listen": determine_api_address(cfg)}, "apps": apps}
    try:
        payload = json.dumps(document, indent=2).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise ConfigError(f"failed to encode caddy config: {e}") from e

    for warning in warnings:
        logger.warning("caddy config: %s", warning)
    return payload, warnings
