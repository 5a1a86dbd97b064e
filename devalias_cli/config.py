"""Alias configuration: directives, YAML loading/saving and config discovery"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .address import Address, is_loopback_host, normalize_upstream, parse_address, validate_hostname
from .errors import ConfigError
from .platform import get_devalias_dir

logger = logging.getLogger("devalias.config")

CONFIG_FILENAMES = (".devalias.yml", ".devalias.yaml")
DEFAULT_ADMIN_ADDRESS = "localhost:2019"

# Search up to 10 parent directories for a project config
MAX_SEARCH_DEPTH = 10


@dataclass(frozen=True)
class Directive:
    """One alias -> upstream mapping."""

    alias: str
    upstream: str

    def alias_address(self) -> Address:
        """Parse the alias; its host is what the hosts file binds to loopback."""
        address = parse_address(self.alias)
        if not address.host:
            raise ConfigError(f"alias '{self.alias}' has no hostname")
        valid, reason = validate_hostname(address.host)
        if not valid:
            raise ConfigError(f"alias '{self.alias}': {reason}")
        return address

    def upstream_address(self) -> Address:
        """Parse the upstream; raises ConfigError when it has no host."""
        address = parse_address(self.upstream)
        if not address.host:
            raise ConfigError(f"upstream '{self.upstream}' for alias '{self.alias}' has no host")
        return address


@dataclass
class Config:
    """
    The desired set of aliases.

    Schema (YAML):
        admin: str            # Caddy admin API address (optional)
        aliases:              # alias -> upstream, in order
          api.local: 127.0.0.1:4000

    A flat ``alias: upstream`` mapping is accepted as well.
    """

    directives: list[Directive] = field(default_factory=list)
    admin: str | None = None
    path: Path | None = None

    # ─────────────────────────────────────────────────────────────
    # Loading / saving
    # ─────────────────────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: dict | None, path: Path | None = None) -> "Config":
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"config must be a mapping, got {type(data).__name__}")

        if "aliases" in data or "admin" in data:
            aliases = data.get("aliases") or {}
            admin = data.get("admin")
        else:
            aliases = data
            admin = None

        if not isinstance(aliases, dict):
            raise ConfigError("'aliases' must be a mapping of alias to upstream")
        if admin is not None and not isinstance(admin, str):
            raise ConfigError("'admin' must be a host:port string")

        directives = [Directive(str(alias).strip(), normalize_upstream(upstream)) for alias, upstream in aliases.items()]
        return cls(directives=directives, admin=admin or None, path=path)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load config from ``path`` or the discovered config file (empty if none exists)."""
        config_path = Path(path) if path else find_config_path()
        if not config_path.exists():
            if path:
                raise ConfigError(f"config file not found: {config_path}")
            logger.debug("No config at %s, starting empty", config_path)
            return cls(path=config_path)

        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"failed to load {config_path}: {e}") from e

        config = cls.from_dict(data, path=config_path)
        logger.debug("Loaded %d aliases from %s", len(config.directives), config_path)
        return config

    def to_dict(self) -> dict:
        data: dict = {}
        if self.admin:
            data["admin"] = self.admin
        data["aliases"] = {d.alias: d.upstream for d in self.directives}
        return data

    def save(self, path: Path | str | None = None) -> Path:
        """Save config atomically; returns the path written."""
        save_path = Path(path) if path else (self.path or find_config_path())
        try:
            save_path.parent.mkdir(parents=True, exist_ok=True)
            tmp = save_path.with_suffix(".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
            tmp.replace(save_path)
        except OSError as e:
            raise ConfigError(f"failed to save config to {save_path}: {e}") from e
        self.path = save_path
        return save_path

    # ─────────────────────────────────────────────────────────────
    # Directives
    # ─────────────────────────────────────────────────────────────

    def get(self, alias: str) -> Directive | None:
        for directive in self.directives:
            if directive.alias == alias:
                return directive
        return None

    def set(self, alias: str, upstream) -> Directive:
        """Add or replace an alias, validating both sides first."""
        directive = Directive(alias.strip(), normalize_upstream(upstream))
        directive.alias_address()
        directive.upstream_address()
        for i, existing in enumerate(self.directives):
            if existing.alias == directive.alias:
                self.directives[i] = directive
                break
        else:
            self.directives.append(directive)
        return directive

    def remove(self, alias: str) -> bool:
        before = len(self.directives)
        self.directives = [d for d in self.directives if d.alias != alias]
        return len(self.directives) != before

    def clear(self) -> None:
        self.directives = []

    # ─────────────────────────────────────────────────────────────
    # Caddy
    # ─────────────────────────────────────────────────────────────

    @property
    def admin_address(self) -> str:
        return self.admin or DEFAULT_ADMIN_ADDRESS

    def to_caddy_json(self) -> tuple[bytes, list[str]]:
        """
        Build Caddy's JSON configuration document.

        Returns (document bytes, warnings). Raises ConfigError.
        """
        from .caddy_config import build_caddy_config

        return build_caddy_config(self)


def determine_api_address(cfg: Config) -> str:
    """
    Admin API address for ``cfg``: explicit ``admin`` or Caddy's default.

    Always a loopback host:port; an empty host becomes ``localhost``. This is
    both what Caddy listens on and what stop/reload connect to.
    """
    address = parse_address(cfg.admin_address)
    if address.scheme or address.path or not address.port:
        raise ConfigError(f"invalid admin address '{cfg.admin_address}': expected host:port")
    host = address.host or "localhost"
    if not is_loopback_host(host):
        raise ConfigError(f"admin address '{cfg.admin_address}' must be on loopback")
    return Address(original=address.original, host=host, port=address.port).join_host_port()


def find_config_path(start_path: Path | None = None) -> Path:
    """
    Locate the config file.

    Priority:
    1. DEVALIAS_CONFIG environment variable
    2. .devalias.yml / .devalias.yaml in the working directory or a parent
    3. ~/.devalias/config.yml
    """
    env_path = os.getenv("DEVALIAS_CONFIG", "").strip()
    if env_path:
        return Path(env_path).expanduser().resolve()

    current = Path(start_path or os.getcwd()).resolve()
    for _ in range(MAX_SEARCH_DEPTH):
        for filename in CONFIG_FILENAMES:
            candidate = current / filename
            if candidate.exists():
                return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return get_devalias_dir() / "config.yml"
