"""
Hosts file management.

devalias owns one marked block in the hosts file and rewrites it as a whole,
so aliases removed from the config never linger:

    # devalias: begin
    127.0.0.1 api.local
    # devalias: end

Usage is transactional: clear() -> set(ip, host)... -> apply().
"""

import logging
import os
import subprocess
import tempfile
from pathlib import Path

from .address import validate_hostname, validate_ip
from .errors import HostsError
from .platform import IS_WINDOWS, can_sudo
from .timeouts import get_timeout

logger = logging.getLogger("devalias.hosts")

MARKER_BEGIN = "# devalias: begin"
MARKER_END = "# devalias: end"


def hosts_path() -> Path:
    """Get the system hosts file path (DEVALIAS_HOSTS_FILE overrides)"""
    env_path = os.getenv("DEVALIAS_HOSTS_FILE", "").strip()
    if env_path:
        return Path(env_path)
    if IS_WINDOWS:
        system_root = os.environ.get("SystemRoot", r"C:\Windows")
        return Path(system_root) / "System32" / "drivers" / "etc" / "hosts"
    return Path("/etc/hosts")


def strip_block(content: str) -> list[str]:
    """
    Return the hosts file lines with the devalias block removed.

    A begin marker without a matching end marker only loses the marker line;
    the lines after it are not ours to delete.
    """
    result: list[str] = []
    pending: list[str] | None = None
    for line in content.splitlines():
        stripped = line.strip()
        if pending is None:
            if stripped == MARKER_BEGIN:
                pending = []
            else:
                result.append(line)
        elif stripped == MARKER_END:
            pending = None
        elif stripped == MARKER_BEGIN:
            result.extend(pending)
            pending = []
        else:
            pending.append(line)
    if pending is not None:
        logger.warning("Unterminated devalias block in hosts file, keeping its lines")
        result.extend(pending)
    return result


def parse_block(content: str) -> list[tuple[str, str]]:
    """Return (ip, hostname) pairs inside terminated devalias blocks."""
    entries: list[tuple[str, str]] = []
    pending: list[tuple[str, str]] | None = None
    for line in content.splitlines():
        stripped = line.strip()
        if stripped == MARKER_BEGIN:
            pending = []
        elif stripped == MARKER_END:
            if pending is not None:
                entries.extend(pending)
            pending = None
        elif pending is not None and stripped and not stripped.startswith("#"):
            parts = stripped.split()
            pending.extend((parts[0], hostname) for hostname in parts[1:])
    return entries


def render_block(entries: list[tuple[str, str]]) -> list[str]:
    if not entries:
        return []
    return [MARKER_BEGIN, *(f"{ip} {hostname}" for ip, hostname in entries), MARKER_END]


class HostsController:
    """
    Transactional editor for the devalias block of a hosts file.

    Staged entries live in memory until apply(); nothing touches the file
    before that.
    """

    def __init__(self, path: Path | None = None, use_sudo: bool | None = None):
        self.path = Path(path) if path else hosts_path()
        self.use_sudo = can_sudo() if use_sudo is None else use_sudo
        self._staged: list[tuple[str, str]] = []

    @property
    def staged(self) -> list[tuple[str, str]]:
        return list(self._staged)

    def clear(self) -> None:
        """Drop every binding owned by devalias (takes effect on apply)."""
        self._staged = []

    def set(self, ip: str, hostname: str) -> None:
        """Stage an ip -> hostname binding."""
        if not validate_ip(ip):
            raise HostsError(f"invalid IP address: {ip!r}")
        valid, reason = validate_hostname(hostname)
        if not valid:
            raise HostsError(f"invalid hostname {hostname!r}: {reason}")
        hostname = hostname.lower()
        self._staged = [(i, h) for i, h in self._staged if h != hostname]
        self._staged.append((ip, hostname))

    def entries(self) -> dict[str, str]:
        """Committed hostname -> ip bindings currently in the file."""
        return {hostname: ip for ip, hostname in parse_block(self._read())}

    def apply(self) -> bool:
        """
        Write the staged bindings to the hosts file.

        Returns True if the file changed.
        """
        content = self._read()
        lines = strip_block(content)
        while lines and not lines[-1].strip():
            lines.pop()
        block = render_block(self._staged)
        if block:
            if lines:
                lines.append("")
            lines.extend(block)
        new_content = "\n".join(lines) + "\n" if lines else ""

        if new_content == content:
            logger.debug("Hosts file %s already up to date", self.path)
            return False

        self._backup(content)
        self._write(new_content)
        logger.info("Updated %s with %d devalias entries", self.path, len(self._staged))
        return True

    def _read(self) -> str:
        if not self.path.exists():
            return ""
        try:
            return self.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise HostsError(f"failed to read hosts file {self.path}: {e}") from e

    def _backup(self, content: str) -> None:
        backup_path = self.path.with_name(self.path.name + ".devalias.bak")
        try:
            backup_path.write_text(content, encoding="utf-8")
            logger.debug("Created hosts backup: %s", backup_path)
        except OSError as e:
            # Not fatal: a system hosts file directory is usually root-owned
            logger.debug("Could not back up hosts file to %s: %s", backup_path, e)

    def _write(self, content: str) -> None:
        try:
            self._write_direct(content)
            return
        except PermissionError as e:
            if not self.use_sudo:
                raise HostsError(
                    f"permission denied writing {self.path}; run as administrator/root"
                ) from e
        except OSError as e:
            raise HostsError(f"failed to write hosts file {self.path}: {e}") from e
        self._write_sudo(content)

    def _write_direct(self, content: str) -> None:
        # Replace in place (not rename) to keep the hosts file's owner, mode and inode
        with open(self.path, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(content)

    def _write_sudo(self, content: str) -> None:
        logger.info("Hosts file %s is not writable, using sudo", self.path)
        fd, tmp_name = tempfile.mkstemp(prefix="devalias-hosts-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
                fh.write(content)
            result = subprocess.run(
                ["sudo", "cp", tmp_name, str(self.path)],
                capture_output=True,
                text=True,
                check=False,
                timeout=get_timeout("sudo"),
            )
        except subprocess.TimeoutExpired as e:
            raise HostsError(f"sudo timed out writing {self.path}") from e
        except OSError as e:
            raise HostsError(f"failed to run sudo for {self.path}: {e}") from e
        finally:
            Path(tmp_name).unlink(missing_ok=True)

        if result.returncode != 0:
            error_msg = result.stderr.strip() if result.stderr else "Unknown error"
            raise HostsError(f"sudo failed writing {self.path}: {error_msg}")
