"""
Caddy engine integration.

- find_caddy_executable(): locate the caddy binary
- AdminClient: the loopback admin API (/load, /stop, /config/)
- CaddyEngine: a process-local Caddy started with a given JSON document
"""

import logging
import os
import shutil
import subprocess
import time
from pathlib import Path

import httpx

from .errors import AdminAPIError, DaemonNotReachableError, EngineError
from .platform import IS_WINDOWS, ensure_devalias_dir
from .timeouts import POLL_INTERVAL, get_timeout

logger = logging.getLogger("devalias.engine")


def find_caddy_executable() -> str | None:
    """Find the Caddy executable (DEVALIAS_CADDY, PATH, then common locations)."""
    env_path = os.getenv("DEVALIAS_CADDY", "").strip()
    if env_path:
        return env_path if Path(env_path).exists() else None

    cmd = shutil.which("caddy")
    if cmd:
        return cmd

    if IS_WINDOWS:
        base = Path(os.environ.get("LOCALAPPDATA", "")) / "Microsoft" / "WinGet" / "Packages"
        if base.exists():
            for path in base.glob("CaddyServer.Caddy*\\caddy.exe"):
                return str(path)
        common_paths = [
            Path("C:/Program Files/Caddy/caddy.exe"),
            Path("C:/Caddy/caddy.exe"),
        ]
    else:
        common_paths = [
            Path("/usr/local/bin/caddy"),
            Path("/usr/bin/caddy"),
            Path("/opt/homebrew/bin/caddy"),
            Path.home() / ".local" / "bin" / "caddy",
        ]
    for path in common_paths:
        if path.exists():
            return str(path)

    return None


class AdminClient:
    """Client for Caddy's admin API at a host:port address."""

    def __init__(self, address: str, transport: httpx.BaseTransport | None = None):
        self.address = address
        self.base_url = f"http://{address}"
        self._transport = transport

    def request(
        self,
        method: str,
        uri: str,
        *,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """
        Send one request; no retries.

        Raises:
            DaemonNotReachableError: nothing answered at the address
            AdminAPIError: the API answered with an error status
        """
        # Caddy rejects admin requests whose Origin does not match the listener
        request_headers = {"Origin": self.base_url}
        if headers:
            request_headers.update(headers)

        timeout = get_timeout("admin_stop") if timeout is None else timeout
        try:
            with httpx.Client(base_url=self.base_url, timeout=timeout, transport=self._transport) as client:
                response = client.request(method, uri, content=content, headers=request_headers)
        except httpx.ConnectError as e:
            raise DaemonNotReachableError(self.address, "connection refused") from e
        except httpx.TimeoutException as e:
            raise DaemonNotReachableError(self.address, f"timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise DaemonNotReachableError(self.address, str(e)) from e

        if response.status_code >= 400:
            detail = response.text.strip() or response.reason_phrase
            raise AdminAPIError(
                f"{method} {uri}: HTTP {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        return response

    def load(self, document: bytes) -> httpx.Response:
        """Replace the running configuration, bypassing any cached config."""
        return self.request(
            "POST",
            "/load",
            content=document,
            headers={"Content-Type": "application/json", "Cache-Control": "must-revalidate"},
            timeout=get_timeout("admin_load"),
        )

    def stop(self) -> httpx.Response:
        return self.request("POST", "/stop", timeout=get_timeout("admin_stop"))

    def is_alive(self) -> bool:
        try:
            self.request("GET", "/config/", timeout=get_timeout("admin_probe"))
        except (DaemonNotReachableError, AdminAPIError):
            return False
        return True


class CaddyEngine:
    """
    A Caddy process owned by the current process.

    load() writes the document to disk, starts ``caddy run`` against it and
    waits for the admin API to answer; wait() blocks until Caddy exits.
    """

    def __init__(self, executable: str | None = None, config_path: Path | None = None):
        self.executable = executable or find_caddy_executable()
        self.config_path = config_path or ensure_devalias_dir() / "caddy.json"
        self.process: subprocess.Popen | None = None

    def load(self, document: bytes, admin_address: str) -> None:
        if not self.executable:
            raise EngineError("Caddy not found. Install it or set DEVALIAS_CADDY")
        if self.process is not None and self.process.poll() is None:
            raise EngineError(f"Caddy is already running (PID {self.process.pid})")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_bytes(document)

        admin = AdminClient(admin_address)
        if admin.is_alive():
            raise EngineError(f"another Caddy instance already answers on {admin_address}")

        try:
            self.process = subprocess.Popen(
                [self.executable, "run", "--config", str(self.config_path)],
                stdin=subprocess.DEVNULL,
            )
        except OSError as e:
            raise EngineError(f"failed to start Caddy: {e}") from e
        logger.info("Started Caddy (PID %d) with %s", self.process.pid, self.config_path)

        deadline = time.monotonic() + get_timeout("caddy_ready")
        while time.monotonic() < deadline:
            code = self.process.poll()
            if code is not None:
                raise EngineError(f"Caddy exited during startup with code {code}")
            if admin.is_alive():
                logger.info("Caddy admin API is up at %s", admin_address)
                return
            time.sleep(POLL_INTERVAL)

        self.terminate()
        raise EngineError(f"Caddy did not answer on {admin_address} within {get_timeout('caddy_ready')}s")

    def wait(self) -> int:
        """Block until Caddy exits; returns its exit code."""
        if self.process is None:
            raise EngineError("Caddy is not running")
        code = self.process.wait()
        logger.info("Caddy exited with code %d", code)
        return code

    def terminate(self) -> None:
        if self.process is None or self.process.poll() is not None:
            return
        self.process.terminate()
        try:
            self.process.wait(timeout=get_timeout("caddy_stop"))
        except subprocess.TimeoutExpired:
            logger.warning("Caddy did not exit after SIGTERM, killing PID %d", self.process.pid)
            self.process.kill()
            self.process.wait()
