"""
Daemon identity and process lifecycle.

The PID file is the only record of whether a daemon exists; every CLI
invocation asks it afresh instead of trusting in-memory state.

PID file format:
    <pid>
    ready          # second line, written once Caddy has loaded the config
"""

import atexit
import logging
import os
import subprocess
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

import psutil

from .errors import AlreadyRunningError, LifecycleError
from .platform import IS_WINDOWS, get_devalias_dir
from .timeouts import POLL_INTERVAL, get_timeout

logger = logging.getLogger("devalias.daemon")

PID_FILE_NAME = "devalias.pid"
PID_FILE_PERM = 0o644
DAEMON_UMASK = 0o027
LOG_FILE_NAME = "daemon.log"

# Slack between a process's start time and the PID file's mtime. A daemon
# that died and whose PID was handed to a new process within this window
# still reads as running.
CREATE_TIME_TOLERANCE = 1.0


@dataclass(frozen=True)
class PidRecord:
    pid: int
    ready: bool
    mtime: float


@dataclass(frozen=True)
class DaemonContext:
    """Descriptor of the single logical daemon instance."""

    pid_file_name: str = PID_FILE_NAME
    pid_file_perm: int = PID_FILE_PERM
    work_dir: Path = field(default_factory=get_devalias_dir)
    umask: int = DAEMON_UMASK

    @property
    def pid_path(self) -> Path:
        return self.work_dir / self.pid_file_name

    @property
    def log_path(self) -> Path:
        return self.work_dir / LOG_FILE_NAME

    # ─────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────

    def read(self) -> PidRecord | None:
        """Parse the PID file; None when missing or unreadable."""
        try:
            text = self.pid_path.read_text(encoding="ascii")
            mtime = self.pid_path.stat().st_mtime
        except (OSError, UnicodeDecodeError):
            return None
        lines = text.split()
        if not lines or not lines[0].isdigit():
            return None
        return PidRecord(pid=int(lines[0]), ready="ready" in lines[1:], mtime=mtime)

    def search(self) -> psutil.Process | None:
        """
        Find the live daemon process.

        A PID file naming a dead process, a zombie, or a process started after
        the file was written (PID reuse) counts as no daemon.
        """
        return self._live_process(self.read())

    def _live_process(self, record: PidRecord | None) -> psutil.Process | None:
        if record is None:
            return None
        try:
            proc = psutil.Process(record.pid)
            if proc.status() == psutil.STATUS_ZOMBIE:
                return None
            if proc.create_time() > record.mtime + CREATE_TIME_TOLERANCE:
                logger.debug("PID %d was reused, ignoring stale %s", record.pid, self.pid_path)
                return None
        except psutil.NoSuchProcess:
            return None
        except psutil.AccessDenied:
            # Exists but belongs to another user; still counts as running
            pass
        return proc

    # ─────────────────────────────────────────────────────────────
    # Ownership (called inside the daemon)
    # ─────────────────────────────────────────────────────────────

    def acquire(self) -> None:
        """
        Create the PID file for this process, exclusively.

        Raises:
            AlreadyRunningError: a live daemon owns the PID file
            LifecycleError: the file could not be created
        """
        self.work_dir.mkdir(parents=True, exist_ok=True)
        for _ in range(3):
            try:
                fd = os.open(self.pid_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, self.pid_file_perm)
            except FileExistsError:
                record = self.read()
                existing = self._live_process(record)
                if existing is not None:
                    raise AlreadyRunningError(existing.pid) from None
                self._remove_stale(record)
                continue
            except OSError as e:
                raise LifecycleError(f"failed to create PID file {self.pid_path}: {e}") from e

            with os.fdopen(fd, "w", encoding="ascii") as fh:
                fh.write(f"{os.getpid()}\n")
            atexit.register(self.release)
            logger.info("Acquired %s (PID %d)", self.pid_path, os.getpid())
            return

        raise LifecycleError(f"could not acquire PID file {self.pid_path}: contended")

    def mark_ready(self) -> None:
        """Record that this daemon finished loading its configuration."""
        tmp = self.pid_path.with_suffix(".tmp")
        try:
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, self.pid_file_perm)
            with os.fdopen(fd, "w", encoding="ascii") as fh:
                fh.write(f"{os.getpid()}\nready\n")
            tmp.replace(self.pid_path)
        except OSError as e:
            raise LifecycleError(f"failed to mark daemon ready in {self.pid_path}: {e}") from e
        logger.info("Daemon ready (PID %d)", os.getpid())

    def release(self) -> None:
        """Remove the PID file if this process owns it. Best effort."""
        record = self.read()
        if record is None or record.pid != os.getpid():
            return
        try:
            self.pid_path.unlink()
            logger.info("Released %s", self.pid_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove PID file %s: %s", self.pid_path, e)

    def _remove_stale(self, stale: PidRecord | None) -> None:
        """Unlink the PID file only if it still holds the record judged stale."""
        if stale is None:
            # Unparseable: a racing daemon may not have written its PID yet
            try:
                age = time.time() - self.pid_path.stat().st_mtime
            except FileNotFoundError:
                return
            except OSError as e:
                raise LifecycleError(f"failed to inspect PID file {self.pid_path}: {e}") from e
            if age < CREATE_TIME_TOLERANCE:
                time.sleep(POLL_INTERVAL)
                return
        elif self.read() != stale:
            logger.debug("PID file %s changed since it was judged stale", self.pid_path)
            return

        try:
            self.pid_path.unlink()
            logger.info("Removed stale PID file %s (PID %s)", self.pid_path, stale.pid if stale else "?")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise LifecycleError(f"failed to remove stale PID file {self.pid_path}: {e}") from e

    # ─────────────────────────────────────────────────────────────
    # Spawning (called by the parent)
    # ─────────────────────────────────────────────────────────────

    def reborn(self, args: list[str]) -> subprocess.Popen:
        """Spawn ``python -m devalias_cli <args>`` detached from this process."""
        self.work_dir.mkdir(parents=True, exist_ok=True)
        cmd = [sys.executable, "-m", "devalias_cli", *args]
        kwargs: dict = {
            "stdin": subprocess.DEVNULL,
            "stderr": subprocess.STDOUT,
            "cwd": str(self.work_dir),
            "close_fds": True,
        }
        if IS_WINDOWS:
            kwargs["creationflags"] = getattr(subprocess, "DETACHED_PROCESS", 0) | getattr(
                subprocess, "CREATE_NEW_PROCESS_GROUP", 0
            )
        else:
            kwargs["start_new_session"] = True
            kwargs["umask"] = self.umask

        try:
            with open(self.log_path, "ab") as log:
                proc = subprocess.Popen(cmd, stdout=log, **kwargs)
        except OSError as e:
            raise LifecycleError(f"failed to spawn daemon: {e}") from e
        logger.info("Spawned daemon (PID %d): %s", proc.pid, " ".join(cmd))
        return proc

    def wait_ready(self, proc: subprocess.Popen, timeout: float | None = None) -> int:
        """
        Wait until the spawned daemon reports ready in the PID file.

        Raises:
            LifecycleError: the child exited first or did not get ready in time
        """
        timeout = get_timeout("daemon_ready") if timeout is None else timeout
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            code = proc.poll()
            if code is not None:
                raise LifecycleError(f"daemon exited with code {code} during startup{self._log_hint()}")
            record = self.read()
            if record is not None and record.pid == proc.pid and record.ready:
                return proc.pid
            time.sleep(POLL_INTERVAL)

        proc.terminate()
        raise LifecycleError(f"daemon did not become ready within {timeout}s{self._log_hint()}")

    def log_tail(self, lines: int = 10) -> list[str]:
        try:
            content = self.log_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return []
        return content.splitlines()[-lines:]

    def _log_hint(self) -> str:
        tail = self.log_tail(5)
        if not tail:
            return ""
        return f" (see {self.log_path}):\n  " + "\n  ".join(tail)


def daemon_context() -> DaemonContext:
    """The daemon descriptor; identical on every call."""
    return DaemonContext()
