"""Platform detection and per-user state directory"""

import os
import platform
import shutil
from pathlib import Path

IS_WINDOWS = platform.system() == "Windows"


def is_admin() -> bool:
    """Check if running with administrator/root privileges"""
    if not IS_WINDOWS:
        return os.geteuid() == 0 if hasattr(os, "geteuid") else False
    try:
        import ctypes

        return bool(ctypes.windll.shell32.IsUserAnAdmin())
    except Exception:
        return False


def can_sudo() -> bool:
    """Whether privileged writes can fall back to sudo (never when already root)"""
    return not IS_WINDOWS and not is_admin() and shutil.which("sudo") is not None


def get_devalias_dir() -> Path:
    """Get the devalias state directory (~/.devalias or DEVALIAS_HOME)"""
    env_home = os.getenv("DEVALIAS_HOME", "").strip()
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".devalias"


def ensure_devalias_dir() -> Path:
    """Create the state directory with owner-only permissions"""
    path = get_devalias_dir()
    path.mkdir(parents=True, exist_ok=True)
    if not IS_WINDOWS:
        try:
            path.chmod(0o700)
        except OSError:
            pass
    return path
