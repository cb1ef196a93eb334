"""
Cross-platform utilities for Folder Monitor.

Centralises OS detection and per-platform directories so every other
module can import a single canonical set of helpers rather than
scattering ``sys.platform`` checks throughout the codebase.
"""

from __future__ import annotations

import os
import socket
import sys
from pathlib import Path

# ---- platform flags ----------------------------------------------------

IS_WINDOWS: bool = sys.platform == "win32"
IS_MACOS: bool = sys.platform == "darwin"

APP_DIR_NAME = "FolderMonitor"

# ---- directories -------------------------------------------------------


def get_config_dir() -> Path:
    """
    Return the application config directory, created if needed.

    - Windows : ``%APPDATA%\\FolderMonitor``
    - macOS   : ``~/Library/Application Support/FolderMonitor``
    - Linux   : ``$XDG_CONFIG_HOME/FolderMonitor`` (default ``~/.config``)
    """
    if IS_WINDOWS:
        base = os.environ.get("APPDATA", str(Path.home()))
    elif IS_MACOS:
        base = str(Path.home() / "Library" / "Application Support")
    else:
        base = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))

    config_dir = Path(base) / APP_DIR_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_log_path() -> Path:
    """Return the path to the log file (inside the config directory)."""
    return get_config_dir() / "folder_monitor.log"


# ---- host identity -----------------------------------------------------


def get_host_name() -> str:
    """Return the machine name reported in alert mails."""
    return os.environ.get("COMPUTERNAME") or socket.gethostname() or "unknown-host"
