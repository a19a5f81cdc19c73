"""
Cross-platform utilities for Folder Mirror.

Centralises all OS-detection logic so every other module can import
a single canonical set of helpers rather than scattering ``sys.platform``
checks throughout the codebase.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# ---- platform flags ----------------------------------------------------

IS_WINDOWS: bool = sys.platform == "win32"
IS_MACOS: bool = sys.platform == "darwin"

APP_DIR_NAME = "FolderMirror"

# ---- directories -------------------------------------------------------


def get_config_dir() -> Path:
    """
    Return the application config directory, created if needed.

    - Windows : ``%APPDATA%\\FolderMirror``
    - macOS   : ``~/Library/Application Support/FolderMirror``
    - Linux   : ``$XDG_CONFIG_HOME/FolderMirror`` (default ``~/.config``)
    """
    home = Path.home()
    if IS_WINDOWS:
        base = Path(os.environ.get("APPDATA") or home)
    elif IS_MACOS:
        base = home / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME") or home / ".config")

    config_dir = base / APP_DIR_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_log_path() -> Path:
    """Return the log file path; it sits next to config.json."""
    return get_config_dir() / "folder_mirror.log"


# ---- example paths -----------------------------------------------------


def example_root(kind: str, index: int) -> str:
    """Return a placeholder folder path for the generated example config.

    *kind* is ``"Source"`` or ``"Dest"``; the result looks native on the
    current platform, e.g. ``C:\\Path\\To\\Source1`` or
    ``/path/to/source1``.
    """
    if IS_WINDOWS:
        return f"C:\\Path\\To\\{kind}{index}"
    return f"/path/to/{kind.lower()}{index}"
