"""
Output directory discovery.

Zoom keeps custom virtual backgrounds in a data directory whose name changed
across releases, so known names are tried first, then a recursive search.
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from .errors import VroomError

SEARCH_NAMES = (
    "VirtualBkgnd_Custom",
    "VirtualBackground_Custom",
    "Backgrounds",
    "CustomBackgrounds",
)


class OutputDirectoryError(VroomError):
    def __init__(self, message: str, user_message: str):
        super().__init__(message)
        self.user_message = user_message


def zoom_data_dir(home: Optional[Path] = None) -> Path:
    home = home or Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "zoom.us" / "data"
    if sys.platform.startswith("win"):
        return home / "AppData" / "Roaming" / "Zoom" / "data"
    return home / ".zoom" / "data"


def zoom_app_path() -> Optional[Path]:
    """Zoom executable inside the app bundle. Only known on macOS."""
    if sys.platform == "darwin":
        return Path("/Applications/zoom.us.app/Contents/MacOS/zoom.us")
    return None


def verify_zoom(home: Optional[Path] = None, app_path: Optional[Path] = None) -> Path:
    """Check Zoom is installed and has been signed into; return its data directory.

    The data directory only exists after the first sign-in.
    """
    app_path = app_path or zoom_app_path()
    if app_path is not None and not app_path.exists():
        raise OutputDirectoryError(
            f"Zoom executable not found: {app_path}",
            "Zoom is not installed. Install it from https://zoom.us/download, or pass --output-dir.",
        )

    data_dir = zoom_data_dir(home)
    if not data_dir.exists():
        raise OutputDirectoryError(
            f"Zoom data directory not found: {data_dir}",
            "Please open Zoom and sign in before using this tool, or pass --output-dir.",
        )
    return data_dir


def find_backgrounds_directory(base_dir: Path) -> Path:
    if not base_dir.exists():
        raise OutputDirectoryError(
            f"Zoom data directory not found: {base_dir}",
            "Please open Zoom and sign in before using this tool, or pass --output-dir.",
        )

    for name in SEARCH_NAMES:
        candidate = base_dir / name
        if candidate.is_dir():
            return candidate

    matches = sorted(p for p in base_dir.glob("**/*Virtual*Custom*") if p.is_dir())
    if matches:
        return matches[0]

    raise OutputDirectoryError(
        f"Could not find Zoom virtual backgrounds directory. Searched in: {base_dir}\n"
        f"Expected one of: {', '.join(SEARCH_NAMES)}",
        "Could not find the Zoom backgrounds folder. Pass --output-dir to choose where to save.",
    )


def resolve_output_directory(override: Optional[Path] = None, home: Optional[Path] = None) -> Path:
    if override is not None:
        override = override.expanduser()
        override.mkdir(parents=True, exist_ok=True)
        return override
    return find_backgrounds_directory(verify_zoom(home))
