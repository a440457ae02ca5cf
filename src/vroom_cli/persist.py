from __future__ import annotations

import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional


def atomic_write_bytes(path: Path, data: bytes, mode: int = 0o644) -> Path:
    """Write ``data`` to ``path`` via temp file + rename in the same directory.

    Readers never observe a partially written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
    closed = False
    replaced = False
    try:
        os.write(fd, data)
        os.close(fd)
        closed = True
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
        replaced = True
    finally:
        if not closed:
            os.close(fd)
        if not replaced and os.path.exists(tmp_path):
            os.remove(tmp_path)
    return path


class FileSink:
    """Saves approved images into a directory resolved on first save."""

    def __init__(
        self,
        resolve_directory: Callable[[], Path],
        prefix: str = "zoombg",
        clock: Callable[[], float] = time.time,
    ):
        self._resolve_directory = resolve_directory
        self._prefix = prefix
        self._clock = clock
        self._directory: Optional[Path] = None
        self.last_path: Optional[Path] = None

    def prepare(self) -> Path:
        """Resolve the output directory now so a missing one fails before generation."""
        if self._directory is None:
            self._directory = self._resolve_directory()
        return self._directory

    def _target(self, directory: Path, extension: str) -> Path:
        stamp = int(self._clock() * 1000)
        candidate = directory / f"{self._prefix}-{stamp}{extension}"
        n = 1
        while candidate.exists():
            candidate = directory / f"{self._prefix}-{stamp}-{n}{extension}"
            n += 1
        return candidate

    def save(self, image_bytes: bytes, extension: str = ".png") -> Path:
        if not image_bytes:
            raise ValueError("refusing to save an empty image")
        directory = self.prepare()
        path = atomic_write_bytes(self._target(directory, extension), image_bytes)
        self.last_path = path
        return path
