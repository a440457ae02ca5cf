"""
Browser preview for generated images.

Writes a self-contained HTML page (image embedded as a data URL) into a fresh
temp directory and opens it in the default browser without waiting.
"""
from __future__ import annotations

import base64
import logging
import shutil
import tempfile
import threading
import webbrowser
from pathlib import Path
from typing import Callable, Optional

from jinja2 import Environment, StrictUndefined

logger = logging.getLogger(__name__)

TEMP_PREFIX = "vroom-"

PREVIEW_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{{ title }}</title>
  <style>
    body { margin: 0; background: #1e1e1e; color: #eee; font-family: system-ui, sans-serif; }
    header { padding: 12px 20px; font-size: 14px; }
    img { display: block; max-width: 100vw; max-height: calc(100vh - 48px); margin: 0 auto; }
  </style>
</head>
<body>
  <header>{{ title }}{% if prompt %} &mdash; {{ prompt }}{% endif %}</header>
  <img src="data:{{ content_type }};base64,{{ data }}" alt="Generated background preview">
</body>
</html>
"""

_env = Environment(undefined=StrictUndefined, autoescape=True)


def render_preview_html(image_bytes: bytes, content_type: str = "image/png", prompt: str = "") -> str:
    tpl = _env.from_string(PREVIEW_TEMPLATE)
    return tpl.render(
        title="Vroom preview",
        prompt=prompt,
        content_type=content_type,
        data=base64.b64encode(image_bytes).decode("ascii"),
    )


class PreviewHandle:
    """Disposable temp directory holding one preview page."""

    def __init__(self, directory: Path, page: Path):
        self.directory = directory
        self.page = page
        self._disposed = False
        self._lock = threading.Lock()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        shutil.rmtree(self.directory, ignore_errors=True)


class BrowserPreview:
    def __init__(
        self,
        open_browser: bool = True,
        opener: Callable[[str], object] = webbrowser.open,
        temp_root: Optional[Path] = None,
    ):
        self._open_browser = open_browser
        self._opener = opener
        self._temp_root = temp_root

    def show(self, image_bytes: bytes, content_type: str = "image/png", prompt: str = "") -> PreviewHandle:
        directory = Path(tempfile.mkdtemp(prefix=TEMP_PREFIX, dir=self._temp_root))
        handle = PreviewHandle(directory, directory / "preview.html")
        try:
            handle.page.write_text(render_preview_html(image_bytes, content_type, prompt), encoding="utf-8")
            if self._open_browser:
                self._opener(handle.page.as_uri())
            else:
                logger.info("Preview written to %s", handle.page)
        except BaseException:
            handle.dispose()
            raise
        return handle
