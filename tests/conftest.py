"""Pytest configuration.

The queue and backend are QObjects whose worker signals are delivered through
the Qt event loop, so a single `QApplication` is created for the whole session
as early as possible (offscreen, no window system needed) and shut down at
the end.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    """Ensure a QApplication exists before collecting/running tests."""

    try:
        from PySide6.QtWidgets import QApplication
    except ImportError:
        return

    global _APP

    app = QApplication.instance()
    if app is None:
        # Keep a strong ref so it isn't GC'd mid-session.
        _APP = QApplication([])
    else:
        _APP = app


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    """Attempt a clean Qt shutdown to avoid lingering threads at interpreter exit."""

    try:
        from PySide6.QtWidgets import QApplication
    except ImportError:
        return

    app = QApplication.instance()
    if app is None:
        return

    app.quit()
    app.processEvents()


@pytest.fixture
def make_zip(tmp_path: Path):
    from tests.helpers.archives import write_zip

    def _make(name: str, entries: dict[str, bytes]) -> Path:
        return write_zip(tmp_path / name, entries)

    return _make


@pytest.fixture
def png() -> bytes:
    from tests.helpers.archives import image_bytes

    return image_bytes(".png")
