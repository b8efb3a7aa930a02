from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from .logger import get_logger

_logger = get_logger("settings")

_MIN_QUALITY = 1
_MAX_QUALITY = 100
_RGB_CHANNELS = 3


def default_settings_path() -> str:
    return str(Path.home() / ".zip_converter" / "settings.json")


class SettingsManager:
    def __init__(self, settings_path: str | None = None):
        self.settings_path = settings_path or default_settings_path()
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "jpeg_quality": 95,
        "output_suffix": "-converted",
        "output_dir": None,
        "overwrite_output": False,
        "include_report": True,
        "skip_nested_archives": True,
        "keep_animated": True,
        "background": [255, 255, 255],
    }

    def load(self) -> None:
        try:
            if os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        self._settings = data
                        _logger.debug("settings loaded: %s", self.settings_path)
                        return
        except (OSError, ValueError) as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def save(self) -> None:
        try:
            os.makedirs(os.path.dirname(self.settings_path), exist_ok=True)
            with open(self.settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings, f, ensure_ascii=False, indent=2)
            _logger.debug("settings saved: %s", self.settings_path)
        except OSError as e:
            _logger.error("settings save failed: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._settings

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings

    @property
    def jpeg_quality(self) -> int:
        try:
            q = int(self.get("jpeg_quality"))
        except (TypeError, ValueError):
            _logger.warning("invalid jpeg_quality: %r", self.get("jpeg_quality"))
            q = int(self.DEFAULTS["jpeg_quality"])
        return max(_MIN_QUALITY, min(_MAX_QUALITY, q))

    @property
    def output_suffix(self) -> str:
        val = self.get("output_suffix")
        return val if isinstance(val, str) and val else str(self.DEFAULTS["output_suffix"])

    @property
    def output_dir(self) -> str | None:
        val = self.get("output_dir")
        return val if isinstance(val, str) and os.path.isdir(val) else None

    @property
    def background(self) -> list[int]:
        val = self.get("background")
        if isinstance(val, (list, tuple)) and len(val) == _RGB_CHANNELS:
            try:
                return [max(0, min(255, int(v))) for v in val]
            except (TypeError, ValueError):
                pass
        _logger.warning("invalid background: %r", val)
        return list(self.DEFAULTS["background"])
