from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from PySide6.QtCore import QSettings

logger = logging.getLogger(__name__)

ORG_NAME = "FlameDash"
SETTINGS_APP = "FlameDashboard"

# -------------------------- Theme --------------------------

DARK = {
    "bg": "#101014",
    "text": "#e1e1e1",
    "muted": "#8a8f9e",
    "title": "#eab308",
    "border": "#3a3d46",
    "header_fg": "#101014",
    "header_bg": "#c8ccd8",
    "table_selected": "#414141",
    "match_fg": "#e10a0a",
    "matched_bg": "#0a2396",
    "selected_stack": "#fafafa",
    "text_dark": "#0a0a0a",
    "text_light": "#e1e1e1",
}

LIGHT = {
    "bg": "#f7f8fb",
    "text": "#1b1f2a",
    "muted": "#5b6275",
    "title": "#a16207",
    "border": "#c5cad6",
    "header_fg": "#f7f8fb",
    "header_bg": "#2b3140",
    "table_selected": "#d8dbe3",
    "match_fg": "#e10a0a",
    "matched_bg": "#0a2396",
    "selected_stack": "#1b1f2a",
    "text_dark": "#0a0a0a",
    "text_light": "#e1e1e1",
}

THEMES = {"dark": DARK, "light": LIGHT}


def _as_int(value: Any, default: int, lo: int, hi: int) -> int:
    try:
        return max(lo, min(hi, int(value)))
    except (TypeError, ValueError):
        return default


@dataclass
class Preferences:
    theme: str = "dark"
    font_size: int = 11
    redraw_hz: int = 30

    @property
    def palette(self) -> Dict[str, str]:
        return THEMES.get(self.theme, DARK)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "Preferences":
        d = cls()
        theme = str(values.get("theme", d.theme))
        return cls(
            theme=theme if theme in THEMES else d.theme,
            font_size=_as_int(values.get("font_size"), d.font_size, 6, 48),
            redraw_hz=_as_int(values.get("redraw_hz"), d.redraw_hz, 1, 120),
        )

    def to_mapping(self) -> Dict[str, Any]:
        return {"theme": self.theme, "font_size": self.font_size, "redraw_hz": self.redraw_hz}

    @classmethod
    def load(cls, settings: Optional[QSettings] = None) -> "Preferences":
        settings = settings or QSettings(ORG_NAME, SETTINGS_APP)
        values = {k: settings.value(k) for k in ("theme", "font_size", "redraw_hz") if settings.contains(k)}
        prefs = cls.from_mapping(values)
        logger.debug("Loaded preferences %s", prefs)
        return prefs

    def save(self, settings: Optional[QSettings] = None) -> None:
        settings = settings or QSettings(ORG_NAME, SETTINGS_APP)
        for k, v in self.to_mapping().items():
            settings.setValue(k, v)
