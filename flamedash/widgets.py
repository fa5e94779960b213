from __future__ import annotations

import logging
import sys
import time
from functools import lru_cache
from typing import Dict, Optional, Tuple

from PySide6.QtCore import Qt, QTimer
from PySide6.QtGui import QAction, QColor, QFont, QFontMetrics, QKeySequence, QPainter
from PySide6.QtWidgets import QApplication, QMainWindow, QWidget

from . import APP_NAME, __version__
from .app import Action, App
from .render import render
from .settings import ORG_NAME, Preferences

logger = logging.getLogger(__name__)


@lru_cache(maxsize=512)
def _qcolor(hex_or_name: str) -> QColor:
    # every paint asks for the same palette and stack colours again
    return QColor(hex_or_name)


class RenderThrottle:
    """
    Coalesce snapshot-driven update() calls to at most ``hz`` repaints per
    second. ``hz`` is Preferences.redraw_hz (1..120); the same interval drives
    the canvas tick that polls the sampler.
    """
    def __init__(self, widget: QWidget, hz: int = 30) -> None:
        self.widget = widget
        self.timer = QTimer(widget)
        self.timer.setSingleShot(True)
        self.timer.timeout.connect(widget.update)
        self.interval_ms = max(8, int(1000 / max(1, hz)))

    def poke(self) -> None:
        if not self.timer.isActive():
            self.timer.start(self.interval_ms)


# -------------------------- Key Bindings --------------------------

_TEXT_KEYS: Dict[str, Action] = {
    "h": Action.LEFT,
    "j": Action.DOWN,
    "k": Action.UP,
    "l": Action.RIGHT,
    "f": Action.SCROLL_DOWN,
    "b": Action.SCROLL_UP,
    "/": Action.START_SEARCH,
    "#": Action.SEARCH_SELECTED,
    "n": Action.NEXT_MATCH,
    "N": Action.PREV_MATCH,
    "1": Action.SORT_TOTAL,
    "2": Action.SORT_OWN,
    "z": Action.TOGGLE_FREEZE,
    "r": Action.RESET,
    "q": Action.QUIT,
}

_SPECIAL_KEYS: Dict[int, Action] = {
    Qt.Key_Left: Action.LEFT,
    Qt.Key_Right: Action.RIGHT,
    Qt.Key_Up: Action.UP,
    Qt.Key_Down: Action.DOWN,
    Qt.Key_Return: Action.ZOOM_IN,
    Qt.Key_Enter: Action.ZOOM_IN,
    Qt.Key_Escape: Action.ZOOM_OUT,
    Qt.Key_Tab: Action.TOGGLE_VIEW,
    Qt.Key_PageDown: Action.SCROLL_DOWN,
    Qt.Key_PageUp: Action.SCROLL_UP,
}

_PROMPT_KEYS: Dict[int, Action] = {
    Qt.Key_Return: Action.CONFIRM_SEARCH,
    Qt.Key_Enter: Action.CONFIRM_SEARCH,
    Qt.Key_Escape: Action.CANCEL_SEARCH,
    Qt.Key_Left: Action.LEFT,
    Qt.Key_Right: Action.RIGHT,
}


# -------------------------- Canvas --------------------------

class TerminalCanvas(QWidget):
    """Paints the dashboard as a grid of monospace character cells."""

    def __init__(self, app: App, prefs: Preferences) -> None:
        super().__init__()
        self.app = app
        self.prefs = prefs
        self.setFocusPolicy(Qt.StrongFocus)
        self.throttle = RenderThrottle(self, hz=prefs.redraw_hz)
        self._set_font(prefs.font_size)

        self.timer = QTimer(self)
        self.timer.setInterval(self.throttle.interval_ms)
        self.timer.timeout.connect(self._on_tick)
        self.timer.start()

    def _set_font(self, size: int) -> None:
        font = QFont("monospace", size)
        font.setStyleHint(QFont.Monospace)
        font.setFixedPitch(True)
        self.font_regular = font
        self.font_bold = QFont(font)
        self.font_bold.setBold(True)
        fm = QFontMetrics(font)
        self.cell_w = max(1, fm.horizontalAdvance("M"))
        self.cell_h = max(1, fm.height())
        self.ascent = fm.ascent()

    def set_font_size(self, size: int) -> None:
        self.prefs.font_size = size
        self._set_font(size)
        self.update()

    def grid_size(self) -> Tuple[int, int]:
        return max(1, self.width() // self.cell_w), max(1, self.height() // self.cell_h)

    def _on_tick(self) -> None:
        if self.app.tick() or self.app.is_live:
            self.throttle.poke()

    def focusNextPrevChild(self, forward: bool) -> bool:
        # Tab switches views
        return False

    def keyPressEvent(self, e) -> None:
        app = self.app
        key = e.key()
        text = e.text()
        if e.modifiers() & Qt.ControlModifier and key == Qt.Key_C:
            app.handle(Action.QUIT)
        elif app.input_buffer is not None:
            if key in _PROMPT_KEYS:
                app.handle(_PROMPT_KEYS[key])
            elif key == Qt.Key_Backspace:
                app.backspace()
            elif text and text.isprintable():
                app.type_text(text)
            else:
                super().keyPressEvent(e)
                return
        elif key in _SPECIAL_KEYS:
            app.handle(_SPECIAL_KEYS[key])
        elif text in _TEXT_KEYS:
            app.handle(_TEXT_KEYS[text])
        else:
            super().keyPressEvent(e)
            return

        if not app.running:
            self.window().close()
            return
        self.update()

    def paintEvent(self, e) -> None:
        t0 = time.perf_counter()
        palette = self.prefs.palette
        cols, rows = self.grid_size()
        screen = render(self.app, cols, rows, palette)

        p = QPainter(self)
        p.fillRect(self.rect(), _qcolor(palette["bg"]))
        cw, ch = self.cell_w, self.cell_h
        for seg in screen.segments:
            x, y = seg.x * cw, seg.y * ch
            if seg.bg:
                p.fillRect(x, y, len(seg.text) * cw, ch, _qcolor(seg.bg))
            if not seg.text.strip():
                continue
            p.setFont(self.font_bold if seg.bold else self.font_regular)
            p.setPen(_qcolor(seg.fg))
            p.drawText(x, y + self.ascent, seg.text)

        if screen.cursor is not None:
            cx, cy = screen.cursor
            p.fillRect(cx * cw, cy * ch, max(2, cw // 5), ch, _qcolor(palette["text"]))
        p.end()
        self.app.add_elapsed("paint", time.perf_counter() - t0)


# -------------------------- Window --------------------------

class DashboardWindow(QMainWindow):
    def __init__(self, app: App, prefs: Optional[Preferences] = None) -> None:
        super().__init__()
        self.app = app
        self.prefs = prefs or Preferences.load()
        self.setWindowTitle(f"{APP_NAME} • {app.description}")
        self.resize(1200, 760)

        self.canvas = TerminalCanvas(app, self.prefs)
        self.setCentralWidget(self.canvas)
        self._build_actions()
        self.canvas.setFocus()

    def _build_actions(self) -> None:
        self.act_theme = QAction("Toggle Theme", self)
        self.act_theme.setShortcut(QKeySequence("Ctrl+T"))
        self.act_theme.triggered.connect(self.toggle_theme)
        self.addAction(self.act_theme)

        self.act_bigger = QAction("Larger Font", self)
        self.act_bigger.setShortcut(QKeySequence("Ctrl+="))
        self.act_bigger.triggered.connect(lambda: self.canvas.set_font_size(min(48, self.prefs.font_size + 1)))
        self.addAction(self.act_bigger)

        self.act_smaller = QAction("Smaller Font", self)
        self.act_smaller.setShortcut(QKeySequence("Ctrl+-"))
        self.act_smaller.triggered.connect(lambda: self.canvas.set_font_size(max(6, self.prefs.font_size - 1)))
        self.addAction(self.act_smaller)

    def toggle_theme(self) -> None:
        self.prefs.theme = "light" if self.prefs.theme == "dark" else "dark"
        self.prefs.save()
        self.canvas.update()

    def closeEvent(self, e) -> None:
        self.canvas.timer.stop()
        if self.app.running:
            self.app.quit()
        self.prefs.save()
        super().closeEvent(e)


def run_dashboard(app: App, prefs: Optional[Preferences] = None) -> int:
    qt_app = QApplication.instance() or QApplication(sys.argv)
    qt_app.setApplicationName(APP_NAME)
    qt_app.setApplicationVersion(__version__)
    qt_app.setOrganizationName(ORG_NAME)

    w = DashboardWindow(app, prefs)
    w.show()
    logger.debug("Dashboard shown for %s", app.description)
    return qt_app.exec()
