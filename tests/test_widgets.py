from __future__ import annotations

from flamedash.settings import DARK
from flamedash.widgets import _qcolor


class TestColors:
    def test_palette_colors_are_reused(self):
        assert _qcolor(DARK["bg"]) is _qcolor(DARK["bg"])

    def test_hex_round_trip(self):
        assert _qcolor("#ff8000").name() == "#ff8000"
