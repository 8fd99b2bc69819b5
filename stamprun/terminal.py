"""
Terminal control for the live view: a scrolling region for the transcript
and a status line on the bottom row.

Layout:
    rows 1 .. rows-1   scroll region, transcript lines land here
    row  rows          status line, redrawn every tick

The cursor position just after the last transcript line is kept in the
terminal's save-cursor slot, so a status redraw can jump away and come back
without caring how the region has scrolled.
"""
from __future__ import annotations

import logging
import shutil
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, TextIO

from rich.color import Color

log = logging.getLogger(__name__)

ESC = "\033"
RESET = f"{ESC}[0m"
CLEAR_SCREEN = f"{ESC}[2J{ESC}[H"
CLEAR_LINE = f"{ESC}[2K"
SAVE_CURSOR = f"{ESC}7"
RESTORE_CURSOR = f"{ESC}8"
HIDE_CURSOR = f"{ESC}[?25l"
SHOW_CURSOR = f"{ESC}[?25h"
FULL_SCROLL_REGION = f"{ESC}[r"

DEFAULT_SIZE = (80, 25)


def move_to(row: int, col: int = 1) -> str:
    return f"{ESC}[{row};{col}H"


def scroll_region(top: int, bottom: int) -> str:
    return f"{ESC}[{top};{bottom}r"


@lru_cache(maxsize=64)
def sgr(color: str) -> str:
    """SGR sequence selecting `color` (any rich color name) as foreground."""
    codes = Color.parse(color).get_ansi_codes(foreground=True)
    return f"{ESC}[{';'.join(codes)}m"


def paint(text: str, color: str) -> str:
    return f"{sgr(color)}{text}{RESET}"


# ---------------------------------------------------------------------------
# Session Manager
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScreenGeometry:
    rows: int
    cols: int


class SessionManager:
    def __init__(
        self,
        out: TextIO,
        size_fn: Callable[..., tuple[int, int]] = shutil.get_terminal_size,
        plain: bool | None = None,
    ):
        self.out = out
        self._size_fn = size_fn
        self.plain = (not out.isatty()) if plain is None else plain
        self.lock = threading.RLock()
        # set once the screen has been handed back; late writers are dropped
        self.detached = True
        self._geometry = self._measure()

    @property
    def geometry(self) -> ScreenGeometry:
        return self._geometry

    def _measure(self) -> ScreenGeometry:
        try:
            cols, rows = self._size_fn(fallback=DEFAULT_SIZE)
        except (OSError, ValueError) as exc:
            log.debug("terminal size unavailable (%s), using %sx%s", exc, *DEFAULT_SIZE)
            cols, rows = DEFAULT_SIZE
        if cols <= 0 or rows <= 0:
            cols, rows = DEFAULT_SIZE
        return ScreenGeometry(rows=max(2, rows), cols=max(1, cols))

    def _emit(self, data: str):
        self.out.write(data)
        self.out.flush()

    def start(self):
        with self.lock:
            self._geometry = self._measure()
            self.detached = False
            if self.plain:
                return
            self._emit(CLEAR_SCREEN + HIDE_CURSOR)
            self._anchor(move_to(1))

    def establish(self) -> ScreenGeometry:
        """Recompute geometry and re-anchor the scroll region (start and resize)."""
        with self.lock:
            self._geometry = self._measure()
            if not self.plain:
                self._anchor(move_to(self._geometry.rows - 1))
            log.debug("screen geometry %s", self._geometry)
            return self._geometry

    def _anchor(self, park: str):
        rows = self._geometry.rows
        self._emit(
            scroll_region(1, rows - 1)
            + move_to(rows - 1) + CLEAR_LINE
            + move_to(rows) + CLEAR_LINE
            + park + SAVE_CURSOR
        )

    def reset(self):
        """Give the whole screen back. Safe to call any number of times."""
        with self.lock:
            self.detached = True
            if self.plain:
                return
            try:
                self._emit(RESET + FULL_SCROLL_REGION + CLEAR_SCREEN + SHOW_CURSOR)
            except (OSError, ValueError) as exc:
                log.warning("could not restore terminal: %s", exc)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

class Renderer:
    def __init__(self, session: SessionManager):
        self.session = session

    def _put(self, text: str):
        # Display failures stay here; the transcript never depends on them.
        out = self.session.out
        enc = getattr(out, "encoding", None)
        if enc:
            text = text.encode(enc, errors="replace").decode(enc)
        try:
            out.write(text)
            out.flush()
        except (OSError, ValueError) as exc:
            log.debug("display write failed: %s", exc)

    def write_line(self, display: str):
        s = self.session
        with s.lock:
            if s.detached:
                return
            if s.plain:
                self._put(display + "\n")
            else:
                self._put(RESTORE_CURSOR + display + RESET + "\r\n" + SAVE_CURSOR)

    def draw_status(self, text: str):
        s = self.session
        if s.plain:
            return
        with s.lock:
            if s.detached:
                return
            self._put(move_to(s.geometry.rows) + CLEAR_LINE + text + RESET + RESTORE_CURSOR)
