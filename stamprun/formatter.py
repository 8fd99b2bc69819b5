"""
Turn one captured line into its screen form and its log-file form.

Log line layout:

     1:02:05.042^ some text from stderr
    |-----------||
     timestamp   marker column ('^' for marked stderr, else a space)

The formatter is pure: same LogLine, Config and ScreenGeometry in, same
FormattedLine out.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from stamprun.config import Config
from stamprun.terminal import ScreenGeometry, paint

STDERR_MARKER = "^"

# timestamp + separator column, with and without milliseconds
PREFIX_WIDTH = 9
PREFIX_WIDTH_MILLIS = 13


class Origin(Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class LogLine:
    origin: Origin
    content: str
    captured_ns: int
    wall_time: float

    @classmethod
    def capture(cls, origin: Origin, content: str) -> LogLine:
        return cls(origin, content, time.monotonic_ns(), time.time())


@dataclass(frozen=True)
class FormattedLine:
    display: str
    log: str


def format_elapsed(elapsed_ns: int, millis: bool = False) -> str:
    elapsed_ns = max(0, elapsed_ns)
    secs = elapsed_ns // 1_000_000_000
    h, rem = divmod(secs, 3600)
    m, s = divmod(rem, 60)
    out = f"{h:2d}:{m:02d}:{s:02d}"
    if millis:
        out += f".{(elapsed_ns // 1_000_000) % 1000:03d}"
    return out


def format_wall(wall_time: float) -> str:
    return datetime.fromtimestamp(wall_time).strftime("%H:%M:%S")


def truncation_width(cols: int, millis: bool) -> int:
    return max(1, cols - (PREFIX_WIDTH_MILLIS if millis else PREFIX_WIDTH))


class LineFormatter:
    def __init__(self, start_ns: int):
        self.start_ns = start_ns

    def timestamp(self, line: LogLine, cfg: Config) -> str:
        if cfg.absolute_timestamps:
            return format_wall(line.wall_time)
        return format_elapsed(line.captured_ns - self.start_ns, cfg.use_millis)

    def format(self, line: LogLine, cfg: Config, geom: ScreenGeometry) -> FormattedLine:
        ts = self.timestamp(line, cfg)
        marked = line.origin is Origin.STDERR and cfg.mark_stderr
        marker = STDERR_MARKER if marked else " "
        body_color = cfg.colors.stderr if marked else cfg.colors.base

        shown = line.content
        if cfg.truncate:
            shown = shown[:truncation_width(geom.cols, cfg.use_millis)]

        if cfg.use_color:
            display = f"{paint(ts, cfg.colors.timestamp)} {paint(shown, body_color)}"
        else:
            display = f"{ts} {shown}"

        if cfg.color_log_file:
            log_text = f"{paint(ts, cfg.colors.timestamp)}{marker} {paint(line.content, body_color)}"
        else:
            log_text = f"{ts}{marker} {line.content}"

        return FormattedLine(display=display, log=log_text)
