"""Test the line formatter: timestamps, marker column, truncation, color."""

import re
from datetime import datetime

from stamprun.config import Config
from stamprun.formatter import (
    LineFormatter,
    LogLine,
    Origin,
    format_elapsed,
    truncation_width,
)
from stamprun.terminal import ScreenGeometry

ANSI = re.compile(r"\x1b\[[0-9;]*m")
START = 1_000_000
GEOM = ScreenGeometry(rows=25, cols=80)
PLAIN = Config(use_color=False)


def strip_ansi(text):
    return ANSI.sub("", text)


def line_at(elapsed_ns, content="x", origin=Origin.STDOUT, wall=0.0):
    return LogLine(origin, content, START + elapsed_ns, wall)


# Tests for timestamps
# ================================================================


def test_relative_with_millis():
    """3725.042s renders as hours, minutes, seconds and milliseconds."""
    fmt = LineFormatter(START)
    cfg = Config(use_color=False, use_millis=True)
    assert fmt.timestamp(line_at(3_725_042_000_000), cfg) == " 1:02:05.042"


def test_relative_without_millis():
    fmt = LineFormatter(START)
    assert fmt.timestamp(line_at(3_725_042_000_000), PLAIN) == " 1:02:05"


def test_millis_truncated_not_rounded():
    assert format_elapsed(1_999_999_999, millis=True) == " 0:00:01.999"
    assert format_elapsed(1_999_999_999) == " 0:00:01"


def test_elapsed_never_negative():
    assert format_elapsed(-5) == " 0:00:00"


def test_absolute_uses_wall_clock():
    fmt = LineFormatter(START)
    wall = 1_700_000_000.25
    cfg = Config(use_color=False, absolute_timestamps=True, use_millis=True)
    expected = datetime.fromtimestamp(wall).strftime("%H:%M:%S")
    assert fmt.timestamp(line_at(5, wall=wall), cfg) == expected


# Tests for the marker column and log layout
# ================================================================


def test_log_layout_stdout():
    out = LineFormatter(START).format(line_at(2_000_000_000, "hello"), PLAIN, GEOM)
    assert out.log == " 0:00:02  hello"
    assert out.display == " 0:00:02 hello"


def test_stderr_marker_when_marking():
    line = line_at(0, "oops", Origin.STDERR)
    out = LineFormatter(START).format(line, Config(use_color=False, mark_stderr=True), GEOM)
    assert out.log[8] == "^"
    assert out.log[10:] == "oops"


def test_stderr_unmarked():
    line = line_at(0, "oops", Origin.STDERR)
    out = LineFormatter(START).format(line, Config(use_color=False, mark_stderr=False), GEOM)
    assert out.log[8] == " "


def test_marking_changes_only_display_color():
    """Display content is the same with and without stderr marking."""
    fmt = LineFormatter(START)
    line = line_at(0, "oops", Origin.STDERR)
    marked = fmt.format(line, Config(mark_stderr=True), GEOM)
    unmarked = fmt.format(line, Config(mark_stderr=False), GEOM)
    assert marked.display != unmarked.display
    assert strip_ansi(marked.display) == strip_ansi(unmarked.display)


def test_empty_line_keeps_prefix():
    out = LineFormatter(START).format(line_at(0, ""), PLAIN, GEOM)
    assert out.log == " 0:00:00  "
    assert out.display == " 0:00:00 "


# Tests for truncation
# ================================================================


def test_truncation_width():
    assert truncation_width(80, millis=False) == 71
    assert truncation_width(80, millis=True) == 67
    assert truncation_width(5, millis=True) == 1
    assert truncation_width(0, millis=False) == 1


def test_truncate_cuts_display_only():
    content = "a" * 200
    cfg = Config(use_color=False, truncate=True)
    out = LineFormatter(START).format(line_at(0, content), cfg, ScreenGeometry(25, 40))
    assert out.display == " 0:00:00 " + "a" * 31
    assert out.log.endswith(content)


def test_no_truncate_keeps_display():
    content = "b" * 200
    out = LineFormatter(START).format(line_at(0, content), PLAIN, ScreenGeometry(25, 40))
    assert out.display.endswith(content)


# Tests for color
# ================================================================


def test_display_colored_by_default():
    out = LineFormatter(START).format(line_at(0, "hi"), Config(), GEOM)
    assert "\x1b[" in out.display
    assert "\x1b[" not in out.log


def test_no_color_display():
    out = LineFormatter(START).format(line_at(0, "hi"), PLAIN, GEOM)
    assert "\x1b[" not in out.display


def test_color_log_file_keeps_marker():
    line = line_at(0, "oops", Origin.STDERR)
    out = LineFormatter(START).format(line, Config(color_log_file=True), GEOM)
    assert "\x1b[31m" in out.log
    assert strip_ansi(out.log) == " 0:00:00^ oops"
