"""
stamprun CLI -- run a command with a timestamped transcript.

Usage:
    stamprun make -j8
    stamprun -m -t -- rsync -av src/ host:dst/
    stamprun -o build.log --no-pager ./long-job.sh
Keys while running:
    t / T   truncate long lines off / on
    m / M   millisecond timestamps off / on
    a / A   relative / absolute timestamps
"""
from __future__ import annotations

import argparse
import logging
import logging.handlers
import os
import shlex
import subprocess
import sys
from datetime import timedelta
from pathlib import Path

from rich.color import Color, ColorParseError
from rich.console import Console
from rich.markup import escape

from stamprun import __version__
from stamprun.config import Colors, Config, ConfigStore
from stamprun.errors import StamprunError
from stamprun.keys import KeyPoller
from stamprun.logwriter import LogWriter
from stamprun.supervisor import DEFAULT_TICK, RunResult, RunState, Supervisor
from stamprun.terminal import SessionManager

log = logging.getLogger("stamprun")

EXIT_CANCELLED = 130


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

def default_log_path() -> Path:
    env = os.environ.get("STAMPRUN_LOG_FILE")
    if env:
        return Path(env).expanduser()
    state = os.environ.get("XDG_STATE_HOME") or os.path.join("~", ".local", "state")
    return Path(state).expanduser() / "stamprun" / "last.log"


def color_name(value: str) -> str:
    try:
        Color.parse(value)
    except ColorParseError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return value


def pager_argv(path: Path) -> list[str]:
    pager = os.environ.get("PAGER")
    if pager:
        return shlex.split(pager) + [str(path)]
    return ["less", "-R", str(path)]


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def setup_logging(level: str) -> logging.handlers.MemoryHandler:
    """Buffer diagnostics while the screen is ours; flush them to stderr after."""
    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(logging.Formatter("stamprun: %(levelname)s %(message)s"))
    held = logging.handlers.MemoryHandler(
        capacity=10_000, flushLevel=logging.CRITICAL + 1, target=stream,
    )
    log.setLevel(level.upper())
    log.addHandler(held)
    log.propagate = False
    return held


# ---------------------------------------------------------------------------
# Arguments
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="stamprun",
        description="Run a command with a timestamped, stream-tagged transcript",
        epilog="Keys while running: t/T truncate, m/M millis, a/A absolute time",
    )
    ap.add_argument("command", nargs=argparse.REMAINDER, help="command and its arguments")
    ap.add_argument("-o", "--log-file", type=Path, default=None,
                    help="transcript path (default $STAMPRUN_LOG_FILE or "
                         "$XDG_STATE_HOME/stamprun/last.log)")
    ap.add_argument("-m", "--millis", action="store_true", help="millisecond timestamps")
    ap.add_argument("-t", "--truncate", action="store_true", help="cut long lines to screen width")
    ap.add_argument("-a", "--absolute", action="store_true", help="wall-clock timestamps")
    ap.add_argument("-l", "--color-log", action="store_true", help="keep color codes in the log file")
    ap.add_argument("-C", "--no-color", action="store_true", help="no color on screen")
    ap.add_argument("-S", "--no-mark-stderr", action="store_true",
                    help="don't mark or color stderr lines")
    ap.add_argument("--base-color", type=color_name, default=Colors.base)
    ap.add_argument("--timestamp-color", type=color_name, default=Colors.timestamp)
    ap.add_argument("--flash-color", type=color_name, default=Colors.flash)
    ap.add_argument("--stderr-color", type=color_name, default=Colors.stderr)
    ap.add_argument("--no-pager", action="store_true", help="don't open the log when done")
    ap.add_argument("--tick", type=float, default=DEFAULT_TICK,
                    help=f"status refresh period in seconds (default {DEFAULT_TICK})")
    ap.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "WARNING"),
                    choices=["DEBUG", "INFO", "WARNING", "ERROR", "debug", "info", "warning", "error"],
                    help="diagnostics level (default $LOG_LEVEL or WARNING)")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap


def config_from_args(args: argparse.Namespace, tty: bool) -> Config:
    return Config(
        use_color=tty and not args.no_color and not os.environ.get("NO_COLOR"),
        use_millis=args.millis,
        truncate=args.truncate,
        absolute_timestamps=args.absolute,
        color_log_file=args.color_log,
        mark_stderr=not args.no_mark_stderr,
        colors=Colors(
            base=args.base_color,
            timestamp=args.timestamp_color,
            flash=args.flash_color,
            stderr=args.stderr_color,
        ),
    )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def print_summary(console: Console, result: RunResult, command: str):
    if result.state is RunState.CANCELLED:
        head = "[bold yellow]Cancelled[/]"
    elif result.exit_code == 0:
        head = "[bold green]Finished[/]"
    else:
        head = f"[bold red]Failed[/] [dim](exit code {result.exit_code})[/]"
    console.print(f"{head}  [dim]$[/] {escape(command)}", soft_wrap=True)
    console.print(f"  Duration    {timedelta(seconds=int(result.elapsed))}")
    console.print(f"  Lines       {result.stdout_lines} stdout / {result.stderr_lines} stderr")
    console.print(f"  Log         [underline]{escape(str(result.log_path))}[/]", soft_wrap=True)


def exit_status(result: RunResult) -> int:
    if result.state is RunState.CANCELLED or result.exit_code is None:
        return EXIT_CANCELLED
    if result.exit_code < 0:
        return 128 - result.exit_code
    return result.exit_code


def open_pager(path: Path):
    argv = pager_argv(path)
    try:
        subprocess.run(argv, check=False)
    except FileNotFoundError:
        log.warning("pager %s not found; log is at %s", argv[0], path)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def run(argv: list[str] | None = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        ap.error("no command given")

    held = setup_logging(args.log_level)
    console = Console(highlight=False)
    err = Console(stderr=True)
    tty = sys.stdout.isatty()

    try:
        try:
            with LogWriter(args.log_file or default_log_path()) as writer:
                store = ConfigStore(config_from_args(args, tty))
                session = SessionManager(sys.stdout)
                sup = Supervisor(
                    command, store, session, writer,
                    keys=KeyPoller(enabled=tty),
                    tick=args.tick,
                )
                result = sup.run()
        finally:
            held.flush()
    except StamprunError as exc:
        err.print(f"[bold red]stamprun:[/] {escape(str(exc))}", soft_wrap=True)
        return exc.exit_code
    finally:
        held.close()
        log.removeHandler(held)

    if result.state is RunState.FINISHED and tty and not args.no_pager:
        open_pager(result.log_path)
    print_summary(console, result, sup.command)
    return exit_status(result)


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
