"""
Process supervisor: launches the child, runs the tick loop, and owns the run
state.

    RUNNING --child exited--> FINISHED   banner, wait for a key, reset screen
    RUNNING --SIGINT/TERM---> CANCELLED  reset screen now, don't wait on child

Each tick redraws the status line, waits up to one tick for a key (the
wait is the tick's sleep), then checks whether the child is still alive.
"""
from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from stamprun.config import Config, ConfigStore, apply_key
from stamprun.errors import LaunchError
from stamprun.formatter import LineFormatter, Origin, format_elapsed
from stamprun.keys import KeyPoller, SignalEvents
from stamprun.logwriter import LogWriter
from stamprun.readers import StreamReader
from stamprun.terminal import Renderer, SessionManager, paint

log = logging.getLogger(__name__)

DEFAULT_TICK = 1.0
READER_GRACE = 5.0


class RunState(Enum):
    RUNNING = "running"
    FINISHED = "finished"
    CANCELLED = "cancelled"


@dataclass
class RunResult:
    state: RunState
    exit_code: int | None
    log_path: Path
    elapsed: float
    stdout_lines: int = 0
    stderr_lines: int = 0


def describe_exit(code: int | None) -> str:
    if code is None:
        return "still running"
    if code == 0:
        return "done"
    if code < 0:
        try:
            return f"killed by {signal.Signals(-code).name}"
        except ValueError:
            return f"killed by signal {-code}"
    return f"exit {code}"


def status_text(blink: bool, elapsed: str, cwd: str, command: str, cols: int, cfg: Config) -> str:
    head = f" {'*' if blink else ' '} "
    rest = f"{elapsed}  {cwd}  $ {command}"
    rest = rest[:max(0, cols - 1 - len(head))]
    if not cfg.use_color:
        return head + rest
    return paint(head, cfg.colors.flash) + paint(rest, cfg.colors.base)


class Supervisor:
    def __init__(
        self,
        argv: list[str],
        store: ConfigStore,
        session: SessionManager,
        writer: LogWriter,
        keys: KeyPoller | None = None,
        tick: float = DEFAULT_TICK,
        reader_grace: float = READER_GRACE,
    ):
        self.argv = argv
        self.command = shlex.join(argv)
        self.cwd = os.getcwd()
        self.store = store
        self.session = session
        self.renderer = Renderer(session)
        self.writer = writer
        self.keys = keys if keys is not None else KeyPoller(enabled=False)
        self.tick = tick
        self.reader_grace = reader_grace
        self.events = SignalEvents()
        self.state = RunState.RUNNING
        self._start_ns = 0

    def cancel(self):
        self.events.cancel()

    def _elapsed_ns(self) -> int:
        return time.monotonic_ns() - self._start_ns

    # -- lifecycle ----------------------------------------------------------

    def run(self) -> RunResult:
        self._start_ns = time.monotonic_ns()
        formatter = LineFormatter(self._start_ns)
        proc: subprocess.Popen[bytes] | None = None
        readers: list[StreamReader] = []

        with self.events, self.keys:
            self.session.start()
            try:
                proc = self._launch()
                assert proc.stdout is not None and proc.stderr is not None
                readers = [
                    StreamReader(origin, stream, formatter, self.store,
                                 lambda: self.session.geometry, self.renderer, self.writer).start()
                    for origin, stream in ((Origin.STDOUT, proc.stdout), (Origin.STDERR, proc.stderr))
                ]
                self.state = self._loop(proc)
                if self.state is RunState.FINISHED:
                    self._finish(proc, readers)
                else:
                    self._abandon(proc)
            finally:
                self.session.reset()

        return RunResult(
            state=self.state,
            exit_code=proc.returncode if proc is not None and self.state is RunState.FINISHED else None,
            log_path=self.writer.path,
            elapsed=self._elapsed_ns() / 1e9,
            stdout_lines=readers[0].lines if readers else 0,
            stderr_lines=readers[1].lines if readers else 0,
        )

    def _launch(self) -> subprocess.Popen[bytes]:
        log.debug("launching %s in %s", self.command, self.cwd)
        try:
            return subprocess.Popen(
                self.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise LaunchError(self.argv, exc.strerror or str(exc)) from exc

    # -- tick loop ----------------------------------------------------------

    def _loop(self, proc: subprocess.Popen[bytes]) -> RunState:
        blink = False
        while True:
            if self.events.cancelled.is_set():
                return RunState.CANCELLED
            if self.events.consume_resize():
                self.session.establish()

            blink = not blink
            self.renderer.draw_status(status_text(
                blink, format_elapsed(self._elapsed_ns()), self.cwd, self.command,
                self.session.geometry.cols, self.store.get(),
            ))

            key = self.keys.poll(self.tick, self.events.wake_fd)
            self.events.drain()
            if key and apply_key(self.store, key):
                log.debug("key %r -> %s", key, self.store.get())

            if self.events.cancelled.is_set():
                return RunState.CANCELLED
            if proc.poll() is not None:
                log.debug("child exited with %s", proc.returncode)
                return RunState.FINISHED

    def _finish(self, proc: subprocess.Popen[bytes], readers: list[StreamReader]):
        for reader in readers:
            if not reader.join(self.reader_grace):
                log.warning(
                    "%s still open %.0fs after the command exited (a background process may hold it)",
                    reader.origin.value, self.reader_grace,
                )

        cfg = self.store.get()
        banner = f" {describe_exit(proc.returncode)} after {format_elapsed(self._elapsed_ns()).strip()}"
        if self.keys.enabled:
            banner += "  -- press any key to view the log"
        banner = banner[:max(0, self.session.geometry.cols - 1)]
        self.renderer.draw_status(paint(banner, cfg.colors.flash) if cfg.use_color else banner)

        while self.keys.enabled and not self.events.cancelled.is_set():
            key = self.keys.poll(self.tick, self.events.wake_fd)
            self.events.drain()
            if key:
                break

    def _abandon(self, proc: subprocess.Popen[bytes]):
        self.session.reset()
        if proc.poll() is None:
            log.debug("cancelled (signal %s), terminating pid %s", self.events.signum, proc.pid)
            proc.terminate()
