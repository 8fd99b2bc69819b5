"""
Operator input for the tick loop: single keypresses and signals.

Signal handlers here only set events. `signal.set_wakeup_fd` points at a
self-pipe that the key wait also selects on, so an interrupt or a resize
ends the current wait straight away instead of at the end of the tick.
"""
from __future__ import annotations

import logging
import os
import select
import signal
import sys
import termios
import threading
import time
import tty
from typing import Any

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

class SignalEvents:
    CANCEL_SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self):
        self.cancelled = threading.Event()
        self.resized = threading.Event()
        self.signum: int | None = None
        self._saved: dict[int, Any] = {}
        self._old_wakeup = -1
        self._rfd: int | None = None
        self._wfd: int | None = None

    def __enter__(self):
        self._rfd, self._wfd = os.pipe()
        os.set_blocking(self._rfd, False)
        os.set_blocking(self._wfd, False)
        self._old_wakeup = signal.set_wakeup_fd(self._wfd, warn_on_full_buffer=False)
        for sig in self.CANCEL_SIGNALS:
            self._saved[sig] = signal.signal(sig, self._on_cancel)
        self._saved[signal.SIGWINCH] = signal.signal(signal.SIGWINCH, self._on_resize)
        return self

    def __exit__(self, exc_type, exc, tb):
        for sig, old in self._saved.items():
            signal.signal(sig, old)
        self._saved.clear()
        signal.set_wakeup_fd(self._old_wakeup)
        for fd in (self._rfd, self._wfd):
            if fd is not None:
                os.close(fd)
        self._rfd = self._wfd = None

    @property
    def wake_fd(self) -> int | None:
        return self._rfd

    def _on_cancel(self, signum, frame):
        self.signum = signum
        self.cancelled.set()

    def _on_resize(self, signum, frame):
        self.resized.set()

    def cancel(self):
        self.cancelled.set()
        self._poke()

    def _poke(self):
        if self._wfd is None:
            return
        try:
            os.write(self._wfd, b"\0")
        except BlockingIOError:
            pass  # pipe already full, the waiter will wake anyway

    def drain(self):
        if self._rfd is None:
            return
        while True:
            try:
                if not os.read(self._rfd, 512):
                    return
            except BlockingIOError:
                return

    def consume_resize(self) -> bool:
        if self.resized.is_set():
            self.resized.clear()
            return True
        return False


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

class KeyPoller:
    def __init__(self, enabled: bool):
        self.enabled = enabled and os.name == "posix" and sys.stdin.isatty()
        self.fd: int | None = None
        self._old: Any = None

    def __enter__(self):
        if self.enabled:
            self.fd = sys.stdin.fileno()
            self._old = termios.tcgetattr(self.fd)
            tty.setcbreak(self.fd)
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.enabled and self.fd is not None and self._old is not None:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._old)
            self._old = None

    def poll(self, timeout: float, wake_fd: int | None = None) -> str:
        """Wait up to `timeout` for one key. '' on timeout or wake-up."""
        fds = [fd for fd in (self.fd if self.enabled else None, wake_fd) if fd is not None]
        if not fds:
            time.sleep(timeout)
            return ""
        ready, _, _ = select.select(fds, [], [], timeout)
        if wake_fd is not None and wake_fd in ready:
            return ""
        if not ready or self.fd is None:
            return ""
        raw = os.read(self.fd, 1)
        if not raw:
            return ""
        if raw == b"\x1b":
            # swallow the rest of an escape sequence (arrows, function keys)
            deadline = time.time() + 0.05
            while time.time() < deadline:
                rdy, _, _ = select.select([self.fd], [], [], 0.005)
                if not rdy or not os.read(self.fd, 1):
                    break
            return "ESC"
        return raw.decode("utf-8", errors="ignore")
