"""Transcript file sink shared by both stream readers."""
from __future__ import annotations

import logging
import threading
from pathlib import Path

from stamprun.errors import LogFileError

log = logging.getLogger(__name__)


class LogWriter:
    """One fresh file per run. Each append is one whole line under a lock."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
        self.lines = 0
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.path.open("w", encoding="utf-8", errors="surrogateescape")
        except OSError as exc:
            raise LogFileError(str(self.path), exc.strerror or str(exc)) from exc
        log.debug("transcript -> %s", self.path)

    def append(self, text: str):
        with self._lock:
            if self._fh.closed:
                log.debug("dropped line after log close: %.60s", text)
                return
            self._fh.write(text + "\n")
            self._fh.flush()
            self.lines += 1

    def close(self):
        with self._lock:
            if not self._fh.closed:
                self._fh.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
