"""
Per-stream reader threads.

Each reader owns one pipe from the child and forwards every line, in the
order read, to the renderer and the transcript. Lines from the two readers
race each other; lines within one stream never do.
"""
from __future__ import annotations

import logging
import threading
from typing import IO, Callable

from stamprun.config import ConfigStore
from stamprun.formatter import LineFormatter, LogLine, Origin
from stamprun.logwriter import LogWriter
from stamprun.terminal import Renderer, ScreenGeometry

log = logging.getLogger(__name__)


def decode_line(raw: bytes) -> str:
    # surrogateescape keeps undecodable bytes so the log gets them back verbatim
    text = raw.decode("utf-8", errors="surrogateescape")
    if text.endswith("\n"):
        text = text[:-1]
        if text.endswith("\r"):
            text = text[:-1]
    return text


class StreamReader:
    def __init__(
        self,
        origin: Origin,
        stream: IO[bytes],
        formatter: LineFormatter,
        store: ConfigStore,
        geometry: Callable[[], ScreenGeometry],
        renderer: Renderer,
        writer: LogWriter,
    ):
        self.origin = origin
        self.stream = stream
        self.formatter = formatter
        self.store = store
        self.geometry = geometry
        self.renderer = renderer
        self.writer = writer
        self.lines = 0
        self._thread = threading.Thread(
            target=self.run, name=f"reader-{origin.value}", daemon=True,
        )

    def start(self) -> StreamReader:
        self._thread.start()
        return self

    def join(self, timeout: float | None = None) -> bool:
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def handle(self, content: str):
        line = LogLine.capture(self.origin, content)
        out = self.formatter.format(line, self.store.get(), self.geometry())
        self.writer.append(out.log)
        self.renderer.write_line(out.display)
        self.lines += 1

    def run(self):
        try:
            while True:
                try:
                    raw = self.stream.readline()
                except (OSError, ValueError) as exc:
                    # closed or broken pipe: this stream is done, the other carries on
                    log.debug("%s reader stopped: %s", self.origin.value, exc)
                    return
                if not raw:
                    return
                self.handle(decode_line(raw))
        finally:
            log.debug("%s reader finished after %d lines", self.origin.value, self.lines)
