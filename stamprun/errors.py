"""Exceptions raised by stamprun. Anything else escaping run() is a bug."""
from __future__ import annotations


class StamprunError(Exception):
    exit_code = 1


class LogFileError(StamprunError):
    """The transcript file could not be created or opened."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"cannot open log file {path}: {reason}")
        self.path = path


class LaunchError(StamprunError):
    """The child command could not be started."""

    exit_code = 127

    def __init__(self, argv: list[str], reason: str):
        super().__init__(f"cannot run {argv[0] if argv else '(empty command)'}: {reason}")
        self.argv = argv
