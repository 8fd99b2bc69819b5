"""
Live display options shared between the stream readers and the key handler.

Readers take one snapshot per line; the tick loop is the only writer. A
snapshot is a frozen dataclass, so an update is published by swapping the
reference and nobody ever sees half of one.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace


# ---------------------------------------------------------------------------
# Snapshot types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Colors:
    base: str = "default"
    timestamp: str = "cyan"
    flash: str = "bright_yellow"
    stderr: str = "red"


@dataclass(frozen=True)
class Config:
    use_color: bool = True
    use_millis: bool = False
    truncate: bool = False
    absolute_timestamps: bool = False
    color_log_file: bool = False
    mark_stderr: bool = True
    colors: Colors = field(default_factory=Colors)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ConfigStore:
    def __init__(self, initial: Config | None = None):
        self._lock = threading.Lock()
        self._config = initial if initial is not None else Config()

    def get(self) -> Config:
        with self._lock:
            return self._config

    def set(self, **changes) -> Config:
        with self._lock:
            self._config = replace(self._config, **changes)
            return self._config


# ---------------------------------------------------------------------------
# Runtime key bindings
# ---------------------------------------------------------------------------

KEY_BINDINGS: dict[str, tuple[str, bool]] = {
    "t": ("truncate", False),
    "T": ("truncate", True),
    "m": ("use_millis", False),
    "M": ("use_millis", True),
    "a": ("absolute_timestamps", False),
    "A": ("absolute_timestamps", True),
}


def apply_key(store: ConfigStore, key: str) -> bool:
    """Apply a runtime toggle. Returns False for keys with no binding."""
    binding = KEY_BINDINGS.get(key)
    if binding is None:
        return False
    name, value = binding
    store.set(**{name: value})
    return True
