#!/usr/bin/env python3
"""
stamprun -- run a command with a timestamped, stream-tagged transcript.

Usage:
    python main.py make -j8
    python main.py -m -t -- ./long-job.sh --verbose
"""
from __future__ import annotations

from stamprun.cli import main

if __name__ == "__main__":
    main()
