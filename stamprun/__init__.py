"""
stamprun -- run a command under a timestamped, stream-tagged transcript.
"""

__version__ = "0.3.0"
