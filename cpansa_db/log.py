"""Pluggable progress logger.

Components never print directly; they receive a ``Logger`` so the CLI can
swap in a silent implementation for ``--quiet`` runs.
"""

import sys
from abc import ABC, abstractmethod
from typing import TextIO


class Logger(ABC):
    """Interface for non-fatal progress and warning messages."""

    @abstractmethod
    def info(self, message: str) -> None:
        """Report progress."""
        ...

    @abstractmethod
    def warning(self, message: str) -> None:
        """Report a skipped input or other recoverable condition."""
        ...


class NullLogger(Logger):
    """Discards every message."""

    def info(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass


class StreamLogger(Logger):
    """Writes messages to a text stream, one per line.

    Attributes:
        stream: Destination stream.  Defaults to ``sys.stderr`` at call time
            so that pytest's ``capsys`` sees the output.
    """

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream

    def _write(self, line: str) -> None:
        print(line, file=self.stream or sys.stderr)

    def info(self, message: str) -> None:
        self._write(message)

    def warning(self, message: str) -> None:
        self._write(f"Warning: {message}")


def make_logger(quiet: bool, stream: TextIO | None = None) -> Logger:
    """Return a silent logger when ``quiet`` is set, else a stream logger."""
    if quiet:
        return NullLogger()
    return StreamLogger(stream)
