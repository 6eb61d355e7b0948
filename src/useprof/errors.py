"""
Error taxonomy of the profiling pipeline.

Every stage fails fast with one of these; the command line layer turns them
into a message and an exit code.
"""

from typing import Final

STDERR_LIMIT: Final = 64 * 1024


class UseProfError(Exception):
    """Base class for all pipeline errors."""

    exit_code: int = 1


class ToolUnavailable(UseProfError):
    """The external profiler is not installed or not on the search path."""

    exit_code = 2


class CaptureFailed(UseProfError):
    """The external profiler ran and reported failure."""

    exit_code = 3

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        detail = message
        if returncode is not None:
            detail += f" (exit status {returncode})"
        if stderr.strip():
            detail += f": {stderr.strip()}"
        super().__init__(detail)


class CaptureCancelled(CaptureFailed):
    """The capture was aborted by a signal or a deadline."""

    exit_code = 130


class EmptyInput(UseProfError):
    """The raw profiler output held no parseable stack record."""

    exit_code = 4


class EmptyTree(UseProfError):
    """The folded stacks add up to zero samples, there is nothing to draw."""

    exit_code = 4


def tail(text: str, limit: int = STDERR_LIMIT) -> str:
    """Keep at most the last ``limit`` characters of ``text``."""
    if len(text) <= limit:
        return text
    return "[...truncated...]\n" + text[-limit:]
