"""Exception hierarchy for the frame streaming pipeline.

Every failure raised by the pipeline core derives from ``StreamError`` so the
CLI can report it with one handler. None of these are retried.
"""

from typing import Optional


class StreamError(Exception):
    """Base class for all pipeline errors."""


class LaunchError(StreamError):
    """An external binary is missing or could not be started."""


class TruncatedStreamError(StreamError):
    """End of stream was reached in the middle of a frame."""

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(
            f"Stream ended mid-frame: got {received} of {expected} bytes"
        )
        self.expected = expected
        self.received = received


class SizeError(StreamError, ValueError):
    """A pixel buffer does not have the size its dimensions require."""


class StreamIOError(StreamError):
    """Reading from or writing to a process pipe failed."""


class ExternalProcessError(StreamError):
    """An external process exited with a non-zero status.

    Attributes:
        returncode: Exit status of the process
        stderr_tail: Last lines the process wrote to its diagnostic stream
    """

    def __init__(
        self, name: str, returncode: Optional[int], stderr_tail: str = ""
    ) -> None:
        message = f"{name} exited with status {returncode}"
        if stderr_tail:
            message = f"{message}: {stderr_tail}"
        super().__init__(message)
        self.name = name
        self.returncode = returncode
        self.stderr_tail = stderr_tail


class CaptureError(StreamError):
    """A camera could not be opened, read, or delivered an unknown format."""
