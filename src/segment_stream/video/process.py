"""Lifecycle management for external codec processes.

A ``ProcessBridge`` owns one child process and its pipes. The process's
diagnostic stream is drained continuously into a bounded tail so it can never
block the child and can be attached to error messages.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, List, Optional, Sequence

from pydantic import BaseModel, Field

from segment_stream.errors import ExternalProcessError, LaunchError

logger = logging.getLogger(__name__)


class FFmpegConfig(BaseModel):
    """Configuration for external ffmpeg/ffprobe invocations."""

    ffmpeg_binary: str = Field("ffmpeg", description="ffmpeg executable")
    ffprobe_binary: str = Field("ffprobe", description="ffprobe executable")
    stderr_tail_lines: int = Field(
        50, ge=1, le=1000, description="Diagnostic lines kept for error reports"
    )


class ProcessBridge:
    """Owning handle around an external process.

    Subclasses decide which pipes are connected. ``kill()`` may be called at
    any time and any number of times; ``finish()`` checks the exit status.

    Example:
        >>> async with await FFmpegDecoder.spawn("in.mp4", 640, 480) as decoder:
        ...     frame = await decoder.read_frame()
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        name: str,
        stderr_tail_lines: int = 50,
    ) -> None:
        """Initialize bridge around an already started process.

        Args:
            process: Running child process
            name: Human readable name used in logs and errors
            stderr_tail_lines: Number of diagnostic lines to keep
        """
        self._process = process
        self._name = name
        self._stderr_tail: Deque[str] = deque(maxlen=stderr_tail_lines)
        self._stderr_task: Optional[asyncio.Task] = None
        self._finished = False

        if process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr())

    @staticmethod
    async def _launch(
        command: Sequence[str],
        name: str,
        stdin: bool = False,
        stdout: bool = False,
    ) -> asyncio.subprocess.Process:
        """Start a child process with the requested pipes.

        Raises:
            LaunchError: If the executable cannot be started
        """
        if not command:
            raise LaunchError(f"Empty command for {name}")

        logger.debug(f"Spawning {name}: {' '.join(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE if stdin else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE if stdout else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise LaunchError(
                f"Failed to run `{command[0]}` for {name} (is it installed?): {e}"
            ) from e

        logger.info(f"Started {name} (pid {process.pid})")
        return process

    async def _drain_stderr(self) -> None:
        """Keep the last lines of the process's diagnostic output."""
        if self._process.stderr is None:
            return
        while True:
            try:
                line = await self._process.stderr.readline()
            except ValueError:
                # Overlong line, already discarded by the reader
                continue
            if not line:
                break
            text = line.decode(errors="replace").rstrip()
            if text:
                self._stderr_tail.append(text)

    async def _collect_stderr(self) -> None:
        """Wait for the stderr drain to reach end of stream."""
        if self._stderr_task is None:
            return
        try:
            await self._stderr_task
        except asyncio.CancelledError:
            pass
        except (OSError, ValueError) as e:
            logger.debug(f"Lost {self._name} diagnostic stream: {e}")

    async def _wait_and_check(self) -> None:
        """Wait for exit and raise if the exit status is non-zero.

        Raises:
            ExternalProcessError: If the process failed
        """
        returncode = await self._process.wait()
        await self._collect_stderr()
        self._finished = True

        if returncode != 0:
            raise ExternalProcessError(self._name, returncode, self.stderr_tail)

        logger.info(f"{self._name} exited cleanly")

    async def kill(self) -> None:
        """Forcibly terminate the process if it is still running.

        Safe to call on an exited or already killed process.
        """
        if self._process.returncode is None:
            try:
                self._process.kill()
            except ProcessLookupError:
                pass
            else:
                logger.info(f"Killed {self._name} (pid {self._process.pid})")

        await self._process.wait()

        if self._stderr_task is not None and not self._stderr_task.done():
            self._stderr_task.cancel()
        await self._collect_stderr()
        self._finished = True

    async def __aenter__(self) -> "ProcessBridge":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self._finished:
            await self.kill()

    @property
    def name(self) -> str:
        return self._name

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def is_finished(self) -> bool:
        return self._finished

    @property
    def stderr_tail(self) -> str:
        """Get the captured diagnostic lines joined by newlines."""
        return "\n".join(self._stderr_tail)

    @property
    def stderr_lines(self) -> List[str]:
        return list(self._stderr_tail)
