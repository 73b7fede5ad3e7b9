"""Compose runner — drives ``<executable> compose ...`` as asyncio subprocesses.

Output of a command can be streamed line by line into an EventChannel
while it runs. Failures surface as ProcessFault.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ragstack.errors import ProcessFault
from ragstack.schemas import StreamEvent

if TYPE_CHECKING:
    from ragstack.channel import EventChannel
    from ragstack.config import StackConfig

logger = logging.getLogger(__name__)

_READ_SIZE = 64 * 1024


@dataclass
class ProcessResult:
    command: list[str]
    exit_code: int
    out: str
    err: str


class ComposeRunner:
    """Runs compose commands inside the stack's working directory."""

    def __init__(self, working_directory: str, stack: StackConfig) -> None:
        self.working_directory = working_directory
        self.stack = stack

    @property
    def executable(self) -> str:
        return self.stack.executable

    def command(self, *args: str) -> list[str]:
        return [self.stack.executable, *self.stack.compose_command, *args]

    # -----------------------------------------------------------------------
    # Stack actions
    # -----------------------------------------------------------------------

    async def up(self, channel: EventChannel | None = None) -> ProcessResult:
        return await self.run("up", "-d", channel=channel)

    async def down(self, channel: EventChannel | None = None) -> ProcessResult:
        return await self.run("down", channel=channel)

    async def ps(self, service: str) -> ProcessResult:
        return await self.run("ps", "--format", "json", service)

    async def logs(self, channel: EventChannel) -> None:
        await self.follow("logs", "--follow", *self.stack.log_services, channel=channel)

    async def exec(
        self, service: str, *command: str, channel: EventChannel | None = None
    ) -> ProcessResult:
        return await self.run("exec", "-T", service, *command, channel=channel)

    # -----------------------------------------------------------------------
    # Process plumbing
    # -----------------------------------------------------------------------

    async def run(self, *args: str, channel: EventChannel | None = None) -> ProcessResult:
        """Run a command to completion. Raises ProcessFault on a non-zero exit."""
        cmd = self.command(*args)
        logger.debug(f"Running: {' '.join(cmd)}")
        proc = await self._spawn(cmd, merge_stderr=False)

        try:
            out, err = await asyncio.gather(
                _pump(proc.stdout, channel), _pump(proc.stderr, channel)
            )
            exit_code = await proc.wait()
        except (OSError, ValueError) as e:
            raise ProcessFault(
                f"Reading output of '{' '.join(cmd)}' failed: {e}", command=cmd
            ) from e
        finally:
            await _reap(proc)

        if exit_code != 0:
            raise ProcessFault(
                f"'{' '.join(cmd)}' exited with code {exit_code}",
                command=cmd,
                exit_code=exit_code,
                stderr=err,
            )
        return ProcessResult(command=cmd, exit_code=exit_code, out=out, err=err)

    async def follow(self, *args: str, channel: EventChannel) -> None:
        """Stream a never-ending command into the channel until the channel closes."""
        cmd = self.command(*args)
        logger.debug(f"Following: {' '.join(cmd)}")
        proc = await self._spawn(cmd, merge_stderr=True)

        lines = _LineSplitter()
        closed = asyncio.ensure_future(channel.wait_closed())
        try:
            while True:
                read_task = asyncio.ensure_future(proc.stdout.read(_READ_SIZE))
                done, _ = await asyncio.wait(
                    {read_task, closed}, return_when=asyncio.FIRST_COMPLETED
                )
                if read_task not in done:
                    read_task.cancel()
                    break
                chunk = read_task.result()
                if not chunk:
                    _emit_all(channel, lines.flush())
                    break
                _emit_all(channel, lines.feed(chunk))
        finally:
            closed.cancel()
            await _reap(proc)

    async def _spawn(self, cmd: list[str], merge_stderr: bool) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *cmd,
                cwd=self.working_directory,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            if e.filename == cmd[0]:
                raise ProcessFault(
                    f"Executable not found: {cmd[0]}",
                    command=cmd,
                    missing_executable=True,
                ) from e
            raise ProcessFault(
                f"Cannot start '{' '.join(cmd)}': {e}", command=cmd
            ) from e


class _LineSplitter:
    """Cuts raw output into lines without a line-length limit.

    Progress bars redraw with a bare carriage return, so a carriage return
    ends a line too. A run of output longer than _READ_SIZE without any line break is
    passed on as it is.
    """

    def __init__(self) -> None:
        self._pending = b""

    def feed(self, chunk: bytes) -> list[bytes]:
        parts = (self._pending + chunk).splitlines(keepends=True)
        self._pending = b""
        if parts and not parts[-1].endswith((b"\n", b"\r")):
            self._pending = parts.pop()
        if len(self._pending) >= _READ_SIZE:
            parts.append(self._pending)
            self._pending = b""
        return parts

    def flush(self) -> list[bytes]:
        rest, self._pending = self._pending, b""
        return [rest] if rest else []


def _emit_all(channel: EventChannel | None, lines: list[bytes]) -> None:
    if channel is None:
        return
    for line in lines:
        channel.emit(StreamEvent.progress(line.decode("utf-8", errors="replace")))


async def _pump(stream: asyncio.StreamReader | None, channel: EventChannel | None) -> str:
    """Collect a pipe's output, echoing each line to the channel."""
    if stream is None:
        return ""
    collected = bytearray()
    lines = _LineSplitter()
    while chunk := await stream.read(_READ_SIZE):
        collected += chunk
        _emit_all(channel, lines.feed(chunk))
    _emit_all(channel, lines.flush())
    return collected.decode("utf-8", errors="replace")


async def _reap(proc: asyncio.subprocess.Process) -> None:
    """Terminate the child if it is still running and wait for it to exit."""
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
    await proc.wait()
