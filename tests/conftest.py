"""Pytest configuration and fixtures."""

import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ragstack.classifier import ErrorClassifier  # noqa: E402
from ragstack.config import Settings, StackConfig  # noqa: E402
from ragstack.lifecycle.compose import ProcessResult  # noqa: E402
from ragstack.schemas import StreamEvent  # noqa: E402


class FakeRunner:
    """Stands in for ComposeRunner. Records every call.

    ps_outputs   — consumed one per ps() call; an Exception item is raised,
                   the last item repeats once the list is exhausted
    errors       — maps an action ("up", "down", "pull", "run", "stop") to
                   the exception it raises
    log_lines    — emitted by logs() before it waits for the channel to close
    """

    def __init__(self, ps_outputs=None, errors=None, log_lines=(), executable="podman"):
        self.working_directory = "/srv/stack"
        self.executable = executable
        self.ps_outputs = list(ps_outputs or [""])
        self.errors = dict(errors or {})
        self.log_lines = list(log_lines)
        self.calls: list[tuple] = []

    def _result(self, *args, out=""):
        return ProcessResult(command=[self.executable, "compose", *args], exit_code=0, out=out, err="")

    def _maybe_fail(self, action):
        if action in self.errors:
            raise self.errors[action]

    async def up(self, channel=None):
        self.calls.append(("up",))
        await asyncio.sleep(0)
        self._maybe_fail("up")
        return self._result("up", "-d")

    async def down(self, channel=None):
        self.calls.append(("down",))
        await asyncio.sleep(0)
        self._maybe_fail("down")
        return self._result("down")

    async def ps(self, service):
        self.calls.append(("ps", service))
        await asyncio.sleep(0)
        item = self.ps_outputs.pop(0) if len(self.ps_outputs) > 1 else self.ps_outputs[0]
        if isinstance(item, Exception):
            raise item
        return self._result("ps", out=item)

    async def logs(self, channel):
        self.calls.append(("logs",))
        for line in self.log_lines:
            channel.emit(StreamEvent.progress(line))
        await channel.wait_closed()

    async def exec(self, service, *command, channel=None):
        self.calls.append(("exec", service, *command))
        await asyncio.sleep(0)
        self._maybe_fail(command[1])
        return self._result("exec", "-T", service, *command)

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)

    def exec_count(self, action):
        return sum(1 for call in self.calls if call[0] == "exec" and call[3] == action)


async def no_sleep(_seconds):
    await asyncio.sleep(0)


async def drain(channel):
    """Collect everything left in a closed channel."""
    return [event async for event in channel.events()]


@pytest.fixture
def stack_config():
    return StackConfig(working_directory="/srv/stack", probe_attempts=1, max_try=20)


@pytest.fixture
def settings(stack_config):
    return Settings(stack=stack_config)


@pytest.fixture
def classifier():
    return ErrorClassifier("podman")
