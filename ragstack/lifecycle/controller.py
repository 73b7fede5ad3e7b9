"""Lifecycle controller — starts and stops the backing stack.

Start runs three tasks against one EventChannel:

    bring-up     ``compose up -d`` once; fault commit on failure
    health poll  ``compose ps`` up to max_try times; commits on healthy or error
    log tail     ``compose logs --follow``; stops when the channel closes

An initial single-attempt probe runs before the long probe and the log tail.
When the bring-up and the long probe are both done the channel is closed,
so a probe that never saw "healthy" ends the stream without a terminal
event.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from ragstack.errors import HealthCheckFault
from ragstack.schemas import HealthStatus, StreamEvent

if TYPE_CHECKING:
    from ragstack.channel import EventChannel
    from ragstack.classifier import ErrorClassifier
    from ragstack.config import StackConfig
    from ragstack.lifecycle.compose import ComposeRunner

logger = logging.getLogger(__name__)

STARTED = "DB and Ollama started"
STARTING = "DB Starting.."
START_IN_PROGRESS = "DB startup in progress.."
START_FAILED = "DB and Ollama start failed"
STOPPED = "DB and Ollama stopped"
STOP_FAILED = "DB and Ollama stop failed"


def parse_health(output: str) -> HealthStatus:
    """Map ``compose ps --format json`` output to a HealthStatus.

    Accepts one JSON object per line or a JSON array; the first entry wins.
    Output that is not JSON at all (containers not created yet) is UNKNOWN.
    Raises HealthCheckFault if the output looks like JSON but does not parse.
    """
    text = output.strip()
    if not text.startswith(("{", "[")):
        return HealthStatus.UNKNOWN

    try:
        if text.startswith("["):
            entries = json.loads(text)
            report = entries[0] if entries else None
        else:
            report = json.loads(text.splitlines()[0])
    except (json.JSONDecodeError, IndexError) as e:
        raise HealthCheckFault(f"Unparseable status report: {e}") from e

    if not isinstance(report, dict):
        return HealthStatus.UNKNOWN
    if str(report.get("Health", "")).lower() == "healthy":
        return HealthStatus.HEALTHY
    return HealthStatus.STARTING


class LifecycleController:
    """Start/stop the stack and supervise its health and logs."""

    def __init__(
        self,
        runner: ComposeRunner,
        stack: StackConfig,
        classifier: ErrorClassifier,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.runner = runner
        self.stack = stack
        self.classifier = classifier
        self._sleep = sleep

    async def start(self, channel: EventChannel) -> None:
        logger.info(f"Starting stack in {self.runner.working_directory}")
        up = asyncio.create_task(self._bring_up(channel))

        await self.wait_healthy(channel, self.stack.probe_attempts)

        async def settle() -> None:
            await asyncio.gather(up, self.wait_healthy(channel, self.stack.max_try))
            if not channel.committed:
                logger.warning(
                    f"Stack did not report healthy within {self.stack.max_try} polls; "
                    f"ending stream without a final status"
                )
            channel.close()

        await asyncio.gather(settle(), self.tail_logs(channel))

    async def stop(self, channel: EventChannel) -> None:
        logger.info(f"Stopping stack in {self.runner.working_directory}")

        async def teardown() -> None:
            try:
                await self.runner.down(channel)
            except Exception as e:
                self.classifier.report(e, STOP_FAILED)
                channel.emit(StreamEvent.fault(STOP_FAILED))
                return
            logger.info(STOPPED)
            channel.emit(StreamEvent.success(STOPPED))

        await asyncio.gather(teardown(), self.tail_logs(channel))

    async def wait_healthy(self, channel: EventChannel, max_try: int) -> HealthStatus:
        """Poll until healthy, a poll error, max_try attempts, or the channel closes."""
        status = HealthStatus.UNKNOWN
        count = 0
        while count < max_try and not channel.closed:
            try:
                status = await self.probe()
            except Exception as e:
                self.classifier.report(e, START_FAILED)
                channel.emit(StreamEvent.fault(START_FAILED))
                return HealthStatus.UNREACHABLE

            count += 1
            if status is HealthStatus.HEALTHY:
                logger.info(STARTED)
                channel.emit(StreamEvent.success(STARTED))
                return status
            if status is HealthStatus.STARTING:
                channel.emit(StreamEvent.progress(STARTING))

            if count < max_try:
                await self._sleep(self.stack.poll_interval)
        return status

    async def probe(self) -> HealthStatus:
        """One health poll of the database service."""
        result = await self.runner.ps(self.stack.db_service)
        return parse_health(result.out)

    async def tail_logs(self, channel: EventChannel) -> None:
        """Stream service logs until the channel closes. Observability only."""
        try:
            await self.runner.logs(channel)
        except Exception as e:
            self.classifier.report(e, "Log tail failed")

    async def _bring_up(self, channel: EventChannel) -> None:
        try:
            await self.runner.up(channel)
        except Exception as e:
            self.classifier.report(e, START_FAILED)
            channel.emit(StreamEvent.fault(START_FAILED))
            return
        channel.emit(StreamEvent.progress(START_IN_PROGRESS))
