"""Runtime — bridges HTTP requests to lifecycle and pipeline execution.

Validates Run bodies, dispatches an intent inside the top-level error
boundary, and yields the channel's SSE frames.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ragstack.channel import EventChannel
from ragstack.schemas import ProvisionRequest, StackIntent, StreamEvent

if TYPE_CHECKING:
    from ragstack.classifier import ErrorClassifier
    from ragstack.lifecycle.controller import LifecycleController
    from ragstack.pipeline import ProvisionPipeline

logger = logging.getLogger(__name__)

# Intent tasks outlive a disconnected client; keep them referenced until done.
_inflight: set[asyncio.Task] = set()


def validate_request(data: dict[str, Any]) -> ProvisionRequest:
    """Check that a Run body carries model, source and query.

    Raises ValueError with a descriptive message on failure.
    """
    try:
        return ProvisionRequest.model_validate(data)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            field = ".".join(str(p) for p in err["loc"]) or "body"
            problems.append(f"'{field}': {err['msg']}")
        raise ValueError(f"Invalid run request: {'; '.join(problems)}") from e


async def run_guarded(
    channel: EventChannel, operation: Awaitable[None], classifier: ErrorClassifier
) -> None:
    """Top-level result/error boundary for one request.

    Any fault escaping the operation is classified: benign faults are
    swallowed, real ones are logged and committed as a 500 fault (a no-op
    if something already committed). The channel is always closed.
    """
    try:
        await operation
    except Exception as e:
        if not classifier.is_benign(e):
            logger.error(f"Request failed: {e}", exc_info=True)
            channel.emit(StreamEvent.fault(f"Request failed: {e}"))
    finally:
        channel.close()


async def dispatch(
    intent: StackIntent,
    channel: EventChannel,
    *,
    controller: LifecycleController | None = None,
    pipeline: ProvisionPipeline | None = None,
    request: ProvisionRequest | None = None,
) -> None:
    """Run the control path selected by the intent."""
    match intent:
        case StackIntent.START:
            await controller.start(channel)
        case StackIntent.STOP:
            await controller.stop(channel)
        case StackIntent.RUN:
            await pipeline.run(request, channel)
        case _:
            raise ValueError(f"Unknown intent: {intent}")


async def execute_intent(
    intent: StackIntent,
    classifier: ErrorClassifier,
    *,
    controller: LifecycleController | None = None,
    pipeline: ProvisionPipeline | None = None,
    request: ProvisionRequest | None = None,
) -> AsyncGenerator[str, None]:
    """Execute an intent and yield SSE frames until its channel closes."""
    logger.info(f"Executing intent: {intent.value}")
    channel = EventChannel()
    operation = dispatch(
        intent, channel, controller=controller, pipeline=pipeline, request=request
    )
    task = asyncio.create_task(run_guarded(channel, operation, classifier))
    _inflight.add(task)
    task.add_done_callback(_inflight.discard)

    try:
        async for frame in channel.stream():
            yield frame
    finally:
        # Client gone or stream finished: stop producers that wait on the channel.
        channel.close()

    # The response ends with the stream. Work still running after the commit
    # (a slow bring-up) finishes in the background, held by _inflight.
    logger.info(
        f"Intent {intent.value} streamed "
        f"(committed={channel.committed}, code={channel.commit_code}, "
        f"background={not task.done()})"
    )
