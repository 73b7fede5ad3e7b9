"""ragstack — FastAPI app driving the database + Ollama stack.

One resource, three intents, each streamed back as Server-Sent Events:

    POST   /api/backend   start the stack
    DELETE /api/backend   stop the stack
    PUT    /api/backend   pull a model, load a source, answer a query

plus operational endpoints for health, config viewing, and hot-reload.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from ragstack.classifier import ErrorClassifier
from ragstack.config import Settings, get_config, load_config, reload_config
from ragstack.errors import ConfigurationFault
from ragstack.lifecycle import ComposeRunner, LifecycleController
from ragstack.pipeline import ProvisionPipeline
from ragstack.runtime import execute_intent, validate_request
from ragstack.schemas import StackIntent

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load config on startup."""
    config = load_config()
    logger.info(
        f"ragstack started (executable={config.stack.executable}, "
        f"config_dir={'set' if config.stack.working_directory else 'unset'}, "
        f"storage={config.rag.storage})"
    )
    yield
    logger.info("ragstack shutting down")


# Load config early so we can read allowed_origins for CORS middleware.
_boot_config = load_config()

app = FastAPI(title="ragstack", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_boot_config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationFault)
async def configuration_fault_handler(request: Request, exc: ConfigurationFault):
    logger.error(f"Configuration error: {exc}")
    return JSONResponse(status_code=500, content={"message": str(exc)})


# ---------------------------------------------------------------------------
# Dependencies (configuration is read once per request and passed down)
# ---------------------------------------------------------------------------


def get_settings() -> Settings:
    return get_config()


def get_classifier(settings: Settings = Depends(get_settings)) -> ErrorClassifier:
    return ErrorClassifier(settings.stack.executable)


def get_runner(settings: Settings = Depends(get_settings)) -> ComposeRunner:
    """Raises ConfigurationFault before anything runs if config_dir is unset."""
    return ComposeRunner(settings.require_working_directory(), settings.stack)


def get_controller(
    settings: Settings = Depends(get_settings),
    runner: ComposeRunner = Depends(get_runner),
    classifier: ErrorClassifier = Depends(get_classifier),
) -> LifecycleController:
    return LifecycleController(runner, settings.stack, classifier)


def get_pipeline(
    settings: Settings = Depends(get_settings),
    runner: ComposeRunner = Depends(get_runner),
    classifier: ErrorClassifier = Depends(get_classifier),
) -> ProvisionPipeline:
    return ProvisionPipeline(settings, runner, classifier)


def _event_stream(frames: AsyncGenerator[str, None]) -> StreamingResponse:
    return StreamingResponse(
        frames,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


async def _read_body(request: Request) -> dict[str, Any]:
    """Accept a JSON object or a (multipart / urlencoded) form."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        data = await request.json()
        return data if isinstance(data, dict) else {}
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


# ---------------------------------------------------------------------------
# Intent endpoints
# ---------------------------------------------------------------------------


@app.post("/api/backend")
async def start_stack(
    controller: LifecycleController = Depends(get_controller),
    classifier: ErrorClassifier = Depends(get_classifier),
):
    """Start the stack and stream bring-up, health and log events."""
    return _event_stream(
        execute_intent(StackIntent.START, classifier, controller=controller)
    )


@app.delete("/api/backend")
async def stop_stack(
    controller: LifecycleController = Depends(get_controller),
    classifier: ErrorClassifier = Depends(get_classifier),
):
    """Tear the stack down and stream its output."""
    return _event_stream(
        execute_intent(StackIntent.STOP, classifier, controller=controller)
    )


@app.put("/api/backend")
async def run_pipeline(
    request: Request,
    pipeline: ProvisionPipeline = Depends(get_pipeline),
    classifier: ErrorClassifier = Depends(get_classifier),
):
    """Reserve a model, load a document source and answer one query."""
    try:
        provision = validate_request(await _read_body(request))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return _event_stream(
        execute_intent(StackIntent.RUN, classifier, pipeline=pipeline, request=provision)
    )


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    """Liveness check."""
    config = get_config()
    return {
        "status": "healthy",
        "executable": config.stack.executable,
        "configured": config.stack.working_directory is not None,
    }


@app.get("/config")
async def get_current_config():
    """Return current config as JSON, secrets redacted."""
    return get_config().public_view()


@app.post("/reload")
async def reload():
    """Hot-reload the config file and environment without a restart."""
    try:
        new_config = reload_config()
        return {
            "status": "reloaded",
            "executable": new_config.stack.executable,
            "storage": new_config.rag.storage,
        }
    except Exception as e:
        logger.error(f"Reload failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Reload failed: {e}")
