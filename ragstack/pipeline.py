"""Provision pipeline — reserve a model, build the RAG backend, load one source, ask one query.

Steps run strictly in order and each announces itself on the channel:

    1. pull the model inside the ollama service (blocking)
    2. warm it with a keep-alive window (background, not awaited)
    3. build the RAG backend (metadata store, vector store, model)
    4. load the document source
    5. run the query
    6. stream the answer, then commit it as the final payload

Whatever happens, the model release and both store closes are attempted
before the terminal event is emitted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from ragstack.errors import PipelineFault
from ragstack.rag.builder import RagApplicationBuilder
from ragstack.rag.loaders import WebLoader
from ragstack.rag.ollama import OllamaChat, OllamaEmbeddings
from ragstack.schemas import PipelineOutcome, StreamEvent
from ragstack.storage import create_stores

if TYPE_CHECKING:
    from ragstack.channel import EventChannel
    from ragstack.classifier import ErrorClassifier
    from ragstack.config import Settings
    from ragstack.lifecycle.compose import ComposeRunner
    from ragstack.rag.application import RagApplication
    from ragstack.schemas import ProvisionRequest
    from ragstack.storage.base import MetadataStore, VectorStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

PIPELINE_FAILED = "Provisioning failed"

StoreFactory = Callable[["Settings"], "tuple[MetadataStore, VectorStore]"]
BackendFactory = Callable[
    ["Settings", str, "MetadataStore", "VectorStore"], Awaitable["RagApplication"]
]


async def build_backend(
    settings: Settings, model_name: str, store: MetadataStore, vector_db: VectorStore
) -> RagApplication:
    """Default backend: the reserved Ollama model embeds and answers."""
    ollama = settings.ollama
    return await (
        RagApplicationBuilder()
        .set_store(store)
        .set_vector_database(vector_db)
        .set_embedding_model(
            OllamaEmbeddings(model=model_name, base_url=ollama.base_url, timeout=ollama.timeout)
        )
        .set_model(
            OllamaChat(
                model=model_name,
                base_url=ollama.base_url,
                temperature=ollama.temperature,
                timeout=ollama.timeout,
            )
        )
        .set_search_result_count(settings.rag.search_result_count)
        .build()
    )


class ProvisionPipeline:
    def __init__(
        self,
        settings: Settings,
        runner: ComposeRunner,
        classifier: ErrorClassifier,
        stores: StoreFactory = create_stores,
        backend: BackendFactory = build_backend,
    ) -> None:
        self.settings = settings
        self.runner = runner
        self.classifier = classifier
        self._stores = stores
        self._backend = backend
        self._warmups: set[asyncio.Task] = set()

    @property
    def service(self) -> str:
        return self.settings.stack.ollama_service

    async def run(self, request: ProvisionRequest, channel: EventChannel) -> PipelineOutcome:
        model = request.model_name
        channel.emit(StreamEvent.progress(f"Processing model: {model}.. \n"))

        store: MetadataStore | None = None
        vector_db: VectorStore | None = None
        outcome = PipelineOutcome(faulted=True)
        try:
            try:
                store, vector_db = self._stores(self.settings)
            except Exception as e:
                raise PipelineFault("storage setup", e) from e
            answer = await self._execute(request, store, vector_db, channel)
            outcome = PipelineOutcome(answer_text=answer)
        except PipelineFault as e:
            self.classifier.report(e.cause, f"Provisioning '{model}' failed at {e.step}")
        finally:
            await self._cleanup(model, store, vector_db)

        if outcome.faulted:
            channel.emit(StreamEvent.fault(PIPELINE_FAILED))
        else:
            channel.emit(StreamEvent.success(outcome.answer_text))
        return outcome

    async def _execute(
        self,
        request: ProvisionRequest,
        store: MetadataStore,
        vector_db: VectorStore,
        channel: EventChannel,
    ) -> str:
        model = request.model_name
        source = request.document_source

        await _step(
            "model reserve",
            self.runner.exec(self.service, "ollama", "pull", model, channel=channel),
        )
        self._warm(model, channel)

        channel.emit(StreamEvent.progress("Building RAG Application.\n"))
        app = await _step(
            "backend build", self._backend(self.settings, model, store, vector_db)
        )
        channel.emit(StreamEvent.progress("RAG Application initialized.\n"))

        channel.emit(StreamEvent.progress(f"Loading data from {source}."))
        loader = WebLoader(
            source,
            chunk_size=self.settings.rag.chunk_size,
            chunk_overlap=self.settings.rag.chunk_overlap,
        )
        await _step("document load", app.add_loader(loader))
        channel.emit(StreamEvent.progress(f"Data loaded from {source}.\n"))

        channel.emit(StreamEvent.progress(f"Asking query: {request.query}.\n"))
        response = await _step("query", app.query(request.query))
        channel.emit(StreamEvent.progress("Response received for query.\n"))
        channel.emit(StreamEvent.progress(response.content))
        return response.content

    def _warm(self, model: str, channel: EventChannel) -> None:
        """Start the model with a keep-alive window without waiting for it."""
        task = asyncio.create_task(
            self.runner.exec(
                self.service,
                "ollama",
                "run",
                model,
                "--keepalive",
                self.settings.ollama.keepalive,
                channel=channel,
            )
        )
        self._warmups.add(task)
        task.add_done_callback(self._warm_done)

    def _warm_done(self, task: asyncio.Task) -> None:
        self._warmups.discard(task)
        if task.cancelled():
            return
        if task.exception() is not None:
            self.classifier.report(task.exception(), "Model warm-up failed")

    async def _cleanup(
        self, model: str, store: MetadataStore | None, vector_db: VectorStore | None
    ) -> None:
        """Best-effort release of the model and the storage connections."""
        try:
            await self.runner.exec(self.service, "ollama", "stop", model)
        except Exception as e:
            self.classifier.report(e, f"Releasing model '{model}' failed")

        for resource in (store, vector_db):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                self.classifier.report(e, f"Closing {type(resource).__name__} failed")


async def _step(name: str, awaitable: Awaitable[T]) -> T:
    """Await one pipeline step, wrapping any failure in PipelineFault."""
    try:
        return await awaitable
    except Exception as e:
        raise PipelineFault(name, e) from e
