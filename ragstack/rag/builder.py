"""RAG application builder — wires storage and models into a RagApplication.

    RagApplicationBuilder()
        .set_store(store)
        .set_vector_database(vector_db)
        .set_embedding_model(OllamaEmbeddings(...))
        .set_model(OllamaChat(...))
        .build()

``build()`` initializes the stores, so it performs I/O and must be awaited.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ragstack.rag.application import DEFAULT_SYSTEM_MESSAGE, RagApplication

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings
    from langchain_core.language_models.chat_models import BaseChatModel

    from ragstack.storage.base import MetadataStore, VectorStore

logger = logging.getLogger(__name__)


class RagApplicationBuilder:
    def __init__(self) -> None:
        self._store: MetadataStore | None = None
        self._vector_db: VectorStore | None = None
        self._embedding_model: Embeddings | None = None
        self._model: BaseChatModel | None = None
        self._search_result_count = 7
        self._system_message = DEFAULT_SYSTEM_MESSAGE

    def set_store(self, store: MetadataStore) -> RagApplicationBuilder:
        self._store = store
        return self

    def set_vector_database(self, vector_db: VectorStore) -> RagApplicationBuilder:
        self._vector_db = vector_db
        return self

    def set_embedding_model(self, embedding_model: Embeddings) -> RagApplicationBuilder:
        self._embedding_model = embedding_model
        return self

    def set_model(self, model: BaseChatModel) -> RagApplicationBuilder:
        self._model = model
        return self

    def set_search_result_count(self, count: int) -> RagApplicationBuilder:
        if count < 1:
            raise ValueError("search result count must be at least 1")
        self._search_result_count = count
        return self

    def set_system_message(self, message: str) -> RagApplicationBuilder:
        self._system_message = message
        return self

    async def build(self) -> RagApplication:
        """Validate collaborators, initialize stores, and return the application."""
        missing = [
            name
            for name, value in (
                ("store", self._store),
                ("vector database", self._vector_db),
                ("embedding model", self._embedding_model),
                ("model", self._model),
            )
            if value is None
        ]
        if missing:
            raise ValueError(f"RAG application is missing: {', '.join(missing)}")

        app = RagApplication(
            store=self._store,
            vector_db=self._vector_db,
            embedding_model=self._embedding_model,
            model=self._model,
            search_result_count=self._search_result_count,
            system_message=self._system_message,
        )
        await app.init()
        logger.info(f"Built RAG application (search_result_count={self._search_result_count})")
        return app
