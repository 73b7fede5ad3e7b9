"""RAG application — ingest sources into the vector store and answer queries.

Built by RagApplicationBuilder. ``query`` retrieves the closest chunks,
renders a prompt with them and the conversation history, asks the chat
model, and records both turns in the metadata store.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from ragstack.storage.base import ConversationEntry, ExtractChunk, InsertChunk, LoaderEntry

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings
    from langchain_core.language_models.chat_models import BaseChatModel

    from ragstack.rag.loaders import WebLoader
    from ragstack.storage.base import MetadataStore, VectorStore

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_MESSAGE = (
    "You are a helpful human like chat bot. Use relevant provided context and chat "
    "history to answer the query at the end. Answer in full. If you don't know the "
    "answer, just say that you don't know, don't try to make up an answer."
)

PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", "{system_message}\n\nContext:\n{context}"),
        MessagesPlaceholder("history"),
        ("human", "{question}"),
    ]
)


def _extract_content(content: Any) -> str:
    """Normalize message content — a chat model can return a list of blocks or a string."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict):
                parts.append(block.get("text", str(block)))
            else:
                parts.append(str(block))
        return "\n".join(parts)
    return str(content)


@dataclass
class AddLoaderResult:
    unique_id: str
    loader_type: str
    entries_added: int


@dataclass
class QueryResponse:
    id: str
    content: str
    sources: list[dict[str, Any]] = field(default_factory=list)


class RagApplication:
    def __init__(
        self,
        store: MetadataStore,
        vector_db: VectorStore,
        embedding_model: Embeddings,
        model: BaseChatModel,
        search_result_count: int = 7,
        system_message: str = DEFAULT_SYSTEM_MESSAGE,
    ) -> None:
        self.store = store
        self.vector_db = vector_db
        self.embedding_model = embedding_model
        self.model = model
        self.search_result_count = search_result_count
        self.system_message = system_message
        self.dimensions: int | None = None

    async def init(self) -> None:
        """Probe the embedding size, then initialize both stores."""
        sample = await self.embedding_model.aembed_query("Test sentence")
        self.dimensions = len(sample)
        logger.info(f"Embedding dimensions: {self.dimensions}")
        await self.vector_db.init(self.dimensions)
        await self.store.init()

    async def add_loader(self, loader: WebLoader) -> AddLoaderResult:
        """Ingest a loader's chunks, replacing anything previously stored for it."""
        unique_id = loader.unique_id
        documents = await loader.load_chunks()

        if await self.store.has_loader_metadata(unique_id):
            logger.info(f"Loader '{unique_id}' already present, replacing it")
            await self.delete_loader(unique_id)

        vectors = await self.embedding_model.aembed_documents(
            [doc.page_content for doc in documents]
        )
        chunks = [
            InsertChunk(page_content=doc.page_content, vector=vector, metadata=dict(doc.metadata))
            for doc, vector in zip(documents, vectors)
        ]
        added = await self.vector_db.insert_chunks(chunks)

        await self.store.add_loader_metadata(
            unique_id,
            LoaderEntry(
                unique_id=unique_id,
                type=loader.type,
                chunks_processed=added,
                loader_metadata=loader.metadata,
            ),
        )
        logger.info(f"Added {added} chunks from loader '{unique_id}'")
        return AddLoaderResult(unique_id=unique_id, loader_type=loader.type, entries_added=added)

    async def delete_loader(self, unique_id: str) -> bool:
        deleted = await self.vector_db.delete_keys(unique_id)
        await self.store.delete_loader_metadata_and_custom_values(unique_id)
        return deleted

    async def get_context(self, query: str) -> list[ExtractChunk]:
        """Closest chunks for a query, deduplicated by content."""
        vector = await self.embedding_model.aembed_query(query)
        results = await self.vector_db.similarity_search(vector, self.search_result_count)

        seen: set[str] = set()
        unique: list[ExtractChunk] = []
        for chunk in results:
            if chunk.page_content in seen:
                continue
            seen.add(chunk.page_content)
            unique.append(chunk)
        return unique

    async def query(self, user_query: str, conversation_id: str = "default") -> QueryResponse:
        context = await self.get_context(user_query)
        conversation = await self.store.get_conversation(conversation_id)

        history: list[BaseMessage] = [
            AIMessage(content=e.content) if e.actor == "AI" else HumanMessage(content=e.content)
            for e in conversation.entries
        ]
        messages = PROMPT.format_messages(
            system_message=self.system_message,
            context="\n\n".join(c.page_content for c in context) or "(no context)",
            history=history,
            question=user_query,
        )

        response = await self.model.ainvoke(messages)
        content = _extract_content(response.content)

        sources = []
        for chunk in context:
            source = chunk.metadata.get("source")
            if source and all(s["source"] != source for s in sources):
                sources.append({"source": source, "score": chunk.score})

        now = datetime.now(timezone.utc)
        await self.store.add_entry_to_conversation(
            conversation_id,
            ConversationEntry(id=str(uuid.uuid4()), content=user_query, actor="HUMAN", timestamp=now),
        )
        answer = ConversationEntry(
            id=str(uuid.uuid4()),
            content=content,
            actor="AI",
            timestamp=datetime.now(timezone.utc),
            sources=sources,
        )
        await self.store.add_entry_to_conversation(conversation_id, answer)

        return QueryResponse(id=answer.id, content=content, sources=sources)
