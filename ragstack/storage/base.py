"""Storage boundaries used by the RAG backend.

The pipeline only constructs stores, hands them to the RAG builder and
closes them. Everything else is called by RagApplication.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal


@dataclass
class LoaderEntry:
    unique_id: str
    type: str
    chunks_processed: int
    loader_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ConversationEntry:
    id: str
    content: str
    actor: Literal["HUMAN", "AI", "SYSTEM"]
    timestamp: datetime
    sources: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class Conversation:
    conversation_id: str
    entries: list[ConversationEntry] = field(default_factory=list)


@dataclass
class InsertChunk:
    """A chunk ready for insertion. ``metadata`` carries id, unique_loader_id and source."""

    page_content: str
    vector: list[float]
    metadata: dict[str, Any]


@dataclass
class ExtractChunk:
    page_content: str
    metadata: dict[str, Any]
    score: float


class MetadataStore(ABC):
    """Loader and conversation records, keyed by identifiers."""

    @abstractmethod
    async def init(self) -> None: ...

    @abstractmethod
    async def add_loader_metadata(self, loader_id: str, value: LoaderEntry) -> None: ...

    @abstractmethod
    async def get_loader_metadata(self, loader_id: str) -> LoaderEntry:
        """Raises KeyError if the loader is unknown."""

    @abstractmethod
    async def has_loader_metadata(self, loader_id: str) -> bool: ...

    @abstractmethod
    async def get_all_loader_metadata(self) -> list[LoaderEntry]: ...

    @abstractmethod
    async def loader_custom_set(self, loader_id: str, key: str, value: dict[str, Any]) -> None: ...

    @abstractmethod
    async def loader_custom_get(self, key: str) -> dict[str, Any]: ...

    @abstractmethod
    async def loader_custom_has(self, key: str) -> bool: ...

    @abstractmethod
    async def loader_custom_delete(self, key: str) -> None: ...

    @abstractmethod
    async def delete_loader_metadata_and_custom_values(self, loader_id: str) -> None: ...

    @abstractmethod
    async def add_conversation(self, conversation_id: str) -> None: ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation: ...

    @abstractmethod
    async def has_conversation(self, conversation_id: str) -> bool: ...

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> None: ...

    @abstractmethod
    async def add_entry_to_conversation(
        self, conversation_id: str, entry: ConversationEntry
    ) -> None: ...

    @abstractmethod
    async def clear_conversations(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...


class VectorStore(ABC):
    """Embedded chunks with k-nearest similarity search."""

    @abstractmethod
    async def init(self, dimensions: int) -> None: ...

    @abstractmethod
    async def insert_chunks(self, chunks: list[InsertChunk]) -> int:
        """Returns the number of rows inserted."""

    @abstractmethod
    async def similarity_search(self, query: list[float], k: int) -> list[ExtractChunk]:
        """Closest chunks first; ``score`` is the cosine similarity."""

    @abstractmethod
    async def get_vector_count(self) -> int: ...

    @abstractmethod
    async def delete_keys(self, unique_loader_id: str) -> bool: ...

    @abstractmethod
    async def reset(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...
