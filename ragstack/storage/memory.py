"""In-process stores. Nothing survives the process; used for development and tests."""

from __future__ import annotations

import copy
import math
from typing import Any

from ragstack.storage.base import (
    Conversation,
    ConversationEntry,
    ExtractChunk,
    InsertChunk,
    LoaderEntry,
    MetadataStore,
    VectorStore,
)


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryStore(MetadataStore):
    def __init__(self) -> None:
        self._loaders: dict[str, LoaderEntry] = {}
        self._custom: dict[str, tuple[str, dict[str, Any]]] = {}
        self._conversations: dict[str, Conversation] = {}
        self.closed = False

    async def init(self) -> None:
        self._loaders.clear()
        self._custom.clear()
        self._conversations.clear()

    async def add_loader_metadata(self, loader_id: str, value: LoaderEntry) -> None:
        self._loaders[loader_id] = copy.deepcopy(value)

    async def get_loader_metadata(self, loader_id: str) -> LoaderEntry:
        if loader_id not in self._loaders:
            raise KeyError(f"Unknown loader '{loader_id}'")
        return copy.deepcopy(self._loaders[loader_id])

    async def has_loader_metadata(self, loader_id: str) -> bool:
        return loader_id in self._loaders

    async def get_all_loader_metadata(self) -> list[LoaderEntry]:
        return [copy.deepcopy(v) for v in self._loaders.values()]

    async def loader_custom_set(self, loader_id: str, key: str, value: dict[str, Any]) -> None:
        self._custom[key] = (loader_id, copy.deepcopy(value))

    async def loader_custom_get(self, key: str) -> dict[str, Any]:
        if key not in self._custom:
            return {}
        return copy.deepcopy(self._custom[key][1])

    async def loader_custom_has(self, key: str) -> bool:
        return key in self._custom

    async def loader_custom_delete(self, key: str) -> None:
        self._custom.pop(key, None)

    async def delete_loader_metadata_and_custom_values(self, loader_id: str) -> None:
        self._loaders.pop(loader_id, None)
        for key in [k for k, (owner, _) in self._custom.items() if owner == loader_id]:
            del self._custom[key]

    async def add_conversation(self, conversation_id: str) -> None:
        self._conversations.setdefault(conversation_id, Conversation(conversation_id))

    async def get_conversation(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id, Conversation(conversation_id))
        return copy.deepcopy(conversation)

    async def has_conversation(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    async def delete_conversation(self, conversation_id: str) -> None:
        self._conversations.pop(conversation_id, None)

    async def add_entry_to_conversation(
        self, conversation_id: str, entry: ConversationEntry
    ) -> None:
        await self.add_conversation(conversation_id)
        self._conversations[conversation_id].entries.append(copy.deepcopy(entry))

    async def clear_conversations(self) -> None:
        self._conversations.clear()

    async def close(self) -> None:
        self.closed = True


class InMemoryVectorStore(VectorStore):
    def __init__(self) -> None:
        self._chunks: list[InsertChunk] = []
        self.dimensions: int | None = None
        self.closed = False

    async def init(self, dimensions: int) -> None:
        self.dimensions = dimensions
        self._chunks = []

    async def insert_chunks(self, chunks: list[InsertChunk]) -> int:
        for chunk in chunks:
            if self.dimensions is not None and len(chunk.vector) != self.dimensions:
                raise ValueError(
                    f"Vector has {len(chunk.vector)} dimensions, expected {self.dimensions}"
                )
        self._chunks.extend(copy.deepcopy(chunks))
        return len(chunks)

    async def similarity_search(self, query: list[float], k: int) -> list[ExtractChunk]:
        scored = [
            ExtractChunk(
                page_content=c.page_content,
                metadata=dict(c.metadata),
                score=_cosine(query, c.vector),
            )
            for c in self._chunks
        ]
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored[:k]

    async def get_vector_count(self) -> int:
        return len(self._chunks)

    async def delete_keys(self, unique_loader_id: str) -> bool:
        self._chunks = [
            c for c in self._chunks if c.metadata.get("unique_loader_id") != unique_loader_id
        ]
        return True

    async def reset(self) -> None:
        self._chunks = []

    async def close(self) -> None:
        self.closed = True
