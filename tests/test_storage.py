"""
tests/test_storage.py

In-memory stores and the backend registry.
"""

from datetime import datetime, timezone

import pytest

from ragstack.config import RagConfig, Settings
from ragstack.storage import create_stores, list_backends, register
from ragstack.storage.base import ConversationEntry, InsertChunk, LoaderEntry
from ragstack.storage.memory import InMemoryStore, InMemoryVectorStore


def chunk(text, vector, loader="loader-a"):
    return InsertChunk(
        page_content=text,
        vector=vector,
        metadata={"id": f"{loader}-{text}", "unique_loader_id": loader, "source": "inline"},
    )


# ─────────────────────────────────────────────────────
# Metadata store
# ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_loader_metadata_round_trip_and_delete():
    store = InMemoryStore()
    await store.init()
    entry = LoaderEntry(unique_id="a", type="WebLoader", chunks_processed=3)

    await store.add_loader_metadata("a", entry)
    await store.loader_custom_set("a", "a_progress", {"page": 2})
    await store.loader_custom_set("b", "b_progress", {"page": 9})

    assert await store.has_loader_metadata("a")
    assert (await store.get_loader_metadata("a")).chunks_processed == 3
    assert await store.loader_custom_get("a_progress") == {"page": 2}

    await store.delete_loader_metadata_and_custom_values("a")

    assert not await store.has_loader_metadata("a")
    assert not await store.loader_custom_has("a_progress")
    assert await store.loader_custom_has("b_progress")
    with pytest.raises(KeyError):
        await store.get_loader_metadata("a")


@pytest.mark.asyncio
async def test_stored_values_are_copies():
    store = InMemoryStore()
    entry = LoaderEntry(unique_id="a", type="WebLoader", chunks_processed=1)
    await store.add_loader_metadata("a", entry)
    entry.chunks_processed = 99
    assert (await store.get_loader_metadata("a")).chunks_processed == 1


@pytest.mark.asyncio
async def test_conversations():
    store = InMemoryStore()
    now = datetime.now(timezone.utc)

    assert (await store.get_conversation("c1")).entries == []
    await store.add_entry_to_conversation(
        "c1", ConversationEntry(id="1", content="hi", actor="HUMAN", timestamp=now)
    )
    await store.add_entry_to_conversation(
        "c1", ConversationEntry(id="2", content="hello", actor="AI", timestamp=now)
    )

    assert await store.has_conversation("c1")
    assert [e.content for e in (await store.get_conversation("c1")).entries] == ["hi", "hello"]

    await store.delete_conversation("c1")
    assert not await store.has_conversation("c1")

    await store.add_conversation("c2")
    await store.clear_conversations()
    assert not await store.has_conversation("c2")


# ─────────────────────────────────────────────────────
# Vector store
# ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_similarity_search_orders_by_cosine():
    vectors = InMemoryVectorStore()
    await vectors.init(2)
    await vectors.insert_chunks(
        [chunk("east", [1.0, 0.0]), chunk("north", [0.0, 1.0]), chunk("north-east", [1.0, 1.0])]
    )

    results = await vectors.similarity_search([1.0, 0.1], k=2)

    assert [r.page_content for r in results] == ["east", "north-east"]
    assert results[0].score > results[1].score


@pytest.mark.asyncio
async def test_dimension_mismatch_is_rejected():
    vectors = InMemoryVectorStore()
    await vectors.init(3)
    with pytest.raises(ValueError, match="expected 3"):
        await vectors.insert_chunks([chunk("short", [1.0, 0.0])])


@pytest.mark.asyncio
async def test_delete_keys_removes_one_loader():
    vectors = InMemoryVectorStore()
    await vectors.init(2)
    await vectors.insert_chunks([chunk("a1", [1.0, 0.0], "a"), chunk("b1", [0.0, 1.0], "b")])

    assert await vectors.delete_keys("a")
    assert await vectors.get_vector_count() == 1

    await vectors.reset()
    assert await vectors.get_vector_count() == 0


@pytest.mark.asyncio
async def test_close_marks_stores_closed():
    store, vectors = InMemoryStore(), InMemoryVectorStore()
    await store.close()
    await vectors.close()
    assert store.closed and vectors.closed


# ─────────────────────────────────────────────────────
# Registry
# ─────────────────────────────────────────────────────


def test_builtin_backends_are_registered():
    assert {"memory", "oracle"} <= set(list_backends())


def test_memory_backend_builds_fresh_pair():
    settings = Settings(rag=RagConfig(storage="memory"))
    store, vectors = create_stores(settings)
    assert isinstance(store, InMemoryStore)
    assert isinstance(vectors, InMemoryVectorStore)
    assert create_stores(settings)[0] is not store


def test_unknown_backend_is_rejected():
    settings = Settings.model_construct(rag=RagConfig.model_construct(storage="nope"))
    with pytest.raises(ValueError, match="Unknown storage backend 'nope'"):
        create_stores(settings)


def test_register_adds_backend(monkeypatch):
    import ragstack.storage as storage

    monkeypatch.setattr(storage, "_registry", dict(storage._registry))

    @register("test-only")
    def _factory(settings):
        return InMemoryStore(), InMemoryVectorStore()

    assert "test-only" in list_backends()
