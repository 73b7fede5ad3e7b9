"""
tests/test_rag.py

RagApplication and its builder over in-memory stores and fake LangChain models.
"""

import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.language_models import FakeListChatModel

from ragstack.rag import RagApplicationBuilder, WebLoader
from ragstack.storage.memory import InMemoryStore, InMemoryVectorStore

TEXT = (
    "Oracle Database 23ai stores vectors next to relational data. "
    "Ollama serves local models over HTTP. "
) * 40


async def build(responses=("The answer.",), search_result_count=3):
    store, vector_db = InMemoryStore(), InMemoryVectorStore()
    app = await (
        RagApplicationBuilder()
        .set_store(store)
        .set_vector_database(vector_db)
        .set_embedding_model(DeterministicFakeEmbedding(size=8))
        .set_model(FakeListChatModel(responses=list(responses)))
        .set_search_result_count(search_result_count)
        .build()
    )
    return app, store, vector_db


class TestBuilder:
    @pytest.mark.asyncio
    async def test_build_initializes_vector_store_dimensions(self):
        app, _, vector_db = await build()
        assert app.dimensions == 8
        assert vector_db.dimensions == 8

    @pytest.mark.asyncio
    async def test_missing_collaborators_are_named(self):
        builder = RagApplicationBuilder().set_store(InMemoryStore())
        with pytest.raises(ValueError, match="vector database, embedding model, model"):
            await builder.build()

    def test_search_result_count_must_be_positive(self):
        with pytest.raises(ValueError):
            RagApplicationBuilder().set_search_result_count(0)


class TestLoaders:
    @pytest.mark.asyncio
    async def test_inline_content_is_chunked_with_loader_metadata(self):
        loader = WebLoader(TEXT, chunk_size=200, chunk_overlap=20)
        docs = await loader.load_chunks()

        assert len(docs) > 1
        assert docs[0].metadata["id"] == f"{loader.unique_id}-0"
        assert all(d.metadata["unique_loader_id"] == loader.unique_id for d in docs)
        assert all(d.metadata["source"] == "inline" for d in docs)
        assert loader.metadata["type"] == "content"

    def test_unique_id_is_stable_per_source(self):
        assert WebLoader("same").unique_id == WebLoader("same").unique_id
        assert WebLoader("same").unique_id != WebLoader("other").unique_id
        assert len(WebLoader("same").unique_id) == 32

    @pytest.mark.asyncio
    async def test_blank_content_is_rejected(self):
        with pytest.raises(ValueError, match="No text content"):
            await WebLoader("   \n ").load_chunks()


class TestApplication:
    @pytest.mark.asyncio
    async def test_add_loader_stores_chunks_and_metadata(self):
        app, store, vector_db = await build()
        loader = WebLoader(TEXT, chunk_size=200, chunk_overlap=20)

        result = await app.add_loader(loader)

        assert result.unique_id == loader.unique_id
        assert result.loader_type == "WebLoader"
        assert result.entries_added == await vector_db.get_vector_count()
        entry = await store.get_loader_metadata(loader.unique_id)
        assert entry.chunks_processed == result.entries_added

    @pytest.mark.asyncio
    async def test_adding_same_loader_twice_replaces_its_chunks(self):
        app, _, vector_db = await build()

        first = await app.add_loader(WebLoader(TEXT, chunk_size=200, chunk_overlap=20))
        await app.add_loader(WebLoader(TEXT, chunk_size=200, chunk_overlap=20))

        assert await vector_db.get_vector_count() == first.entries_added

    @pytest.mark.asyncio
    async def test_delete_loader_removes_everything(self):
        app, store, vector_db = await build()
        loader = WebLoader(TEXT, chunk_size=200, chunk_overlap=20)
        await app.add_loader(loader)

        assert await app.delete_loader(loader.unique_id)
        assert await vector_db.get_vector_count() == 0
        assert not await store.has_loader_metadata(loader.unique_id)

    @pytest.mark.asyncio
    async def test_query_answers_and_records_conversation(self):
        app, store, _ = await build(responses=["Vectors live in Oracle."])
        await app.add_loader(WebLoader(TEXT, chunk_size=200, chunk_overlap=20))

        response = await app.query("Where do vectors live?")

        assert response.content == "Vectors live in Oracle."
        assert response.sources and response.sources[0]["source"] == "inline"
        assert len(response.sources) == 1

        conversation = await store.get_conversation("default")
        assert [e.actor for e in conversation.entries] == ["HUMAN", "AI"]
        assert conversation.entries[0].content == "Where do vectors live?"
        assert conversation.entries[1].id == response.id

    @pytest.mark.asyncio
    async def test_context_is_deduplicated(self):
        app, _, _ = await build(search_result_count=10)
        await app.add_loader(WebLoader("one repeated line", chunk_size=200, chunk_overlap=0))
        await app.add_loader(WebLoader("one repeated line ", chunk_size=200, chunk_overlap=0))

        context = await app.get_context("line")

        assert [c.page_content for c in context] == ["one repeated line"]

    @pytest.mark.asyncio
    async def test_query_without_documents_still_answers(self):
        app, _, _ = await build(responses=["I don't know."])
        response = await app.query("anything?")
        assert response.content == "I don't know."
        assert response.sources == []
